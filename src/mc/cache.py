"""
In-memory cache with compound keys and capacity-triggered pruning.

Values are stored in a trie keyed by tuples of scalar components. Every
branch tracks the aggregate byte size, entry count and last access time of
everything below it, which makes size queries O(key length) and lets the
pruner evict whole subtrees at a configurable depth.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from mc.logging import get_logger, log_context
from mc.partial import TrieReader
from mc.pruning import PrunedCallback, PrunePolicy
from mc.sizing import estimate_size
from mc.trie import check_aggregates, collect_units, detach, iter_entries, traverse
from mc.trie import verify as verify_trie
from mc.types import (
    Branch,
    CacheEntry,
    Clock,
    Component,
    Key,
    Leaf,
    Node,
    Subtree,
    V,
    is_branch,
    is_leaf,
    normalize_key,
    utc_now,
)

if TYPE_CHECKING:
    from mc.config import Settings

logger = get_logger(__name__)

# (size delta, count delta, size of the written leaf)
_InsertResult = tuple[int, int, int]


class MemCache(TrieReader[V]):
    """A memory cache with nested keys and auto-pruning.

    Not thread-safe: callers sharing a cache across threads must serialize
    access themselves.

    Example:
        cache = MemCache(capacity="64MiB", prune_depth=1)
        cache.insert_one(("tenant-a", 42), payload)
        tenant = cache.partial(("tenant-a",))
    """

    def __init__(
        self,
        *,
        capacity: int | str | None = None,
        values: Mapping[Any, V] | Iterable[tuple[Sequence[Component], V]] | None = None,
        auto_prune: bool = True,
        auto_prune_interval: float | None = None,
        prune_depth: int | None = None,
        pruned: PrunedCallback | None = None,
        clock: Clock = utc_now,
        sizeof: Callable[[Any], int] = estimate_size,
        name: str | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            capacity: Byte budget, as a number of bytes or a size string
                ("2kB" is 2000 bytes, "2KiB" is 2048). None means unbounded.
            values: Initial entries, inserted with replace semantics.
            auto_prune: Prune after insertions that leave the cache over
                capacity.
            auto_prune_interval: Minimum milliseconds between automatic
                prunes. Checked at insertion time, there is no timer.
            prune_depth: Key depth at which a node is evicted as one unit.
                None evicts individual entries; 0 clears the whole cache.
            pruned: Called with the evicted entries after each prune that
                evicted something.
            clock: Source of the current time.
            sizeof: Byte-size estimator, called once per written value.
            name: Label attached to log records.

        Raises:
            ConfigurationError: If any option is invalid.
        """
        self.name = name
        self._clock = clock
        self._sizeof = sizeof
        self._policy = PrunePolicy.create(
            capacity=capacity,
            auto_prune=auto_prune,
            auto_prune_interval=auto_prune_interval,
            prune_depth=prune_depth,
            pruned=pruned,
        )
        self._owner = self
        self._prefix = ()
        self._ancestors = ()

        now = self._now()
        self._root = Branch(atime=now)
        self._policy.last_prune_at = now

        logger.debug(
            "Cache created",
            cache=name,
            capacity=self._policy.capacity,
            prune_depth=prune_depth,
        )

        if values is not None:
            self.insert_many(values)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> MemCache[Any]:
        """Create a cache configured from settings.

        Args:
            settings: Settings to use; defaults to the environment settings.
            **overrides: Constructor options that take precedence.
        """
        if settings is None:
            from mc.config import get_settings

            settings = get_settings()
        settings.configure_logging()
        options = {**settings.cache_options(), **overrides}
        return cls(**options)

    def _now(self) -> datetime:
        return self._clock()

    def _branch(self) -> Branch:
        return self._root

    @property
    def capacity(self) -> int | None:
        """Byte budget, or None if unbounded."""
        return self._policy.capacity

    @property
    def prune_depth(self) -> int | None:
        return self._policy.prune_depth

    @property
    def last_prune_at(self) -> datetime | None:
        """When prune() last ran, whether or not it evicted anything."""
        return self._policy.last_prune_at

    # Insertion

    def insert_one(
        self,
        key: Sequence[Component] | Component,
        value: V,
        replace: bool = True,
    ) -> int | None:
        """Insert a single value.

        Branches along the key are created as needed. A path running through
        an existing entry, or ending at a branch that holds entries, replaces
        what was there.

        Args:
            key: Full key of the value.
            value: The value to store.
            replace: Whether to overwrite an existing entry.

        Returns:
            Estimated size of the stored value, or None if nothing was
            written (empty key, or existing entry with replace=False).

        Raises:
            SizeEstimationError: If the value's size cannot be estimated.
        """
        size = self._insert(normalize_key(key), value, replace)
        if size is not None:
            self._auto_prune()
        return size

    def insert_many(
        self,
        values: Mapping[Any, V] | Iterable[tuple[Sequence[Component], V]],
        replace: bool = True,
    ) -> int:
        """Insert many values, checking for pruning once after the batch.

        Returns:
            Total estimated size of the values actually written.
        """
        items = values.items() if isinstance(values, Mapping) else values

        total_size = 0
        written = False
        for key, value in items:
            size = self._insert(normalize_key(key), value, replace)
            if size is not None:
                total_size += size
                written = True

        if written:
            self._auto_prune()
        return total_size

    def ensure(self, key: Sequence[Component] | Component, value: V) -> V:
        """Get the value at `key`, inserting `value` first if there is none.

        The lookup does not update access times; the insertion does.
        """
        key = normalize_key(key)
        node = traverse(self._root, key) if key else None
        if node is not None and is_leaf(node):
            return node.value

        self.insert_one(key, value, replace=False)
        return value

    def _insert(self, key: Key, value: V, replace: bool) -> int | None:
        if not key:
            return None
        result = self._insert_into(self._root, key, value, replace, self._now())
        if result is None:
            return None

        size = result[2]
        if self._policy.over_capacity(size):
            logger.warning(
                "Value alone exceeds cache capacity",
                cache=self.name,
                key=key,
                size=size,
                capacity=self._policy.capacity,
            )
        return size

    def _insert_into(
        self,
        branch: Branch,
        key: Key,
        value: V,
        replace: bool,
        now: datetime,
    ) -> _InsertResult | None:
        head, tail = key[0], key[1:]
        existing = branch.children.get(head)

        if tail:
            if existing is not None and is_branch(existing):
                result = self._insert_into(existing, tail, value, replace, now)
                if result is None:
                    return None
            else:
                # A leaf in the way only gives way to replace=True.
                if existing is not None and not replace:
                    return None
                child = Branch(atime=now)
                result = self._insert_into(child, tail, value, replace, now)
                if result is None:
                    return None
                branch.children[head] = child
                if existing is not None:
                    result = (result[0] - existing.size, result[1] - 1, result[2])
        else:
            if existing is not None and existing.count > 0 and not replace:
                return None

            size = self._sizeof(value)
            old_size = 0 if existing is None else existing.size
            old_count = 0 if existing is None else existing.count
            if existing is not None and is_branch(existing):
                detach(existing)

            branch.children[head] = Leaf(value=value, atime=now, size=size)
            result = (size - old_size, 1 - old_count, size)

        branch.size += result[0]
        branch.count += result[1]
        branch.atime = now
        check_aggregates(branch)
        return result

    # Deletion & pruning

    def delete_one(self, key: Sequence[Component] | Component) -> CacheEntry | None:
        """Delete the entry or subtree at a key or key prefix.

        Branches left empty by the deletion are kept.

        Returns:
            The removed entry with the bytes it freed, or None if the key is
            unknown. A removed prefix is reported with a Subtree value, as
            prune() reports evicted branches.
        """
        key = normalize_key(key)
        if not key:
            return None
        removed = self._delete_from(self._root, key)
        return None if removed is None else self._removed_entry(key, removed)

    def delete_many(
        self, keys: Iterable[Sequence[Component] | Component]
    ) -> list[CacheEntry | None]:
        """Delete several keys independently. See delete_one."""
        return [self.delete_one(key) for key in keys]

    def _delete_from(self, branch: Branch, key: Key) -> Node | None:
        head, tail = key[0], key[1:]
        child = branch.children.get(head)
        if child is None:
            return None

        if tail:
            if not is_branch(child):
                return None
            removed = self._delete_from(child, tail)
            if removed is None:
                return None
        else:
            del branch.children[head]
            detach(child)
            removed = child

        branch.size -= removed.size
        branch.count -= removed.count
        check_aggregates(branch)
        return removed

    def clear(self) -> None:
        """Remove all entries."""
        detach(self._root)
        self._root = Branch(atime=self._now())
        logger.debug("Cache cleared", cache=self.name)

    def prune(self) -> list[CacheEntry]:
        """Evict least-recently-used units until the cache fits its capacity.

        Units are entries, or whole subtrees at `prune_depth`. Eviction stops
        as soon as the size is within capacity, so a unit larger than the
        whole budget is evicted together with every older unit.

        Returns:
            The evicted entries. Subtree units carry a Subtree as value.
        """
        policy = self._policy
        policy.last_prune_at = self._now()

        if not policy.over_capacity(self.size):
            return []

        with log_context(cache=self.name, operation="prune"):
            size_before = self.size
            units = policy.order_units(collect_units(self._root, policy.prune_depth))

            evicted: list[CacheEntry] = []
            for key, node in units:
                if not policy.over_capacity(self.size):
                    break
                evicted.append(self._removed_entry(key, node))
                if key:
                    self._delete_from(self._root, key)
                else:
                    self.clear()

            logger.info(
                "Pruned cache",
                units=len(evicted),
                freed=size_before - self.size,
                size=self.size,
                capacity=policy.capacity,
            )
            if evicted and policy.pruned is not None:
                policy.pruned(evicted)

        return evicted

    def _removed_entry(self, key: Key, node: Node) -> CacheEntry:
        if is_leaf(node):
            return CacheEntry(key, node.value, node.size)
        return CacheEntry(key, Subtree(tuple(iter_entries(node))), node.size)

    def _auto_prune(self) -> None:
        if self._policy.should_auto_prune(self.size, self._now()):
            self.prune()

    def verify(self) -> None:
        """Check all branch aggregates against their children.

        Raises:
            InvariantError: If any aggregate is inconsistent.
        """
        verify_trie(self._root)

    def __repr__(self) -> str:
        return (
            f"MemCache(name={self.name!r}, count={self.count}, "
            f"size={self.size}, capacity={self.capacity})"
        )
