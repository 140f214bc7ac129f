"""
Read interface shared by the cache and its partials, and the partial itself.

A partial is optimized for retrieval, not for modification:

1. Retrieval methods (`get`, `sizeof`, `atime`, `count`, iteration) traverse
   from the partial's own branch, using the caller's key as a suffix.
2. Mutation methods (`insert_one`, `insert_many`, `ensure`, `delete_one`,
   `delete_many`) are forwarded to the owning cache with the partial's
   prefix re-attached, since aggregates above the partial's branch must be
   updated as well.

A partial never owns its branch. Once that branch leaves the trie (it or an
ancestor is deleted, pruned or replaced, or the cache is cleared) every call
raises StalePartialError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic

from mc.exceptions import StalePartialError
from mc.trie import iter_entries, iter_leaves, resolve_path, traverse
from mc.types import Branch, CacheEntry, Component, Key, Leaf, V, is_branch, is_leaf, normalize_key

if TYPE_CHECKING:
    from mc.cache import MemCache


class TrieReader(ABC, Generic[V]):
    """Read and iteration methods over a branch of the trie."""

    _owner: MemCache[V]
    _prefix: Key
    # Branches above this one, from the cache root down.
    _ancestors: tuple[Branch, ...]

    @abstractmethod
    def _branch(self) -> Branch:
        """Return the branch this reader walks, checking it is still attached."""

    # Retrieval

    def get(self, key: Sequence[Component] | Component, update_atime: bool = True) -> V | None:
        """Get the value stored at `key`.

        Args:
            key: Full key, relative to this branch.
            update_atime: Stamp the current time on the leaf and every node
                on the path to it from the cache root.

        Returns:
            The stored value, or None if the key is unknown, empty, or
            addresses a branch.
        """
        key = normalize_key(key)
        if not key:
            return None

        branch = self._branch()
        now = None
        if update_atime:
            now = self._owner._now()
            for ancestor in self._ancestors:
                ancestor.atime = now
        node = traverse(branch, key, touch=update_atime, now=now)
        if node is None or not is_leaf(node):
            return None
        return node.value

    def sizeof(self, key: Sequence[Component] | Component) -> int | None:
        """Get the aggregate byte size at a key or key prefix.

        Does not update access times. An empty key addresses this branch.
        """
        node = traverse(self._branch(), normalize_key(key))
        return None if node is None else node.size

    def atime(self, key: Sequence[Component] | Component) -> datetime | None:
        """Get the last access time at a key or key prefix.

        Does not update access times. An empty key addresses this branch.
        """
        node = traverse(self._branch(), normalize_key(key))
        return None if node is None else node.atime

    @property
    def count(self) -> int:
        """Number of entries below this branch."""
        return self._branch().count

    @property
    def size(self) -> int:
        """Aggregate byte size of all entries below this branch."""
        return self._branch().size

    def partial(self, prefix: Sequence[Component] | Component) -> CachePartial[V] | None:
        """Get a partial over the branch at `prefix`.

        An empty prefix yields a partial over this branch.

        Returns:
            The partial, or None if the prefix is unknown or addresses a leaf.
        """
        prefix = normalize_key(prefix)
        path = resolve_path(self._branch(), prefix)
        if path is None or not is_branch(path[-1]):
            return None
        return CachePartial(
            self._owner,
            (*self._prefix, *prefix),
            path[-1],
            ancestors=(*self._ancestors, *path[:-1]),
        )

    def __len__(self) -> int:
        return self.count

    def __contains__(self, key: object) -> bool:
        key = normalize_key(key)  # type: ignore[arg-type]
        if not key:
            return False
        node = traverse(self._branch(), key)
        return node is not None and is_leaf(node)

    # Iteration

    def keys(self) -> Iterator[Key]:
        for key, _ in iter_leaves(self._branch()):
            yield key

    def values(self) -> Iterator[V]:
        for _, leaf in iter_leaves(self._branch()):
            yield leaf.value

    def entries(self) -> Iterator[CacheEntry]:
        """Iterate (key, value, size) depth-first in insertion order.

        Keys are relative to this branch. The iterator must not be advanced
        across mutations of the cache.
        """
        return iter_entries(self._branch())

    def nodes(self) -> Iterator[tuple[Key, Leaf[V]]]:
        """Iterate (key, leaf) pairs. Leaves are owned by the cache; do not modify them."""
        return iter_leaves(self._branch())

    def __iter__(self) -> Iterator[CacheEntry]:
        return self.entries()


class CachePartial(TrieReader[V]):
    """A non-owning view over a branch reached by a key prefix."""

    def __init__(
        self,
        cache: MemCache[V],
        prefix: Key,
        root: Branch,
        ancestors: tuple[Branch, ...] = (),
    ) -> None:
        self._owner = cache
        self._prefix = prefix
        self._root = root
        self._ancestors = ancestors

    @property
    def prefix(self) -> Key:
        """The key prefix of this partial, from the cache root."""
        return self._prefix

    def _branch(self) -> Branch:
        if self._root.detached:
            raise StalePartialError(
                "Partial used after its branch was removed from the cache",
                context={"prefix": self._prefix},
            )
        return self._root

    def _full_key(self, key: Sequence[Component] | Component) -> Key:
        self._branch()
        return (*self._prefix, *normalize_key(key))

    # Insertion

    def insert_one(
        self,
        key: Sequence[Component] | Component,
        value: V,
        replace: bool = True,
    ) -> int | None:
        """Insert a value below this partial. See MemCache.insert_one."""
        key = normalize_key(key)
        if not key:
            return None
        return self._owner.insert_one(self._full_key(key), value, replace)

    def insert_many(
        self,
        values: Mapping[Any, V] | Iterable[tuple[Sequence[Component], V]],
        replace: bool = True,
    ) -> int:
        """Insert many values below this partial. See MemCache.insert_many."""
        items = values.items() if isinstance(values, Mapping) else values
        prefixed = [
            (self._full_key(key), value)
            for key, value in items
            if normalize_key(key)
        ]
        return self._owner.insert_many(prefixed, replace)

    def ensure(self, key: Sequence[Component] | Component, value: V) -> V:
        """Get the value at `key`, inserting `value` first if there is none."""
        key = normalize_key(key)
        if not key:
            return value
        return self._owner.ensure(self._full_key(key), value)

    # Deletion

    def delete_one(self, key: Sequence[Component] | Component) -> CacheEntry | None:
        """Delete the entry or subtree at `key`. See MemCache.delete_one.

        The returned entry is keyed relative to this partial.
        """
        key = normalize_key(key)
        if not key:
            return None
        removed = self._owner.delete_one(self._full_key(key))
        if removed is None:
            return None
        return CacheEntry(key, removed.value, removed.size)

    def delete_many(
        self, keys: Iterable[Sequence[Component] | Component]
    ) -> list[CacheEntry | None]:
        return [self.delete_one(key) for key in keys]

    def __repr__(self) -> str:
        state = "stale" if self._root.detached else f"count={self._root.count}, size={self._root.size}"
        return f"CachePartial(prefix={self._prefix!r}, {state})"
