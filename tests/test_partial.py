"""
Tests for partials: scoped views sharing storage with the cache.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from unittest.mock import patch

import pytest

from mc.cache import MemCache
from mc.exceptions import StalePartialError
from mc.partial import CachePartial, TrieReader
from mc.types import CacheEntry

if TYPE_CHECKING:
    from conftest import FakeClock

CacheFactory = Callable[..., MemCache[Any]]


@pytest.fixture
def cache(make_cache: CacheFactory) -> MemCache[Any]:
    """Provide a cache keyed by (str, int, bool)."""
    cache = make_cache()
    cache.insert_many([
        (("key1", 1, True), "value1.1"),
        (("key1", 2, True), "value1.2"),
        (("key1", 2, False), "!value1.2"),
        (("key2", 1, True), "value2.1"),
        (("key2", 1, False), "!value2.1"),
        (("key2", 2, False), "!value2.2"),
    ])
    return cache


class TestPartialRetrieval:
    """Test reads through partials."""

    def test_partial_for_prefix(self, cache: MemCache[Any]) -> None:
        """Test a two-component prefix exposes the last level."""
        partial = cache.partial(("key1", 2))

        assert isinstance(partial, CachePartial)
        assert partial.prefix == ("key1", 2)
        assert partial.get((True,)) == "value1.2"
        assert partial.get((False,)) == "!value1.2"

    def test_partial_at_any_depth(self, cache: MemCache[Any]) -> None:
        """Test a one-component prefix exposes two levels."""
        partial = cache.partial(("key1",))

        assert isinstance(partial, CachePartial)
        assert partial.get((1, True)) == "value1.1"
        assert partial.get((1, False)) is None
        assert partial.get((2, True)) == "value1.2"
        assert partial.get((2, False)) == "!value1.2"

    def test_empty_prefix_mirrors_cache(self, cache: MemCache[Any]) -> None:
        """Test an empty prefix gives the same interface as the cache."""
        partial = cache.partial(())

        assert isinstance(partial, CachePartial)
        assert partial.get(("key1", 1, True)) == "value1.1"
        assert partial.get(("key1", 1, False)) is None
        assert partial.get(("key2", 2, True)) is None
        assert partial.get(("key2", 2, False)) == "!value2.2"
        assert list(partial.keys()) == list(cache.keys())

    def test_unknown_or_leaf_prefix(self, cache: MemCache[Any]) -> None:
        """Test partials are only created for existing branches."""
        assert cache.partial(("key3",)) is None
        assert cache.partial(("key1", 3)) is None
        assert cache.partial(("key1", 1, True)) is None

    def test_sizeof_atime_and_count(self, make_cache: CacheFactory, clock: FakeClock) -> None:
        """Test size, time and count queries use keys relative to the partial."""
        cache = make_cache()
        inserted_at = clock.now
        cache.insert_one(("key1", 1), 40)
        cache.insert_one(("key1", 2), 50)
        cache.insert_one(("key2", 1), 60)

        partial = cache.partial(("key1",))
        assert partial is not None

        assert partial.sizeof((1,)) == 40
        assert partial.sizeof(()) == 90
        assert partial.sizeof((3,)) is None
        assert partial.size == 90
        assert partial.count == 2
        assert len(partial) == 2
        assert partial.atime((2,)) == inserted_at
        assert (1,) in partial
        assert (3,) not in partial

    def test_get_touches_full_path(
        self, make_cache: CacheFactory, clock: FakeClock
    ) -> None:
        """Test reads through a partial stamp every node from the cache root down."""
        cache = make_cache()
        cache.insert_one(("key1", 1), "a")
        cache.insert_one(("key2", 1), "b")
        partial = cache.partial(("key1",))
        assert partial is not None
        inserted_at = clock.now
        clock.advance(5)

        partial.get((1,))

        assert cache.atime(()) == clock.now
        assert cache.atime(("key1",)) == clock.now
        assert cache.atime(("key1", 1)) == clock.now
        assert cache.atime(("key2",)) == inserted_at

    def test_nested_partial(self, cache: MemCache[Any]) -> None:
        """Test a partial of a partial carries the combined prefix."""
        outer = cache.partial(("key2",))
        assert outer is not None
        inner = outer.partial((1,))

        assert inner is not None
        assert inner.prefix == ("key2", 1)
        assert inner.get((False,)) == "!value2.1"

    def test_iteration_is_relative(self, cache: MemCache[Any]) -> None:
        """Test partial iteration yields keys relative to its prefix."""
        partial = cache.partial(("key2",))
        assert partial is not None

        assert list(partial.keys()) == [(1, True), (1, False), (2, False)]
        assert list(partial.values()) == ["value2.1", "!value2.1", "!value2.2"]
        assert list(partial)[0] == CacheEntry((1, True), "value2.1", 0)
        assert [key for key, _ in partial.nodes()] == list(partial.keys())


class TestPartialMutation:
    """Test writes forwarded to the owning cache."""

    def test_insert_updates_all_ancestors(self, make_cache: CacheFactory) -> None:
        """Test inserting through a partial updates aggregates above it."""
        cache = make_cache()
        cache.insert_one(("key1", 1), 10)
        partial = cache.partial(("key1",))
        assert partial is not None

        assert partial.insert_one((2,), 20) == 20

        assert cache.get(("key1", 2)) == 20
        assert partial.count == 2
        assert cache.size == 30
        assert cache.sizeof(("key1",)) == 30
        cache.verify()

    def test_insert_many_prefixes_keys(self, make_cache: CacheFactory) -> None:
        """Test batch inserts through a partial land below its prefix."""
        cache = make_cache()
        cache.insert_one(("key1", 1), 10)
        partial = cache.partial(("key1",))
        assert partial is not None

        total = partial.insert_many({(2,): 20, (3,): 30})

        assert total == 50
        assert list(cache.keys()) == [("key1", 1), ("key1", 2), ("key1", 3)]

    def test_ensure(self, make_cache: CacheFactory) -> None:
        """Test ensure through a partial keeps existing values."""
        cache = make_cache()
        cache.insert_one(("key1", 1), "first")
        partial = cache.partial(("key1",))
        assert partial is not None

        assert partial.ensure((1,), "second") == "first"
        assert partial.ensure((2,), "second") == "second"
        assert cache.get(("key1", 2)) == "second"

    def test_delete(self, cache: MemCache[Any]) -> None:
        """Test deletions through a partial are prefixed."""
        partial = cache.partial(("key2",))
        assert partial is not None

        assert partial.delete_one((1, True)) == CacheEntry((1, True), "value2.1", 0)
        removed = partial.delete_many([(2,), (9,)])

        assert removed[0] is not None
        assert removed[0].key == (2,)
        assert list(removed[0].value) == [CacheEntry((False,), "!value2.2", 0)]
        assert removed[1] is None

        assert list(partial.keys()) == [(1, False)]
        assert cache.count == 4
        assert partial.delete_one(()) is None
        cache.verify()

    def test_insert_triggers_auto_prune(self, make_cache: CacheFactory) -> None:
        """Test writes through a partial are subject to the capacity."""
        cache = make_cache(capacity=100)
        cache.insert_one(("key1", 1), 60)
        partial = cache.partial(("key1",))
        assert partial is not None

        with patch.object(cache, "prune", wraps=cache.prune) as prune:
            partial.insert_one((2,), 60)

        assert prune.call_count == 1
        assert list(partial.keys()) == [(2,)]


class TestStalePartials:
    """Test partials whose branch left the trie."""

    def test_deleted_prefix(self, cache: MemCache[Any]) -> None:
        """Test deleting the partial's branch invalidates it."""
        partial = cache.partial(("key1", 2))
        assert partial is not None

        cache.delete_one(("key1",))

        with pytest.raises(StalePartialError):
            partial.get((True,))
        with pytest.raises(StalePartialError):
            partial.insert_one((True,), "again")
        assert "stale" in repr(partial)

    def test_cleared_cache(self, cache: MemCache[Any]) -> None:
        """Test clearing the cache invalidates existing partials."""
        partial = cache.partial(("key1",))
        assert partial is not None

        cache.clear()

        with pytest.raises(StalePartialError):
            list(partial.keys())

    def test_replaced_branch(self, cache: MemCache[Any]) -> None:
        """Test overwriting the partial's prefix with a value invalidates it."""
        partial = cache.partial(("key1",))
        assert partial is not None

        cache.insert_one(("key1",), "flat")

        with pytest.raises(StalePartialError):
            _ = partial.count

    def test_pruned_subtree(self, make_cache: CacheFactory, clock: FakeClock) -> None:
        """Test pruning a subtree invalidates partials over it."""
        cache = make_cache(prune_depth=1, capacity=50)
        cache.insert_one(("old", 1), 40)
        partial = cache.partial(("old",))
        assert partial is not None
        clock.advance(1)

        cache.insert_one(("new", 1), 40)

        with pytest.raises(StalePartialError):
            partial.get((1,))

    def test_deleting_entries_keeps_partial_valid(self, cache: MemCache[Any]) -> None:
        """Test emptying a branch entry by entry leaves the partial usable."""
        partial = cache.partial(("key1", 2))
        assert partial is not None

        cache.delete_many([("key1", 2, True), ("key1", 2, False)])

        assert partial.count == 0
        assert partial.insert_one((True,), "back") == 0
        assert cache.get(("key1", 2, True)) == "back"


class TestTrieReader:
    """Test the shared read base."""

    def test_requires_branch_accessor(self) -> None:
        with pytest.raises(TypeError, match="_branch"):
            TrieReader()  # type: ignore[abstract]

    def test_partial_and_cache_are_readers(self, cache: MemCache[Any]) -> None:
        partial = cache.partial(("key1",))

        assert isinstance(cache, TrieReader)
        assert isinstance(partial, TrieReader)
