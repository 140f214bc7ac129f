"""
Core types for the memory cache.

This module defines the fundamental data structures used throughout the cache:
- NodeKind discriminant and the Branch / Leaf trie nodes
- CacheEntry tuples yielded by iteration and reported on eviction
- Subtree payload reported when a whole branch is evicted as one unit
- Helper functions for key normalization and timestamps
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, NamedTuple, TypeVar, Union

V = TypeVar("V")

# A single key component. Components are compared with Python equality,
# so 1, 1.0 and True address the same child.
Component = Union[str, int, float, bool, None]

# A compound key: an ordered sequence of components.
Key = tuple[Component, ...]

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def normalize_key(key: Sequence[Component] | Component) -> Key:
    """Coerce a caller-supplied key into a tuple of components.

    Lists and tuples are taken component by component. Any other value
    (including a plain string) is treated as a key of length one.
    """
    if isinstance(key, tuple):
        return key
    if isinstance(key, list):
        return tuple(key)
    return (key,)


class NodeKind(str, Enum):
    """Discriminant for trie nodes."""

    BRANCH = "branch"
    LEAF = "leaf"


@dataclass(eq=False)
class Leaf(Generic[V]):
    """A trie node holding exactly one stored value.

    The size is estimated once when the leaf is written and never
    recomputed.
    """

    value: V
    atime: datetime
    size: int
    kind: NodeKind = field(default=NodeKind.LEAF, init=False)

    @property
    def count(self) -> int:
        """A leaf always counts as one entry."""
        return 1


@dataclass(eq=False)
class Branch:
    """An internal trie node.

    Children are kept in insertion order, which is also iteration order.
    `size` and `count` aggregate over all leaf descendants.
    """

    atime: datetime
    children: dict[Component, Node] = field(default_factory=dict)
    size: int = 0
    count: int = 0
    detached: bool = False
    kind: NodeKind = field(default=NodeKind.BRANCH, init=False)


Node = Union[Branch, Leaf[Any]]


def is_leaf(node: Node) -> bool:
    """Check whether a node is a Leaf."""
    return node.kind is NodeKind.LEAF


def is_branch(node: Node) -> bool:
    """Check whether a node is a Branch."""
    return node.kind is NodeKind.BRANCH


class CacheEntry(NamedTuple):
    """A stored value together with its key and estimated byte size."""

    key: Key
    value: Any
    size: int


@dataclass(frozen=True)
class Subtree:
    """Payload reported for a branch evicted as a single unit.

    Holds the leaf entries that lived below the branch, keyed relative
    to the branch itself.
    """

    entries: tuple[CacheEntry, ...] = ()

    @property
    def size(self) -> int:
        """Total estimated size of the collected entries."""
        return sum(entry.size for entry in self.entries)

    @property
    def values(self) -> list[Any]:
        """The collected values, in traversal order."""
        return [entry.value for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(self.entries)
