"""
Traversal primitives shared by the cache engine and its partials.

All functions are recursive or iterative over a key path, so their depth
is bounded by key length.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime

from mc.exceptions import InvariantError
from mc.types import Branch, CacheEntry, Key, Leaf, Node, is_branch, is_leaf


def traverse(
    node: Node,
    key: Key,
    touch: bool = False,
    now: datetime | None = None,
) -> Node | None:
    """Descend from `node` one key component at a time.

    Args:
        node: The node to start from.
        key: Components to follow, relative to `node`.
        touch: Whether to stamp `now` on every visited node, the start
            node and the terminal node included.
        now: The timestamp to stamp. Required when `touch` is set.

    Returns:
        The terminal node, or None if any step finds no matching child.
    """
    if touch:
        node.atime = now
    for component in key:
        if not is_branch(node):
            return None
        child = node.children.get(component)
        if child is None:
            return None
        node = child
        if touch:
            node.atime = now
    return node


def iter_leaves(node: Node, prefix: Key = ()) -> Iterator[tuple[Key, Leaf]]:
    """Yield (key, leaf) pairs depth-first, children in insertion order."""
    if is_leaf(node):
        yield prefix, node
        return
    for component, child in node.children.items():
        yield from iter_leaves(child, (*prefix, component))


def iter_entries(node: Node, prefix: Key = ()) -> Iterator[CacheEntry]:
    """Yield a CacheEntry for every leaf below `node`."""
    for key, leaf in iter_leaves(node, prefix):
        yield CacheEntry(key, leaf.value, leaf.size)


def collect_units(
    node: Node,
    prune_depth: int | None,
    prefix: Key = (),
) -> list[tuple[Key, Node]]:
    """Flatten the trie into eviction units.

    A node becomes a unit when it is a leaf or when its depth reaches
    `prune_depth`, whichever comes first. Branches without entries are
    skipped since evicting them frees nothing.

    Returns:
        (key, node) pairs in depth-first traversal order.
    """
    if is_leaf(node):
        return [(prefix, node)]
    if node.count == 0:
        return []
    if prune_depth is not None and len(prefix) >= prune_depth:
        return [(prefix, node)]

    units: list[tuple[Key, Node]] = []
    for component, child in node.children.items():
        units.extend(collect_units(child, prune_depth, (*prefix, component)))
    return units


def detach(node: Node) -> None:
    """Mark a removed branch and all branches below it as detached."""
    if not is_branch(node):
        return
    node.detached = True
    for child in node.children.values():
        detach(child)


def check_aggregates(branch: Branch, key: Key = ()) -> None:
    """Fail fast if a branch's aggregates went negative."""
    if branch.size < 0 or branch.count < 0:
        raise InvariantError(
            "Negative aggregate on branch",
            context={"key": key, "size": branch.size, "count": branch.count},
        )


def verify(node: Node, key: Key = ()) -> tuple[int, int]:
    """Recompute aggregates below `node` and compare them to the stored ones.

    Returns:
        Tuple of (size, count) for `node`.

    Raises:
        InvariantError: If any branch's stored aggregates disagree with its
            children, or are negative.
    """
    if is_leaf(node):
        if node.size < 0:
            raise InvariantError("Negative leaf size", context={"key": key, "size": node.size})
        return node.size, 1

    size = 0
    count = 0
    for component, child in node.children.items():
        child_size, child_count = verify(child, (*key, component))
        size += child_size
        count += child_count

    check_aggregates(node, key)
    if node.size != size:
        raise InvariantError(
            "Branch size does not match its children",
            context={"key": key, "expected": size, "actual": node.size},
        )
    if node.count != count:
        raise InvariantError(
            "Branch count does not match its children",
            context={"key": key, "expected": count, "actual": node.count},
        )
    return size, count


def resolve_path(node: Node, key: Key) -> list[Node] | None:
    """Get every node on the way from `node` to `key`, both ends included.

    Does not update access times.

    Returns:
        The nodes in descending order, or None if the key is unknown.
    """
    path = [node]
    for component in key:
        if not is_branch(node):
            return None
        child = node.children.get(component)
        if child is None:
            return None
        node = child
        path.append(node)
    return path
