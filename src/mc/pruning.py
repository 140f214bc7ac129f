"""
Eviction policy for the memory cache.

Pruning is synchronous: it only ever runs as a side effect of a mutating
call (or an explicit `prune()`), never from a timer. The auto-prune
interval is a debounce gate checked at the next insertion.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from mc.exceptions import ConfigurationError
from mc.sizing import parse_capacity
from mc.types import CacheEntry, Key, Node

PrunedCallback = Callable[[list[CacheEntry]], None]


@dataclass
class PrunePolicy:
    """Capacity budget and the rules for when and what to evict."""

    capacity: int | None = None
    auto_prune: bool = True
    auto_prune_interval: timedelta | None = None
    prune_depth: int | None = None
    pruned: PrunedCallback | None = None
    last_prune_at: datetime | None = None

    @classmethod
    def create(
        cls,
        capacity: int | str | None = None,
        auto_prune: bool = True,
        auto_prune_interval: float | None = None,
        prune_depth: int | None = None,
        pruned: PrunedCallback | None = None,
    ) -> PrunePolicy:
        """Validate raw cache options and build a policy.

        Args:
            capacity: Byte budget or size string; None for unbounded.
            auto_prune: Whether insertions trigger pruning.
            auto_prune_interval: Minimum milliseconds between automatic prunes.
            prune_depth: Key depth of the smallest eviction unit; None prunes
                individual leaves.
            pruned: Callback receiving the evicted entries.

        Raises:
            ConfigurationError: If any option is out of range.
        """
        if prune_depth is not None and (
            isinstance(prune_depth, bool) or not isinstance(prune_depth, int) or prune_depth < 0
        ):
            raise ConfigurationError(
                "prune_depth must be a non-negative integer",
                context={"prune_depth": prune_depth},
            )
        if auto_prune_interval is not None and auto_prune_interval < 0:
            raise ConfigurationError(
                "auto_prune_interval must not be negative",
                context={"auto_prune_interval": auto_prune_interval},
            )

        return cls(
            capacity=None if capacity is None else parse_capacity(capacity),
            auto_prune=auto_prune,
            auto_prune_interval=(
                None if auto_prune_interval is None
                else timedelta(milliseconds=auto_prune_interval)
            ),
            prune_depth=prune_depth,
            pruned=pruned,
        )

    def over_capacity(self, size: int) -> bool:
        """Check whether `size` exceeds the budget."""
        return self.capacity is not None and size > self.capacity

    def should_auto_prune(self, size: int, now: datetime) -> bool:
        """Decide whether an insertion should be followed by a prune.

        Elapsed time is measured from the last prune, whether or not that
        prune evicted anything.
        """
        if not self.auto_prune or not self.over_capacity(size):
            return False
        if self.auto_prune_interval is None or self.last_prune_at is None:
            return True
        return now - self.last_prune_at >= self.auto_prune_interval

    @staticmethod
    def order_units(units: list[tuple[Key, Node]]) -> list[tuple[Key, Node]]:
        """Sort eviction units least-recently-touched first.

        The sort is stable, so ties keep traversal order.
        """
        return sorted(units, key=lambda unit: unit[1].atime)
