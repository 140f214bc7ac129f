"""In-memory cache with compound keys, partial views and capacity-based pruning."""

from mc.cache import MemCache
from mc.exceptions import (
    ConfigurationError,
    InvariantError,
    MCError,
    SizeEstimationError,
    StalePartialError,
)
from mc.partial import CachePartial
from mc.sizing import estimate_size, parse_capacity
from mc.types import CacheEntry, Key, Subtree

__version__ = "0.1.0"

__all__ = [
    "MemCache",
    "CachePartial",
    "CacheEntry",
    "Key",
    "Subtree",
    "estimate_size",
    "parse_capacity",
    "MCError",
    "ConfigurationError",
    "InvariantError",
    "SizeEstimationError",
    "StalePartialError",
]
