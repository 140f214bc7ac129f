"""
Pytest configuration and fixtures for memory cache tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Generator
from unittest.mock import patch

import pytest

from mc.cache import MemCache
from mc.config import clear_settings_cache


class FakeClock:
    """Manually advanced clock for deterministic access times."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, milliseconds: float) -> None:
        self.now += timedelta(milliseconds=milliseconds)


def number_sizeof(value: Any) -> int:
    """Sizer that reports integers as their own value and everything else as 0."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def make_cache(clock: FakeClock) -> Callable[..., MemCache[Any]]:
    """Provide a factory for caches using the fake clock and numeric sizes."""

    def factory(**options: Any) -> MemCache[Any]:
        options.setdefault("clock", clock)
        options.setdefault("sizeof", number_sizeof)
        return MemCache(**options)

    return factory


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide cache settings through environment variables."""
    env_vars = {
        "MEMCACHE_CAPACITY": "2kB",
        "MEMCACHE_AUTO_PRUNE": "false",
        "MEMCACHE_AUTO_PRUNE_INTERVAL_MS": "500",
        "MEMCACHE_PRUNE_DEPTH": "1",
        "MEMCACHE_LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def restore_mc_logger() -> Generator[None, None, None]:
    """Undo handler and level changes made by setup_logging() during a test."""
    logger = logging.getLogger("mc")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
