"""
Custom exception hierarchy for the memory cache.

All exceptions inherit from MCError, which provides optional context
for structured error handling and logging.

Absent or empty keys are never errors: lookups return None and deletions
are no-ops.
"""

from __future__ import annotations

from typing import Any


class MCError(Exception):
    """Base exception for all memory cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(MCError):
    """Raised when cache options or settings are invalid.

    Examples:
        - Unparsable capacity string (e.g. "2 bananas")
        - Negative prune depth
        - Negative auto-prune interval
    """

    pass


class SizeEstimationError(MCError):
    """Raised when the byte size of a value cannot be estimated.

    Context should include:
        - value_type: The type name of the value
        - reason: The serializer's error message
    """

    pass


class InvariantError(MCError):
    """Raised when trie bookkeeping is found to be inconsistent.

    This always indicates a defect in the cache itself and is never
    recovered from.

    Context should include:
        - key: The key path of the offending node
        - expected / actual: The mismatching aggregate values
    """

    pass


class StalePartialError(MCError):
    """Raised when a partial is used after its branch left the trie.

    A branch leaves the trie when it (or one of its ancestors) is deleted,
    when the cache is cleared, or when an insertion replaces it.

    Context should include:
        - prefix: The prefix the partial was created for
    """

    pass
