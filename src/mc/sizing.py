"""
Byte-size estimation and capacity parsing.

Sizes are approximate: a value is measured by the length of its JSON
serialization, which tracks payload size well enough for budget
enforcement without walking Python object internals.
"""

from __future__ import annotations

from typing import Any

import orjson
from pydantic import ByteSize, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from mc.exceptions import ConfigurationError, SizeEstimationError

_DUMP_OPTIONS = orjson.OPT_NON_STR_KEYS | orjson.OPT_SERIALIZE_NUMPY
_byte_size_adapter: TypeAdapter[ByteSize] = TypeAdapter(ByteSize)


def estimate_size(value: Any) -> int:
    """Estimate the byte size of a value.

    Binary buffers report their length. Everything else reports the length
    of its orjson serialization; objects orjson has no encoding for are
    serialized through `str()`.

    Args:
        value: Any value to be stored in the cache.

    Returns:
        Approximate size in bytes.

    Raises:
        SizeEstimationError: If the value cannot be serialized at all
            (e.g. integers wider than 64 bits, circular references).
    """
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if isinstance(value, memoryview):
        return value.nbytes

    try:
        return len(orjson.dumps(value, default=str, option=_DUMP_OPTIONS))
    except orjson.JSONEncodeError as e:
        raise SizeEstimationError(
            "Cannot estimate size of value",
            context={"value_type": type(value).__name__, "reason": str(e)},
        ) from e


def parse_capacity(capacity: int | str) -> int:
    """Convert a capacity expression into a number of bytes.

    Decimal and binary units are told apart by suffix: "2kB" is 2000 bytes,
    "2KiB" is 2048 bytes. A bare number (or numeric string) is bytes.

    Args:
        capacity: Byte count, or a string with a unit (e.g. "512kB", "2MiB").

    Returns:
        The capacity in bytes.

    Raises:
        ConfigurationError: If the capacity is negative or cannot be parsed.
    """
    if isinstance(capacity, bool):
        raise ConfigurationError("Capacity must be a byte count or a size string", context={"capacity": capacity})
    if isinstance(capacity, int) and capacity < 0:
        raise ConfigurationError("Capacity must not be negative", context={"capacity": capacity})

    try:
        return int(_byte_size_adapter.validate_python(capacity))
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Invalid capacity",
            context={"capacity": capacity, "reason": e.errors()[0]["msg"]},
        ) from e
