"""Conversion of typed values to the trapper wire string."""

from __future__ import annotations

import math
import struct
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union

from zbxsender.core.errors import ValueConversionError
from zbxsender.ports.records import MetricRecord

__all__ = ["Float32", "NIL", "ScalarValue", "convert_value", "make_records", "split_timestamp"]

NIL = "<nil>"


@dataclass(slots=True, frozen=True)
class Float32:
    """A single-precision float.

    The value is narrowed to IEEE binary32 before formatting, so it renders
    the same way a 32-bit float from another producer would.
    """

    value: float

    def narrowed(self) -> float:
        return struct.unpack("<f", struct.pack("<f", self.value))[0]


ScalarValue = Union[float, Float32, int, str, Decimal, BaseException, None]


def convert_value(value: ScalarValue) -> str:
    """Convert a value to the format accepted by the server.

    Floats use six decimals ("%.6f"), bools render as "true"/"false", errors
    render as their message, None renders as "<nil>", and ints, strings and
    decimals use str().

    The server accepts only non-negative integers as literal text, so pass
    negative numbers as floats.

    Args:
        value: Value to convert.

    Returns:
        The wire string.

    Raises:
        ValueConversionError: If the value type has no wire representation.
    """
    if value is None:
        return NIL
    if isinstance(value, Float32):
        return f"{value.narrowed():.6f}"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:.6f}"
    if isinstance(value, (int, str, Decimal, BaseException)):
        return str(value)
    raise ValueConversionError(f"unsupported value type: {type(value).__name__}")


def make_records(
    kv: Mapping[str, ScalarValue],
    hostname: str,
    timestamp: datetime | None = None,
) -> list[MetricRecord]:
    """Convert key/value pairs to records using convert_value().

    Every record gets the same host. Without a timestamp the clock fields are
    left at 0 and omitted from the wire, so the server stamps the values.

    Args:
        kv: Item keys mapped to typed values.
        hostname: Host the items belong to.
        timestamp: Optional time of the observation.

    Returns:
        Records in the iteration order of kv.
    """
    clock, ns = (0, 0) if timestamp is None else split_timestamp(timestamp)
    return [MetricRecord(hostname, key, convert_value(value), clock, ns) for key, value in kv.items()]


def split_timestamp(moment: datetime) -> tuple[int, int]:
    """Split a datetime into Unix seconds and nanoseconds."""
    seconds = math.floor(moment.timestamp())
    return seconds, moment.microsecond * 1_000
