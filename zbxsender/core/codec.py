"""Trapper protocol framing: request encoding and response decoding.

Frame layout (both directions)::

    "ZBXD" 0x01 | body length, u64 little-endian | JSON body

The server's JSON parser is not a general one: the body must be compact
(no whitespace after ":" or ",") and "request" must come before "data".
"""

import json
import logging
import re
import struct
import time
from datetime import datetime

from pydantic import BaseModel, ConfigDict, ValidationError

from zbxsender.core.errors import BadHeaderError, DecodeError, EncodeError, FrameTooLargeError
from zbxsender.core.values import split_timestamp
from zbxsender.ports.records import MetricBatch, MetricRecord, ServerResponse

__all__ = [
    "HEADER",
    "HEADER_SIZE",
    "LENGTH_SIZE",
    "MAX_BODY_SIZE",
    "decode_header",
    "decode_length",
    "decode_response",
    "encode_request",
    "parse_info",
]

logger = logging.getLogger(__name__)

HEADER = b"ZBXD\x01"
HEADER_SIZE = len(HEADER)
LENGTH_SIZE = 8
# Same limit the server applies to data it receives (1 GiB)
MAX_BODY_SIZE = 1 << 30

_LENGTH = struct.Struct("<Q")
_SENDER_DATA = "sender data"

# Historical formats: "Processed 2 Failed 1 Total 3 Seconds spent 0.000034"
# and "processed: 2; failed: 1; total: 3; seconds spent: 0.000034".
_COUNTS_PATTERN = re.compile(r"processed:?\s*(\d+);?\s*failed:?\s*(\d+)", re.IGNORECASE)
_TOTAL_PATTERN = re.compile(r"total:?\s*(\d+)", re.IGNORECASE)
_SECONDS_PATTERN = re.compile(r"seconds spent:?\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


class _Acknowledgement(BaseModel):
    """Server reply body; fields the server adds later are ignored."""

    model_config = ConfigDict(extra="ignore")

    response: str
    info: str | None = ""


def _record_to_dict(record: MetricRecord) -> dict[str, object]:
    if not isinstance(record.value, str):
        raise EncodeError(f"value of {record.key!r} is not a string; use convert_value()")
    item: dict[str, object] = {"host": record.host, "key": record.key}
    if record.timestamp:
        item["clock"] = record.timestamp
    if record.timestamp_ns:
        item["ns"] = record.timestamp_ns
    item["value"] = record.value
    return item


def _now() -> tuple[int, int]:
    seconds, ns = divmod(time.time_ns(), 1_000_000_000)
    return seconds, ns


def encode_request(
    batch: MetricBatch,
    now: datetime | None = None,
    *,
    nanoseconds: bool = True,
) -> bytes:
    """Encode a batch into a complete request frame.

    Args:
        batch: Records to send, serialized in order.
        now: Time stamped as the request clock; defaults to the wall clock.
        nanoseconds: Append the top-level "ns" field after "clock".

    Returns:
        Header, length and compact JSON body.

    Raises:
        EncodeError: If the batch cannot be serialized.
    """
    clock, ns = _now() if now is None else split_timestamp(now)

    envelope: dict[str, object] = {
        "request": _SENDER_DATA,
        "data": [_record_to_dict(r) for r in batch],
        "clock": clock,
    }
    if nanoseconds:
        envelope["ns"] = ns

    try:
        body = json.dumps(envelope, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode(
            "utf-8"
        )
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Cannot serialize batch: {e}") from e

    # Allocated once at its final size, then filled in place
    frame = bytearray(HEADER_SIZE + LENGTH_SIZE + len(body))
    frame[:HEADER_SIZE] = HEADER
    _LENGTH.pack_into(frame, HEADER_SIZE, len(body))
    frame[HEADER_SIZE + LENGTH_SIZE :] = body
    return bytes(frame)


def decode_header(prefix: bytes) -> None:
    """Check the 5-byte frame prefix.

    Raises:
        BadHeaderError: If prefix is not the protocol magic and version.
    """
    if prefix != HEADER:
        raise BadHeaderError(prefix)


def decode_length(raw: bytes, limit: int = MAX_BODY_SIZE) -> int:
    """Return the body length stored in the 8-byte length field.

    Raises:
        FrameTooLargeError: If the length exceeds limit.
    """
    length = _LENGTH.unpack(raw)[0]
    if length > limit:
        raise FrameTooLargeError(length, limit)
    return length


def parse_info(info: str) -> dict[str, int | float]:
    """Extract counters from the server's info text.

    Best effort only: anything that does not match is left out and never
    raises.

    Args:
        info: Free text such as "Processed 2; Failed 0; Total 2; ...".

    Returns:
        Any of processed, failed, total, seconds_spent that were found.
    """
    found: dict[str, int | float] = {}
    counts = _COUNTS_PATTERN.search(info)
    if counts is None:
        logger.debug(f"No counters in server info: {info!r}")
        return found
    found["processed"] = int(counts.group(1))
    found["failed"] = int(counts.group(2))

    total = _TOTAL_PATTERN.search(info, counts.end())
    if total is not None:
        found["total"] = int(total.group(1))
    seconds = _SECONDS_PATTERN.search(info, counts.end())
    if seconds is not None:
        found["seconds_spent"] = float(seconds.group(1))
    return found


def decode_response(body: bytes) -> ServerResponse:
    """Decode a response body into a ServerResponse.

    Args:
        body: JSON body, header and length already stripped.

    Returns:
        The acknowledgement with counters parsed from info.

    Raises:
        DecodeError: If body is not valid JSON or lacks "response".
    """
    try:
        ack = _Acknowledgement.model_validate_json(body)
    except ValidationError as e:
        raise DecodeError(f"Invalid server response: {e}") from e

    info = ack.info or ""
    return ServerResponse(status=ack.response, info=info, **parse_info(info))
