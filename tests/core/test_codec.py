"""Tests for request encoding and response decoding."""

import json
import struct
import sys
from datetime import datetime, timezone

import pytest

from zbxsender.core.codec import (
    HEADER,
    MAX_BODY_SIZE,
    decode_header,
    decode_length,
    decode_response,
    encode_request,
    parse_info,
)
from zbxsender.core.errors import (
    BadHeaderError,
    DecodeError,
    EncodeError,
    FrameTooLargeError,
    ProtocolError,
)
from zbxsender.ports.records import MetricRecord

__all__ = []

NOW = datetime(2024, 1, 2, 3, 4, 5, 678_000, tzinfo=timezone.utc)
NOW_SEC = 1704164645


def make_batch(size: int) -> list[MetricRecord]:
    """Build a batch of distinct records.

    Args:
        size: Number of records.

    Returns:
        Records with keys item0..item{size-1}.
    """
    return [MetricRecord("localhost", f"item{i}", str(i * 1.5)) for i in range(size)]


def test_encode_request_exact_bytes() -> None:
    """Encoded frame should match the documented layout byte for byte."""
    batch = [
        MetricRecord("localhost", "rpm", "42.120000"),
        MetricRecord("localhost", "errors", "1", timestamp=1700000000, timestamp_ns=5),
    ]
    body = (
        '{"request":"sender data","data":['
        '{"host":"localhost","key":"rpm","value":"42.120000"},'
        '{"host":"localhost","key":"errors","clock":1700000000,"ns":5,"value":"1"}'
        f'],"clock":{NOW_SEC},"ns":678000000}}'
    ).encode()

    assert encode_request(batch, NOW) == HEADER + struct.pack("<Q", len(body)) + body


def test_encode_request_without_nanoseconds() -> None:
    """Without nanosecond support the body should end right after clock."""
    frame = encode_request(make_batch(1), NOW, nanoseconds=False)

    assert frame.endswith(f',"clock":{NOW_SEC}}}'.encode())
    assert b'"ns"' not in frame


def test_encode_request_buffer_has_no_slack() -> None:
    """The frame should occupy exactly header, length and body, nothing more."""
    batch = make_batch(3)
    envelope = {
        "request": "sender data",
        "data": [{"host": r.host, "key": r.key, "value": r.value} for r in batch],
        "clock": NOW_SEC,
        "ns": 678_000_000,
    }
    body = json.dumps(envelope, separators=(",", ":")).encode()

    frame = encode_request(batch, NOW)

    assert isinstance(frame, bytes)
    assert len(frame) == 5 + 8 + len(body)
    assert sys.getsizeof(frame) == sys.getsizeof(b"") + len(frame)


@pytest.mark.parametrize("size", [0, 1, 7])
def test_encode_request_framing_invariants(size: int) -> None:
    """Header, length and compactness should hold for any batch size."""
    frame = encode_request(make_batch(size), NOW)

    assert frame[:5] == b"ZBXD\x01"
    assert decode_length(frame[5:13]) == len(frame) - 13

    body = frame[13:].decode()
    assert body.startswith('{"request":"sender data","data":[')
    assert ": " not in body
    assert ", " not in body


@pytest.mark.parametrize("size", [0, 1, 7])
def test_encode_request_preserves_records(size: int) -> None:
    """Decoding the body should give back host, key and value in order."""
    batch = make_batch(size)

    data = json.loads(encode_request(batch, NOW)[13:])["data"]

    assert [(d["host"], d["key"], d["value"]) for d in data] == [(r.host, r.key, r.value) for r in batch]


def test_encode_request_omits_zero_clock() -> None:
    """A record without timestamp should have no clock key at all."""
    frame = encode_request([MetricRecord("h", "k", "v")], NOW)

    (item,) = json.loads(frame[13:])["data"]
    assert item == {"host": "h", "key": "k", "value": "v"}


def test_encode_request_top_level_key_order() -> None:
    """request must come before data, with clock and ns after it."""
    envelope = json.loads(encode_request(make_batch(2), NOW)[13:])

    assert list(envelope) == ["request", "data", "clock", "ns"]
    assert envelope["clock"] == NOW_SEC


def test_encode_request_keeps_non_ascii_as_utf8() -> None:
    """Non-ASCII values should be counted in bytes, not characters."""
    frame = encode_request([MetricRecord("h", "k", "température")], NOW)

    assert "température".encode() in frame
    assert decode_length(frame[5:13]) == len(frame) - 13


def test_encode_request_defaults_to_wall_clock() -> None:
    """Without an explicit now, the current time should be stamped."""
    before = int(datetime.now(timezone.utc).timestamp())

    envelope = json.loads(encode_request([], None)[13:])

    assert envelope["clock"] >= before
    assert 0 <= envelope["ns"] < 1_000_000_000


def test_encode_request_rejects_unconverted_values() -> None:
    """Values must be strings before they reach the encoder."""
    with pytest.raises(EncodeError, match="not a string"):
        encode_request([MetricRecord("h", "k", 42)], NOW)  # type: ignore[arg-type]


def test_decode_header_accepts_magic() -> None:
    """The protocol magic should pass validation."""
    decode_header(b"ZBXD\x01")


@pytest.mark.parametrize("prefix", [b"HTTP/", b"ZBXD\x02", b"\x00\x00\x00\x00\x00"])
def test_decode_header_rejects_other_bytes(prefix: bytes) -> None:
    """Any other prefix should raise the protocol error kind."""
    with pytest.raises(BadHeaderError) as info:
        decode_header(prefix)

    assert isinstance(info.value, ProtocolError)
    assert info.value.received == prefix


def test_decode_response_with_counters() -> None:
    """Counters should be parsed out of the info text."""
    body = b'{"response":"success","info":"Processed 2 Failed 1 Total 3 Seconds spent 0.000034"}'

    response = decode_response(body)

    assert response.status == "success"
    assert response.processed == 2
    assert response.failed == 1
    assert response.total == 3
    assert response.seconds_spent == pytest.approx(0.000034)


def test_decode_response_with_colon_format() -> None:
    """The lower-case colon/semicolon format should parse the same way."""
    body = b'{"response":"success","info":"processed: 5; failed: 0; total: 5; seconds spent: 0.000100"}'

    response = decode_response(body)

    assert (response.processed, response.failed, response.total) == (5, 0, 5)


def test_decode_response_without_counters() -> None:
    """Unparseable info should leave counters at zero and still succeed."""
    response = decode_response(b'{"response":"failed","info":"no idea"}')

    assert response.status == "failed"
    assert response.info == "no idea"
    assert response.processed == 0
    assert response.failed == 0


def test_decode_response_ignores_unknown_fields() -> None:
    """Extra fields sent by newer servers should be ignored."""
    response = decode_response(b'{"response":"success","info":"","version":"7.0","extra":[1]}')

    assert response.status == "success"


@pytest.mark.parametrize("body", [b"not json", b'{"info":"Processed 1 Failed 0"}', b"[]", b""])
def test_decode_response_rejects_malformed_body(body: bytes) -> None:
    """Malformed bodies should raise DecodeError."""
    with pytest.raises(DecodeError):
        decode_response(body)


def test_parse_info_is_best_effort() -> None:
    """parse_info should return only what it found."""
    assert parse_info("Processed 1; Failed 2") == {"processed": 1, "failed": 2}
    assert parse_info("") == {}


def test_decode_response_treats_null_info_as_empty() -> None:
    """A null info should decode as empty text with zero counters."""
    response = decode_response(b'{"response":"success","info":null}')

    assert response.status == "success"
    assert response.info == ""
    assert response.processed == 0


def test_decode_length_accepts_limit() -> None:
    """A length equal to the limit should be accepted."""
    assert decode_length(struct.pack("<Q", MAX_BODY_SIZE)) == MAX_BODY_SIZE


def test_decode_length_rejects_oversized_body() -> None:
    """An announced length over the limit should raise a protocol error."""
    with pytest.raises(FrameTooLargeError) as info:
        decode_length(struct.pack("<Q", 2**64 - 1))

    assert isinstance(info.value, ProtocolError)
    assert info.value.limit == MAX_BODY_SIZE


def test_decode_length_honours_custom_limit() -> None:
    """Callers may pass a tighter limit."""
    with pytest.raises(FrameTooLargeError):
        decode_length(struct.pack("<Q", 65), limit=64)
