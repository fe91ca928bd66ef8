"""Record port definitions (DTOs exchanged between core and transport)."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

__all__ = ["MetricBatch", "MetricRecord", "ServerResponse"]


@dataclass(slots=True, frozen=True)
class MetricRecord:
    """One observation pushed to a trapper item.

    Attributes:
        host: Host name as configured on the server.
        key: Item key on that host.
        value: Value already converted to its wire string (see convert_value).
        timestamp: Unix seconds; 0 means "let the server stamp it".
        timestamp_ns: Nanosecond part of the timestamp; 0 is omitted.
    """

    host: str
    key: str
    value: str
    timestamp: int = 0
    timestamp_ns: int = 0


MetricBatch = Sequence[MetricRecord]


@dataclass(slots=True, frozen=True)
class ServerResponse:
    """Decoded server acknowledgement.

    Only status and info are sent by the server. The counters are parsed
    out of info on a best-effort basis and stay 0 when it does not match.

    Attributes:
        status: Server verdict, "success" when the batch was accepted.
        info: Free-text diagnostic.
        processed: Items the server processed.
        failed: Items the server rejected.
        total: Items the server received.
        seconds_spent: Server-side processing time.
    """

    status: str
    info: str = ""
    processed: int = 0
    failed: int = 0
    total: int = 0
    seconds_spent: float = 0.0
