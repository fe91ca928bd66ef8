"""Exception hierarchy for the trapper client."""

__all__ = [
    "BadHeaderError",
    "DecodeError",
    "EncodeError",
    "FrameTooLargeError",
    "ProtocolError",
    "SenderConnectionError",
    "SenderError",
    "SenderIOError",
    "SenderTimeoutError",
    "ShortWriteError",
    "TlsConfigError",
    "ValueConversionError",
]


class SenderError(Exception):
    """Base class for every error raised by this package."""


class EncodeError(SenderError, ValueError):
    """The record batch could not be serialized."""


class ValueConversionError(SenderError, TypeError):
    """A value has no wire representation."""


class SenderConnectionError(SenderError):
    """Resolving, dialing or the TLS handshake failed."""


class TlsConfigError(SenderError, ValueError):
    """TLS certificate, key or CA bundle could not be loaded."""


class SenderIOError(SenderError):
    """Reading from or writing to an open connection failed."""


class ShortWriteError(SenderIOError):
    """The connection accepted fewer bytes than the request holds."""

    def __init__(self, written: int, expected: int) -> None:
        super().__init__(f"short write: {written} of {expected} bytes sent")
        self.written = written
        self.expected = expected


class SenderTimeoutError(SenderIOError):
    """The exchange did not finish before its deadline."""


class ProtocolError(SenderError):
    """The peer does not speak the trapper protocol."""


class BadHeaderError(ProtocolError):
    """Response did not start with the protocol magic and version."""

    def __init__(self, received: bytes) -> None:
        super().__init__(f"bad header: {received!r}")
        self.received = received


class FrameTooLargeError(ProtocolError):
    """Response announced a body larger than the client accepts."""

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(f"announced body of {length} bytes exceeds limit of {limit}")
        self.length = length
        self.limit = limit


class DecodeError(SenderError, ValueError):
    """Response body is not a valid acknowledgement."""
