"""Trapper client adapter: one request/response exchange per connection."""

import asyncio
import logging
import ssl
from collections.abc import Awaitable
from datetime import datetime
from types import TracebackType

from zbxsender.adapters.driven.tcp.tls import build_ssl_context
from zbxsender.core.codec import (
    HEADER_SIZE,
    LENGTH_SIZE,
    decode_header,
    decode_length,
    decode_response,
    encode_request,
)
from zbxsender.core.errors import (
    SenderConnectionError,
    SenderError,
    SenderIOError,
    SenderTimeoutError,
    ShortWriteError,
)
from zbxsender.ports.records import MetricBatch, ServerResponse
from zbxsender.ports.settings import SenderSettingsPort, TlsPort

__all__ = ["DEFAULT_PORT", "TrapperClient", "TrapperSession", "exchange", "send_metrics"]

logger = logging.getLogger(__name__)

DEFAULT_PORT = 10051

Connection = tuple[asyncio.StreamReader, asyncio.StreamWriter]


async def write_request(writer: asyncio.StreamWriter, request: bytes) -> None:
    """Write a request frame and wait until all of it left the process.

    Raises:
        SenderIOError: If the connection fails while writing.
        ShortWriteError: If bytes are still buffered once writing stopped.
    """
    # Make drain() wait for an empty buffer instead of the high-water mark
    writer.transport.set_write_buffer_limits(high=0)
    try:
        writer.write(request)
        await writer.drain()
    except OSError as e:
        raise SenderIOError(f"Write failed: {e}") from e

    unsent = writer.transport.get_write_buffer_size()
    if unsent:
        raise ShortWriteError(written=len(request) - unsent, expected=len(request))


async def read_response(reader: asyncio.StreamReader) -> ServerResponse:
    """Read one response frame and decode it.

    Raises:
        BadHeaderError: If the frame does not start with the protocol magic.
        FrameTooLargeError: If the announced body length is over the limit.
        SenderIOError: If the connection fails or closes mid-frame.
        DecodeError: If the body is not a valid acknowledgement.
    """
    try:
        decode_header(await reader.readexactly(HEADER_SIZE))
        length = decode_length(await reader.readexactly(LENGTH_SIZE))
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise SenderIOError(
            f"Connection closed after {len(e.partial)} of {e.expected} bytes"
        ) from e
    except OSError as e:
        raise SenderIOError(f"Read failed: {e}") from e

    return decode_response(body)


async def exchange(reader: asyncio.StreamReader, writer: asyncio.StreamWriter, request: bytes) -> ServerResponse:
    """Send one encoded request and return the decoded response."""
    await write_request(writer, request)
    return await read_response(reader)


async def close_connection(writer: asyncio.StreamWriter) -> None:
    """Close a connection; errors while closing are logged, not raised."""
    writer.close()
    try:
        await writer.wait_closed()
    except OSError as e:
        logger.debug(f"Error while closing connection: {e}")


class TrapperClient:
    """Trapper protocol client.

    Features:
    - Fresh connection per send, closed on every exit path.
    - Optional TLS with client certificate.
    - Optional deadline for the whole exchange.

    No retries: every error is raised to the caller.
    """

    def __init__(
        self,
        server: str,
        port: int = DEFAULT_PORT,
        *,
        tls: TlsPort | None = None,
        nanoseconds: bool = True,
        timeout_sec: float | None = None,
    ) -> None:
        """Initialize trapper client.

        Args:
            server: Server host name or address.
            port: Server trapper port.
            tls: TLS material; None means plain TCP.
            nanoseconds: Send the top-level "ns" field with each request.
            timeout_sec: Deadline for one whole exchange; None means none.

        Raises:
            TlsConfigError: If the TLS material cannot be loaded.
        """
        self.server = server
        self.port = port
        self.nanoseconds = nanoseconds
        self.timeout_sec = timeout_sec
        self.server_name = tls.server_name if tls else None
        self.ssl_context: ssl.SSLContext | None = build_ssl_context(tls) if tls else None

    @classmethod
    def from_settings(cls, settings: SenderSettingsPort) -> "TrapperClient":
        """Build a client from runtime settings."""
        return cls(
            settings.server,
            settings.port,
            tls=settings.tls,
            nanoseconds=settings.nanoseconds,
            timeout_sec=settings.timeout_sec,
        )

    async def dial(self) -> Connection:
        """Open a connection to the server.

        Raises:
            SenderConnectionError: If resolving, connecting or the TLS
                handshake fails.
        """
        logger.debug(f"Connecting to {self.server}:{self.port} (tls={self.ssl_context is not None})")
        try:
            return await asyncio.open_connection(
                self.server,
                self.port,
                ssl=self.ssl_context,
                server_hostname=self.server_name,
            )
        except OSError as e:
            raise SenderConnectionError(f"Cannot connect to {self.server}:{self.port}: {e}") from e

    async def run(self, operation: Awaitable[ServerResponse]) -> ServerResponse:
        """Await one exchange under the deadline and log its outcome."""
        try:
            response = await asyncio.wait_for(operation, timeout=self.timeout_sec)
        except asyncio.TimeoutError as e:
            logger.warning(f"Exchange with {self.server}:{self.port} timed out after {self.timeout_sec}s")
            raise SenderTimeoutError(f"No response from {self.server}:{self.port} within {self.timeout_sec}s") from e
        except SenderError as e:
            logger.warning(f"Exchange with {self.server}:{self.port} failed: {e}")
            raise

        logger.info(
            f"Server replied {response.status!r}: processed={response.processed}, "
            f"failed={response.failed} ({response.info})"
        )
        return response

    async def _dial_and_exchange(self, request: bytes) -> ServerResponse:
        reader, writer = await self.dial()
        try:
            return await exchange(reader, writer, request)
        finally:
            await close_connection(writer)

    async def send(self, batch: MetricBatch, now: datetime | None = None) -> ServerResponse:
        """Send a batch over a fresh connection.

        Args:
            batch: Records to send.
            now: Request clock; defaults to the wall clock.

        Returns:
            The server acknowledgement.

        Raises:
            EncodeError: If the batch cannot be serialized.
            SenderConnectionError: If the server cannot be reached.
            SenderIOError: If the exchange fails midway or times out.
            BadHeaderError: If the peer does not speak the trapper protocol.
            DecodeError: If the response is malformed.
        """
        request = encode_request(batch, now, nanoseconds=self.nanoseconds)
        return await self.run(self._dial_and_exchange(request))


class TrapperSession:
    """Keeps one connection open across sends.

    Every operation holds the session lock for its whole duration, so
    concurrent callers never interleave frames on the socket. A send that
    fails or is cancelled closes the connection, since a reply may still be
    in flight; call open() again to reuse the session.
    """

    def __init__(self, client: TrapperClient) -> None:
        self.client = client
        self._lock = asyncio.Lock()
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    async def __aenter__(self) -> "TrapperSession":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def open(self) -> None:
        async with self._lock:
            if self._writer is None:
                self._reader, self._writer = await self.client.dial()

    async def close(self) -> None:
        async with self._lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        writer, self._reader, self._writer = self._writer, None, None
        if writer is not None:
            await close_connection(writer)

    async def send(self, batch: MetricBatch, now: datetime | None = None) -> ServerResponse:
        """Send a batch over the session connection.

        Raises:
            SenderConnectionError: If the session is not open.
            SenderError: Any exchange error; the connection is closed first.
        """
        request = encode_request(batch, now, nanoseconds=self.client.nanoseconds)
        async with self._lock:
            if self._reader is None or self._writer is None:
                raise SenderConnectionError("Session not open; use 'async with' context manager")
            try:
                return await self.client.run(exchange(self._reader, self._writer, request))
            except BaseException:
                # Covers cancellation too: an unread reply must not reach the next send
                await self._close_locked()
                raise


def send_metrics(
    server: str,
    batch: MetricBatch,
    port: int = DEFAULT_PORT,
    *,
    now: datetime | None = None,
    **options: object,
) -> ServerResponse:
    """Blocking one-shot send for callers without an event loop.

    Args:
        server: Server host name or address.
        batch: Records to send.
        port: Server trapper port.
        now: Request clock; defaults to the wall clock.
        **options: Keyword options of TrapperClient.

    Returns:
        The server acknowledgement.
    """
    client = TrapperClient(server, port, **options)  # type: ignore[arg-type]
    return asyncio.run(client.send(batch, now))
