"""Settings port definition (DTO)."""

from dataclasses import dataclass

__all__ = ["SenderSettingsPort", "TlsPort"]


@dataclass(frozen=True)
class TlsPort:
    """Paths to the TLS material used for certificate-based connections.

    Attributes:
        cert_file: Client certificate (PEM).
        key_file: Private key matching cert_file (PEM).
        ca_file: CA bundle used to verify the server.
        server_name: Expected server name; None disables server verification.
    """

    cert_file: str
    key_file: str
    ca_file: str
    server_name: str | None = None


@dataclass
class SenderSettingsPort:
    """Runtime settings for the trapper transport.

    Decouples the transport from concrete configuration sources, enabling
    easy testing and implementation swapping.

    Attributes:
        server: Server host name or address.
        port: Server trapper port.
        hostname: Host name stamped on records built by make_records().
        nanoseconds: Whether to send the top-level "ns" field.
        timeout_sec: Deadline for one whole exchange; None means no deadline.
        tls: TLS material; None means plain TCP.
    """

    server: str
    port: int
    hostname: str
    nanoseconds: bool = True
    timeout_sec: float | None = None
    tls: TlsPort | None = None
