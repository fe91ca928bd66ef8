"""Configuration loading from environment variables."""

import logging
import os
import socket
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from zbxsender.ports.settings import SenderSettingsPort, TlsPort

__all__ = ["Settings", "load_settings", "resolve_hostname"]

logger = logging.getLogger(__name__)

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def resolve_hostname(hostname: str | None = None) -> str:
    """Return hostname, falling back to the local host name.

    Args:
        hostname: Explicit host name; empty or None means "ask the OS".

    Returns:
        A non-empty host name.

    Raises:
        RuntimeError: If no host name can be obtained.
    """
    if hostname:
        return hostname
    try:
        found = socket.gethostname()
    except OSError as e:
        raise RuntimeError(f"Cannot determine local host name: {e}") from e
    if not found:
        raise RuntimeError("Cannot determine local host name: OS returned an empty name")
    return found


class Settings(BaseModel):
    """Runtime configuration for the sender.

    Attributes:
        server: Server host name or address.
        port: Server trapper port.
        hostname: Host name stamped on records (defaults to the local one).
        nanoseconds: Send the top-level "ns" field.
        timeout_sec: Optional deadline for one exchange.
        tls_cert_file: Client certificate path.
        tls_key_file: Private key path.
        tls_ca_file: CA bundle path.
        tls_server_name: Expected server name (unset disables verification).
    """

    server: str = Field(..., description="Server host name or address.")
    port: int = Field(default=10051, ge=1, le=65535, description="Server trapper port.")
    hostname: str | None = Field(default=None, description="Host name stamped on records.")
    nanoseconds: bool = Field(default=True, description="Send nanosecond request clock.")
    timeout_sec: float | None = Field(default=None, gt=0, description="Exchange deadline in seconds.")
    tls_cert_file: str | None = None
    tls_key_file: str | None = None
    tls_ca_file: str | None = None
    tls_server_name: str | None = None

    @field_validator("server")
    @classmethod
    def validate_server(cls, v: str) -> str:
        """Validate that the server address is not blank.

        Raises:
            ValueError: If the address is empty.
        """
        if not v.strip():
            raise ValueError("Server address must not be empty")
        return v.strip()

    @field_validator("tls_cert_file", "tls_key_file", "tls_ca_file")
    @classmethod
    def validate_tls_file(cls, v: str | None) -> str | None:
        """Validate that a configured TLS file exists.

        Raises:
            ValueError: If the path does not point to a file.
        """
        if v is not None and not Path(v).is_file():
            raise ValueError(f"TLS file not found: {v}")
        return v

    @model_validator(mode="after")
    def validate_tls_complete(self) -> "Settings":
        """Require certificate, key and CA bundle together.

        Raises:
            ValueError: If only some of the TLS paths are set.
        """
        paths = (self.tls_cert_file, self.tls_key_file, self.tls_ca_file)
        if any(paths) and not all(paths):
            raise ValueError("TLS requires certificate, key and CA files together")
        return self

    def tls(self) -> TlsPort | None:
        """Return the TLS material, or None for plain TCP."""
        if self.tls_cert_file is None or self.tls_key_file is None or self.tls_ca_file is None:
            return None
        return TlsPort(
            cert_file=self.tls_cert_file,
            key_file=self.tls_key_file,
            ca_file=self.tls_ca_file,
            server_name=self.tls_server_name,
        )

    def to_port(self) -> SenderSettingsPort:
        """Wrap settings into the transport port, resolving the host name."""
        return SenderSettingsPort(
            server=self.server,
            port=self.port,
            hostname=resolve_hostname(self.hostname),
            nanoseconds=self.nanoseconds,
            timeout_sec=self.timeout_sec,
            tls=self.tls(),
        )


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise RuntimeError(f"{name} must be a boolean (got: {raw})")


def load_settings() -> Settings:
    """Load and validate settings from the environment (and a .env file).

    Required environment variables:
    - ZABBIX_SERVER: Server host name or address.

    Optional:
    - ZABBIX_PORT: Trapper port (default 10051).
    - ZABBIX_HOSTNAME: Host name for records (default: local host name).
    - ZABBIX_NANOSECONDS: Send nanosecond clock (default true).
    - ZABBIX_TIMEOUT: Exchange deadline in seconds.
    - ZABBIX_TLS_CERT_FILE, ZABBIX_TLS_KEY_FILE, ZABBIX_TLS_CA_FILE,
      ZABBIX_TLS_SERVER_NAME: Certificate-based TLS.

    Returns:
        Validated Settings object.

    Raises:
        RuntimeError: If required env vars are missing or not parseable.
        ValueError: If configuration is invalid.
    """
    load_dotenv()

    try:
        server = os.environ["ZABBIX_SERVER"]
    except KeyError as e:
        raise RuntimeError(f"Missing required environment variable: {e.args[0]}") from e

    port_raw = os.getenv("ZABBIX_PORT", "10051")
    try:
        port = int(port_raw)
    except ValueError as e:
        raise RuntimeError(f"ZABBIX_PORT must be an integer (got: {port_raw})") from e

    timeout_raw = os.getenv("ZABBIX_TIMEOUT")
    try:
        timeout_sec = float(timeout_raw) if timeout_raw else None
    except ValueError as e:
        raise RuntimeError(f"ZABBIX_TIMEOUT must be a number (got: {timeout_raw})") from e

    settings = Settings(
        server=server,
        port=port,
        hostname=os.getenv("ZABBIX_HOSTNAME") or None,
        nanoseconds=_parse_bool("ZABBIX_NANOSECONDS", os.getenv("ZABBIX_NANOSECONDS", "true")),
        timeout_sec=timeout_sec,
        tls_cert_file=os.getenv("ZABBIX_TLS_CERT_FILE") or None,
        tls_key_file=os.getenv("ZABBIX_TLS_KEY_FILE") or None,
        tls_ca_file=os.getenv("ZABBIX_TLS_CA_FILE") or None,
        tls_server_name=os.getenv("ZABBIX_TLS_SERVER_NAME") or None,
    )

    logger.info(
        f"Sender configured: server={settings.server}:{settings.port}, "
        f"hostname={settings.hostname or '<local>'}, "
        f"tls={'on' if settings.tls_cert_file else 'off'}, "
        f"timeout={settings.timeout_sec or '<none>'}"
    )

    return settings
