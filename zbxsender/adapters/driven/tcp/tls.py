"""TLS context construction for certificate-based trapper connections."""

import logging
import ssl

from zbxsender.core.errors import TlsConfigError
from zbxsender.ports.settings import TlsPort

__all__ = ["build_ssl_context"]

logger = logging.getLogger(__name__)


def build_ssl_context(tls: TlsPort) -> ssl.SSLContext:
    """Load TLS material into a client-side SSL context.

    Everything is read from disk here, so a broken certificate, key or CA
    bundle fails before any connection is attempted.

    Args:
        tls: Certificate, key and CA paths plus the expected server name.

    Returns:
        Context presenting the client certificate.

    Raises:
        TlsConfigError: If any file cannot be loaded.
    """
    try:
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=tls.ca_file)
        context.load_cert_chain(certfile=tls.cert_file, keyfile=tls.key_file)
    except (OSError, ssl.SSLError) as e:
        raise TlsConfigError(f"Cannot load TLS material: {e}") from e

    if tls.server_name is None:
        logger.warning(
            "TLS server name not configured: server certificate will NOT be verified. "
            "This is insecure; set a server name in production."
        )
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    return context
