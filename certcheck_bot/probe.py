"""
TLS certificate probe for SSL Certificate Checker.

Reads the expiry of whatever leaf certificate a server presents. Chain trust
is deliberately not validated: the probe only needs the ``notAfter`` field,
including for self-signed, expired or mismatched certificates.
"""

import socket
import ssl
from abc import ABC, abstractmethod
from datetime import datetime

from cryptography import x509

from certcheck_bot.errors import ConnectFailed, NoCertificate
from certcheck_bot.logger import get_logger

DEFAULT_PORT = 443
DEFAULT_TIMEOUT = 10.0


class CertificateProbe(ABC):
    """Capability that returns the expiry instant of a domain's leaf certificate."""

    @abstractmethod
    def fetch_expiry(self, domain: str) -> datetime:
        """
        Fetch the leaf certificate expiry for a domain.

        Args:
            domain: Host name to probe

        Returns:
            Timezone-aware UTC ``notAfter`` of the presented certificate

        Raises:
            ConnectFailed: Network or handshake failure
            NoCertificate: No peer certificate was presented
        """


class TLSCertificateProbe(CertificateProbe):
    """Probe that performs a real TLS handshake against ``domain:port``."""

    def __init__(self, port: int = DEFAULT_PORT, timeout: float = DEFAULT_TIMEOUT):
        self.port = port
        self.timeout = timeout
        self.logger = get_logger("probe")

    def _make_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        # Reading notAfter only, not establishing trust.
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    def fetch_leaf_certificate(self, domain: str) -> bytes:
        """Return the DER bytes of the peer's leaf certificate."""
        context = self._make_context()
        try:
            with socket.create_connection((domain, self.port), timeout=self.timeout) as sock:
                with context.wrap_socket(sock, server_hostname=domain) as tls_sock:
                    der_cert = tls_sock.getpeercert(binary_form=True)
        except (OSError, ssl.SSLError) as e:
            raise ConnectFailed(domain, f"failed to connect: {e}") from e

        if not der_cert:
            raise NoCertificate(domain, "no peer certificate presented")
        return der_cert

    def fetch_expiry(self, domain: str) -> datetime:
        der_cert = self.fetch_leaf_certificate(domain)
        try:
            cert = x509.load_der_x509_certificate(der_cert)
        except ValueError as e:
            raise NoCertificate(domain, f"unreadable peer certificate: {e}") from e

        not_after = cert.not_valid_after_utc
        self.logger.debug(f"Certificate for {domain} expires at {not_after.isoformat()}")
        return not_after
