"""
Tests for the TLS certificate probe.
"""

import socket
import ssl
import threading
from datetime import datetime, timezone

import pytest
from conftest import generate_self_signed

from certcheck_bot.errors import ConnectFailed
from certcheck_bot.probe import TLSCertificateProbe

NOT_AFTER = datetime(2030, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def tls_server(tmp_path):
    """Local TLS server presenting a self-signed certificate."""
    cert_path, key_path = generate_self_signed(tmp_path, NOT_AFTER)
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(cert_path, key_path)

    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(5)
    listener.settimeout(0.2)
    stop = threading.Event()

    def serve():
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            try:
                conn.settimeout(5)
                with context.wrap_socket(conn, server_side=True):
                    pass
            except OSError:
                conn.close()

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    yield listener.getsockname()[1]

    stop.set()
    thread.join(timeout=5)
    listener.close()


@pytest.fixture
def unused_port():
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestTLSCertificateProbe:
    """Tests for TLSCertificateProbe."""

    def test_reads_self_signed_expiry(self, tls_server):
        """Test that the expiry of an untrusted certificate is returned."""
        probe = TLSCertificateProbe(port=tls_server, timeout=5)

        not_after = probe.fetch_expiry("localhost")

        assert not_after == NOT_AFTER
        assert not_after.tzinfo is not None

    def test_leaf_certificate_is_der(self, tls_server):
        """Test that the raw leaf certificate is returned as DER bytes."""
        probe = TLSCertificateProbe(port=tls_server, timeout=5)

        der_cert = probe.fetch_leaf_certificate("localhost")

        # DER certificates start with a SEQUENCE tag
        assert der_cert[0] == 0x30

    def test_connection_refused(self, unused_port):
        """Test that a closed port raises ConnectFailed."""
        probe = TLSCertificateProbe(port=unused_port, timeout=2)

        with pytest.raises(ConnectFailed) as exc_info:
            probe.fetch_expiry("127.0.0.1")

        assert exc_info.value.domain == "127.0.0.1"

    def test_handshake_timeout(self):
        """Test that a server that never answers the handshake times out."""
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        try:
            probe = TLSCertificateProbe(port=listener.getsockname()[1], timeout=0.5)
            with pytest.raises(ConnectFailed):
                probe.fetch_expiry("127.0.0.1")
        finally:
            listener.close()

    def test_non_tls_server(self):
        """Test that a plain TCP peer closing the connection raises ConnectFailed."""
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)

        def accept_and_close():
            conn, _ = listener.accept()
            conn.sendall(b"HTTP/1.1 400 Bad Request\r\n\r\n")
            conn.close()

        thread = threading.Thread(target=accept_and_close, daemon=True)
        thread.start()
        try:
            probe = TLSCertificateProbe(port=listener.getsockname()[1], timeout=5)
            with pytest.raises(ConnectFailed):
                probe.fetch_expiry("127.0.0.1")
        finally:
            thread.join(timeout=5)
            listener.close()

    def test_defaults(self):
        """Test default port and timeout."""
        probe = TLSCertificateProbe()
        assert probe.port == 443
        assert probe.timeout == 10.0
