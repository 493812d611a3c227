"""
Shared fixtures for SSL Certificate Checker tests.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Tuple, Union
from unittest.mock import AsyncMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certcheck_bot.checker import ExpiryEvaluator
from certcheck_bot.context import RuntimeContext
from certcheck_bot.history import AlertHistoryStore
from certcheck_bot.notifier import Notifier
from certcheck_bot.probe import CertificateProbe

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class StaticProbe(CertificateProbe):
    """Probe returning configured expiries, or raising configured errors."""

    def __init__(self, expiries: Dict[str, Union[datetime, Exception]]):
        self.expiries = dict(expiries)
        self.calls: List[str] = []

    def fetch_expiry(self, domain: str) -> datetime:
        self.calls.append(domain)
        value = self.expiries[domain]
        if isinstance(value, Exception):
            raise value
        return value


def expiring_in(days: float, now: datetime = NOW) -> datetime:
    """Expiry instant ``days`` after ``now``."""
    return now + timedelta(days=days)


def generate_self_signed(
    directory: Path, not_after: datetime, common_name: str = "localhost"
) -> Tuple[Path, Path]:
    """
    Write a self-signed certificate and its key as PEM files.

    Returns:
        (certificate path, key path)
    """
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=365))
        .not_valid_after(not_after)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
        .sign(key, hashes.SHA256())
    )

    cert_path = directory / "cert.pem"
    key_path = directory / "key.pem"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return cert_path, key_path


@pytest.fixture
def context():
    """Runtime context pinned to a fixed clock."""
    return RuntimeContext(clock=lambda: NOW)


@pytest.fixture
def notifier():
    """Notifier double recording every send."""
    return AsyncMock(spec=Notifier)


@pytest.fixture
def store(tmp_path):
    """Alert history store in a temporary directory."""
    return AlertHistoryStore(tmp_path / "data")


@pytest.fixture
def make_evaluator(store, notifier, context):
    """Factory for evaluators sharing the store, notifier and clock fixtures."""
    created: List[ExpiryEvaluator] = []

    def factory(
        expiries: Dict[str, Union[datetime, Exception]], thresholds=(30, 14, 7), **kwargs
    ) -> ExpiryEvaluator:
        evaluator = ExpiryEvaluator(
            domains=list(expiries),
            thresholds=list(thresholds),
            probe=kwargs.pop("probe", StaticProbe(expiries)),
            store=kwargs.pop("store", store),
            notifier=notifier,
            context=context,
            **kwargs,
        )
        created.append(evaluator)
        return evaluator

    yield factory

    for evaluator in created:
        evaluator.close()
