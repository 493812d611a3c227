"""
Exception types for SSL Certificate Checker.
"""

from typing import Optional


class CertCheckError(Exception):
    """Base class for all certificate checker errors."""


class ProbeError(CertCheckError):
    """Base class for errors raised while reading a domain's certificate."""

    def __init__(self, domain: str, message: str):
        self.domain = domain
        super().__init__(f"{domain}: {message}")


class ConnectFailed(ProbeError):
    """DNS, TCP, TLS handshake or timeout failure while probing a domain."""


class NoCertificate(ProbeError):
    """The TLS handshake succeeded but no usable peer certificate was presented."""


class NotifierFailed(CertCheckError):
    """The notification channel rejected or never received a message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class StoreError(CertCheckError):
    """Base class for alert history persistence errors."""


class StoreCorrupt(StoreError):
    """The alert history file exists but cannot be parsed."""


class StoreWriteFailed(StoreError):
    """The alert history could not be written back to disk."""


class ConfigInvalid(CertCheckError):
    """Configuration is missing required values or contains invalid ones."""
