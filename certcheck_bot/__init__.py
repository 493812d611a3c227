"""
SSL Certificate Checker

Polls the TLS certificates of configured domains and sends a deduplicated
Slack alert once a certificate crosses an expiry threshold.
"""

__version__ = "1.0.0"
__author__ = "SSL Certificate Checker Team"
__description__ = "TLS certificate expiry checker with deduplicated Slack alerts"

from certcheck_bot.checker import CertificateMonitor, ExpiryEvaluator
from certcheck_bot.config import Config
from certcheck_bot.history import AlertHistoryStore
from certcheck_bot.probe import CertificateProbe, TLSCertificateProbe

__all__ = [
    "AlertHistoryStore",
    "CertificateMonitor",
    "CertificateProbe",
    "Config",
    "ExpiryEvaluator",
    "TLSCertificateProbe",
]
