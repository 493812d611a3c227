"""
Prometheus metrics collection for SSL Certificate Checker.
"""

import time
from datetime import datetime
from typing import Optional

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from certcheck_bot.logger import get_logger


class MetricsCollector:
    """Prometheus metrics collector for certificate checks and alerting."""

    def __init__(self) -> None:
        self.logger = get_logger("metrics")
        self.registry = CollectorRegistry()

        # Certificate metrics
        self.cert_expiry_timestamp = Gauge(
            "certcheck_cert_expiry_timestamp",
            "Certificate expiration time (Unix timestamp)",
            ["domain"],
            registry=self.registry,
        )

        self.cert_days_remaining = Gauge(
            "certcheck_cert_days_remaining",
            "Whole days until the certificate expires",
            ["domain"],
            registry=self.registry,
        )

        # Probe and alert metrics
        self.probe_failures_total = Counter(
            "certcheck_probe_failures_total",
            "Certificate probes that failed",
            ["domain", "error_type"],
            registry=self.registry,
        )

        self.alerts_sent_total = Counter(
            "certcheck_alerts_sent_total",
            "Expiry alerts delivered to the notification channel",
            ["domain", "threshold"],
            registry=self.registry,
        )

        self.alert_failures_total = Counter(
            "certcheck_alert_failures_total",
            "Expiry alerts the notification channel rejected",
            ["domain"],
            registry=self.registry,
        )

        # Cycle metrics
        self.cycle_duration_seconds = Histogram(
            "certcheck_cycle_duration_seconds",
            "Duration of a full check cycle",
            registry=self.registry,
        )

        self.last_cycle_timestamp = Gauge(
            "certcheck_last_cycle_timestamp",
            "Completion time of the last check cycle",
            registry=self.registry,
        )

        # Application metrics
        self.app_memory_bytes = Gauge(
            "certcheck_app_memory_bytes",
            "Application memory usage in bytes",
            ["type"],
            registry=self.registry,
        )

        self.logger.info("Metrics collector initialized")

    def record_expiry(self, domain: str, not_after: datetime, days_remaining: int) -> None:
        """Record the observed expiry of a domain's certificate."""
        self.cert_expiry_timestamp.labels(domain=domain).set(not_after.timestamp())
        self.cert_days_remaining.labels(domain=domain).set(days_remaining)

    def record_probe_failure(self, domain: str, error_type: str) -> None:
        self.probe_failures_total.labels(domain=domain, error_type=error_type).inc()

    def record_alert(self, domain: str, threshold: int) -> None:
        self.alerts_sent_total.labels(domain=domain, threshold=str(threshold)).inc()

    def record_alert_failure(self, domain: str) -> None:
        self.alert_failures_total.labels(domain=domain).inc()

    def record_cycle(self, duration: float, finished_at: Optional[float] = None) -> None:
        """Record a completed check cycle."""
        self.cycle_duration_seconds.observe(duration)
        self.last_cycle_timestamp.set(finished_at if finished_at is not None else time.time())

    def update_system_metrics(self) -> None:
        """Update process memory metrics."""
        try:
            memory_info = psutil.Process().memory_info()
            self.app_memory_bytes.labels(type="rss").set(int(memory_info.rss))
            self.app_memory_bytes.labels(type="vms").set(int(memory_info.vms))
        except psutil.Error as e:
            self.logger.error(f"Failed to update system metrics: {e}")

    def get_metrics(self) -> str:
        """Render all metrics in Prometheus exposition format."""
        self.update_system_metrics()
        return generate_latest(self.registry).decode("utf-8")

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
