"""
Tests for metrics collection.
"""

from datetime import datetime, timezone

from certcheck_bot.metrics import MetricsCollector


class TestMetricsCollector:
    """Test metrics collector functionality."""

    def test_metrics_collector_initialization(self):
        """Test metrics collector initialization."""
        metrics = MetricsCollector()

        assert metrics.registry is not None
        assert metrics.cert_expiry_timestamp is not None
        assert metrics.alerts_sent_total is not None
        assert metrics.app_memory_bytes is not None

    def test_collectors_are_independent(self):
        """Test that each collector owns its registry."""
        first = MetricsCollector()
        second = MetricsCollector()

        first.record_alert("a.com", 7)

        assert 'domain="a.com"' not in second.get_metrics()

    def test_record_expiry(self):
        """Test recording a certificate expiry."""
        metrics = MetricsCollector()
        not_after = datetime(2025, 3, 1, tzinfo=timezone.utc)

        metrics.record_expiry("example.com", not_after, 12)
        output = metrics.get_metrics()

        assert 'certcheck_cert_days_remaining{domain="example.com"} 12.0' in output
        assert 'certcheck_cert_expiry_timestamp{domain="example.com"} 1.7407872e+09' in output

    def test_record_failures(self):
        """Test probe and alert failure counters."""
        metrics = MetricsCollector()

        metrics.record_probe_failure("example.com", "ConnectFailed")
        metrics.record_probe_failure("example.com", "ConnectFailed")
        metrics.record_alert_failure("example.com")
        output = metrics.get_metrics()

        assert (
            'certcheck_probe_failures_total{domain="example.com",error_type="ConnectFailed"} 2.0'
            in output
        )
        assert 'certcheck_alert_failures_total{domain="example.com"} 1.0' in output

    def test_record_cycle(self):
        """Test cycle duration and completion time."""
        metrics = MetricsCollector()

        metrics.record_cycle(1.5, finished_at=1700000000.0)
        output = metrics.get_metrics()

        assert "certcheck_cycle_duration_seconds_count 1.0" in output
        assert "certcheck_cycle_duration_seconds_sum 1.5" in output
        assert "certcheck_last_cycle_timestamp 1.7e+09" in output

    def test_system_metrics(self):
        """Test that memory usage is exported."""
        metrics = MetricsCollector()

        output = metrics.get_metrics()

        assert 'certcheck_app_memory_bytes{type="rss"}' in output

    def test_content_type(self):
        """Test the exposition content type."""
        assert MetricsCollector().get_content_type().startswith("text/plain")
