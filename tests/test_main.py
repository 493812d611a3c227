"""
Tests for the command line entry point.
"""

import logging
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner
from conftest import StaticProbe, expiring_in

from certcheck_bot import __version__
from certcheck_bot.checker import AlertOutcome
from certcheck_bot.config import load_config
from main import CertCheckBot, main

WEBHOOK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


@pytest.fixture
def restore_root_logger():
    """Restore root logger handlers after the bot configures logging."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Write a configuration file pointing data and logs into tmp_path."""
    monkeypatch.delenv("CERTCHECK_HTTP_ENABLED", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "domains": ["example.com"],
                "threshold_days": [30, 14, 7],
                "slack_webhook_url": WEBHOOK_URL,
                "data_dir": str(tmp_path / "data"),
                "log_file": str(tmp_path / "logs" / "cert-checker.log"),
                "http_enabled": True,
                "http_auth_token": "secret",
            }
        ),
        encoding="utf-8",
    )
    return path


class TestCLI:
    """Tests for the click command."""

    def test_version(self):
        """Test the version flag."""
        result = CliRunner().invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_config_file(self, tmp_path):
        """Test that a missing config file exits with an error."""
        result = CliRunner().invoke(main, ["--config", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_invalid_config_file(self, tmp_path):
        """Test that an invalid config file exits with an error."""
        path = tmp_path / "config.yaml"
        path.write_text("domains: []\n", encoding="utf-8")

        result = CliRunner().invoke(main, ["--config", str(path)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_create_config_writes_example(self, tmp_path, monkeypatch):
        """Test that --create-config writes a loadable example file."""
        for key in ("CERTCHECK_DOMAINS", "CERTCHECK_THRESHOLD_DAYS", "CERTCHECK_HTTP_ENABLED"):
            monkeypatch.delenv(key, raising=False)
        path = tmp_path / "nested" / "config.example.yaml"

        result = CliRunner().invoke(main, ["--create-config", str(path)])

        assert result.exit_code == 0, result.output
        assert "Example configuration written" in result.output
        config = load_config(str(path))
        assert config.domains == ["example.com", "example.org"]

    def test_configure_writes_config(self, tmp_path, monkeypatch):
        """Test interactive setup writes a loadable configuration."""
        for key in ("CERTCHECK_DOMAINS", "CERTCHECK_THRESHOLD_DAYS", "CERTCHECK_HTTP_ENABLED"):
            monkeypatch.delenv(key, raising=False)
        path = tmp_path / "config" / "config.yaml"
        answers = "\n".join(
            [
                "a.com, b.com",  # domains
                "30,7",  # thresholds
                WEBHOOK_URL,
                "24",  # heartbeat hours
                "6",  # check interval hours
                "y",  # enable HTTP
                "9090",
                "secret",
            ]
        ) + "\n"

        result = CliRunner().invoke(main, ["--configure", "--config", str(path)], input=answers)

        assert result.exit_code == 0, result.output
        assert "Configuration saved" in result.output
        config = load_config(str(path))
        assert config.domains == ["a.com", "b.com"]
        assert config.threshold_days == [30, 7]
        assert config.heartbeat_hours == 24
        assert config.http_enabled is True
        assert config.http_port == 9090
        assert config.http_auth_token == "secret"


class TestCertCheckBot:
    """Tests for application wiring."""

    def test_initialize_builds_components(self, config_file, restore_root_logger):
        """Test that initialize wires every component from the config."""
        bot = CertCheckBot(str(config_file))

        bot.initialize()

        assert bot.evaluator.domains() == ["example.com"]
        assert bot.monitor.evaluator is bot.evaluator
        assert bot.hot_reload is not None
        assert bot.app is not None
        bot.evaluator.close()

    def test_dry_run_skips_servers(self, config_file, restore_root_logger):
        """Test that dry-run builds neither the API nor the file watcher."""
        bot = CertCheckBot(str(config_file), dry_run=True)

        bot.initialize()

        assert bot.config.dry_run is True
        assert bot.hot_reload is None
        assert bot.app is None
        bot.evaluator.close()

    @pytest.mark.asyncio
    async def test_dry_run_single_cycle(self, config_file, restore_root_logger, tmp_path):
        """Test that a dry run performs one cycle against the configured domains."""
        probe = StaticProbe({"example.com": expiring_in(40, datetime.now(timezone.utc))})
        with patch("main.TLSCertificateProbe", return_value=probe):
            bot = CertCheckBot(str(config_file), dry_run=True)
            bot.initialize()

        await bot.run()

        assert probe.calls == ["example.com"]
        report = bot.evaluator.last_report
        assert report.results[0].outcome == AlertOutcome.NO_ALERT_NEEDED
        assert (tmp_path / "logs" / "cert-checker.log").exists()
