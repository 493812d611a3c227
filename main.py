#!/usr/bin/env python3
"""
SSL Certificate Checker - Main Application Entry Point
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import uvicorn
from fastapi import FastAPI
from pydantic import ValidationError

from certcheck_bot import __version__
from certcheck_bot.api import create_app
from certcheck_bot.checker import CertificateMonitor, CycleReport, ExpiryEvaluator
from certcheck_bot.config import (
    DEFAULT_CONFIG_PATH,
    Config,
    create_example_config,
    load_config,
    write_config,
)
from certcheck_bot.context import RuntimeContext
from certcheck_bot.errors import ConfigInvalid
from certcheck_bot.history import AlertHistoryStore
from certcheck_bot.hot_reload import HotReloadManager
from certcheck_bot.logger import setup_logging
from certcheck_bot.metrics import MetricsCollector
from certcheck_bot.notifier import SlackNotifier
from certcheck_bot.probe import TLSCertificateProbe


class CertCheckBot:
    """Main application class for SSL Certificate Checker."""

    def __init__(self, config_path: Optional[str] = None, dry_run: bool = False):
        self.config: Optional[Config] = None
        self.evaluator: Optional[ExpiryEvaluator] = None
        self.monitor: Optional[CertificateMonitor] = None
        self.metrics: Optional[MetricsCollector] = None
        self.hot_reload: Optional[HotReloadManager] = None
        self.app: Optional[FastAPI] = None
        self.config_path = config_path
        self.dry_run = dry_run
        self.context = RuntimeContext()
        self._shutdown_event = asyncio.Event()
        self.logger = logging.getLogger(__name__)

    def initialize(self) -> None:
        """Initialize all application components."""
        self.config = load_config(self.config_path)
        if self.dry_run:
            self.config.dry_run = True

        setup_logging(self.config, self.context)
        self.logger.info("Initializing SSL Certificate Checker")

        self.metrics = MetricsCollector()

        self.evaluator = ExpiryEvaluator(
            domains=self.config.domains,
            thresholds=self.config.threshold_days,
            probe=TLSCertificateProbe(timeout=self.config.probe_timeout_seconds),
            store=AlertHistoryStore(self.config.data_dir_path),
            notifier=SlackNotifier(
                self.config.slack_webhook_url, timeout=self.config.notifier_timeout_seconds
            ),
            context=self.context,
            metrics=self.metrics,
            workers=self.config.workers,
        )

        self.monitor = CertificateMonitor(
            self.evaluator,
            check_interval_seconds=self.config.check_interval_seconds,
            heartbeat_interval_seconds=self.config.heartbeat_interval_seconds,
        )

        if self.config.hot_reload and not self.config.dry_run:
            self.hot_reload = HotReloadManager(
                config=self.config, monitor=self.monitor, config_path=self.config_path
            )

        if self.config.http_enabled and not self.config.dry_run:
            self.app = create_app(
                monitor=self.monitor,
                metrics=self.metrics,
                config=self.config,
                context=self.context,
                hot_reload=self.hot_reload,
            )

        self.logger.info(
            "SSL Certificate Checker initialized - "
            f"Domains: {self.config.domains}, Thresholds: {self.config.threshold_days}, "
            f"Interval: {self.config.check_interval_hours}h"
        )

    async def run_once(self) -> CycleReport:
        """Run a single check cycle and release resources."""
        assert self.evaluator is not None, "Evaluator should be initialized"
        self.logger.info("Running in dry-run mode - single check cycle")
        try:
            return await self.evaluator.run_cycle()
        finally:
            self.evaluator.close()

    async def run(self) -> None:
        """Run the monitor loops, and the admin API when enabled."""
        if self.config is None:
            self.initialize()

        assert self.config is not None, "Config should be initialized"
        assert self.monitor is not None, "Monitor should be initialized"

        if self.config.dry_run:
            report = await self.run_once()
            self.logger.info(f"Dry-run cycle completed: {report.to_dict()}")
            return

        await self.monitor.start()
        if self.hot_reload:
            await self.hot_reload.start()

        try:
            if self.app:
                self.logger.info(
                    f"Starting HTTP server on {self.config.bind_address}:{self.config.http_port}"
                )
                server = uvicorn.Server(
                    uvicorn.Config(
                        app=self.app,
                        host=self.config.bind_address,
                        port=self.config.http_port,
                        log_level=self.config.log_level.lower(),
                        access_log=False,
                    )
                )
                # uvicorn installs its own SIGINT/SIGTERM handlers
                await server.serve()
            else:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGTERM, signal.SIGINT):
                    loop.add_signal_handler(sig, self._signal_handler, sig)
                await self._shutdown_event.wait()
        finally:
            await self.shutdown()

    def _signal_handler(self, signum: int) -> None:
        """Handle shutdown signals."""
        self.logger.info(f"Received signal {signum}, initiating graceful shutdown")
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Gracefully shutdown all components."""
        self.logger.info("Starting graceful shutdown")

        if self.hot_reload:
            await self.hot_reload.stop()

        if self.monitor:
            await self.monitor.stop()

        self.logger.info("Graceful shutdown completed")


def run_interactive_setup(output_path: Path) -> Path:
    """
    Prompt for configuration values and write them as YAML.

    Args:
        output_path: Destination configuration file

    Returns:
        Path of the written configuration file
    """
    values: Dict[str, Any] = {
        "domains": click.prompt("Enter domains to monitor (comma-separated)"),
        "threshold_days": click.prompt(
            "Enter threshold days for alerts (comma-separated)", default="30,14,7"
        ),
        "slack_webhook_url": click.prompt("Enter Slack webhook URL"),
        "heartbeat_hours": click.prompt(
            "Enter heartbeat interval in hours (0 to disable)",
            default=0,
            type=click.IntRange(min=0),
        ),
        "check_interval_hours": click.prompt(
            "Enter check interval in hours", default=6, type=click.IntRange(min=1)
        ),
    }

    if click.confirm("Enable HTTP server?", default=False):
        values["http_enabled"] = True
        values["http_port"] = click.prompt(
            "Enter HTTP server port", default=8080, type=click.IntRange(1, 65535)
        )
        values["http_auth_token"] = click.prompt("Enter HTTP authentication token", hide_input=True)

    try:
        config = Config(**values)
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid configuration: {e}") from e

    return write_config(config, str(output_path))


@click.command()
@click.option(
    "--config",
    "-f",
    type=click.Path(path_type=Path),
    help="Path to configuration file",
)
@click.option("--version", "-v", is_flag=True, help="Show version information")
@click.option("--dry-run", is_flag=True, help="Run a single check cycle and exit")
@click.option("--configure", is_flag=True, help="Interactively create the configuration file")
@click.option(
    "--create-config",
    type=click.Path(path_type=Path),
    help="Write an example configuration file to PATH and exit",
)
def main(
    config: Optional[Path],
    version: bool,
    dry_run: bool,
    configure: bool,
    create_config: Optional[Path],
) -> None:
    """SSL Certificate Checker - Alert before TLS certificates expire."""

    if version:
        print(f"SSL Certificate Checker v{__version__}")
        return

    if create_config:
        create_config.parent.mkdir(parents=True, exist_ok=True)
        create_example_config(str(create_config))
        print(f"Example configuration written to {create_config}")
        return

    default_path = DEFAULT_CONFIG_PATH.expanduser()

    try:
        if configure:
            written = run_interactive_setup(config or default_path)
            print(f"Configuration saved to {written}")
            print("Please restart the application to apply the configuration.")
            return

        if config is None and default_path.exists():
            config = default_path

        bot = CertCheckBot(str(config) if config else None, dry_run=dry_run)
        bot.initialize()
        asyncio.run(bot.run())
    except (ConfigInvalid, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print("Run 'certcheck-bot --configure' to create a configuration.", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        print(f"Application failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
