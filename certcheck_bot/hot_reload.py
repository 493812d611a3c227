"""
Hot reload of the configuration file for SSL Certificate Checker.
"""

import asyncio
from pathlib import Path
from typing import Any, Coroutine, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from certcheck_bot.checker import CertificateMonitor
from certcheck_bot.config import Config, load_config
from certcheck_bot.errors import ConfigInvalid
from certcheck_bot.logger import get_logger, log_hot_reload


class ConfigFileHandler(FileSystemEventHandler):
    """Handler for configuration file system events."""

    def __init__(self, hot_reload_manager: "HotReloadManager"):
        self.manager = hot_reload_manager
        self.logger = get_logger("hot_reload.config")

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle configuration file modification."""
        if event.is_directory:
            return

        file_path = Path(str(event.src_path))

        # Skip temporary files created by editors
        if file_path.name.startswith(".") or ".tmp" in file_path.name:
            return

        try:
            if (
                self.manager.config_path
                and file_path.exists()
                and file_path.samefile(self.manager.config_path)
            ):
                self.logger.info(f"Configuration file modified: {file_path}")
                self.manager._schedule_coro(self.manager._handle_config_change())
        except OSError:
            # Editors may delete their swap files before we stat them
            pass


class HotReloadManager:
    """
    Watches the configuration file and retargets the monitor on change.

    Only domains and thresholds are applied live; other settings need a restart.
    """

    def __init__(
        self, config: Config, monitor: CertificateMonitor, config_path: Optional[str] = None
    ):
        self.config = config
        self.monitor = monitor
        self.config_path = Path(config_path).expanduser() if config_path else None
        self.logger = get_logger("hot_reload")

        self._observer = Observer()
        self._watching = False
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None
        self._config_handler = ConfigFileHandler(self)
        self._config_change_task: Optional[asyncio.Task] = None

        self.debounce_seconds = 2.0

    def _schedule_coro(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Schedule a coroutine from a thread safely."""
        if self._event_loop and not self._event_loop.is_closed():
            asyncio.run_coroutine_threadsafe(coro, self._event_loop)
        else:
            coro.close()
            self.logger.warning("Cannot schedule coroutine: event loop not available")

    async def start(self) -> None:
        """Start watching the configuration file."""
        if not self.config.hot_reload:
            self.logger.info("Hot reload disabled in configuration")
            return

        if self._watching:
            self.logger.warning("Hot reload already started")
            return

        if not self.config_path or not self.config_path.exists():
            self.logger.info("No configuration file to watch, hot reload inactive")
            return

        self._event_loop = asyncio.get_running_loop()
        self._observer.schedule(
            self._config_handler, str(self.config_path.parent), recursive=False
        )
        self._observer.start()
        self._watching = True
        self.logger.info(f"Watching configuration file: {self.config_path}")

    async def stop(self) -> None:
        """Stop hot reload monitoring."""
        if not self._watching:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)

        if self._config_change_task:
            self._config_change_task.cancel()

        self._watching = False
        self.logger.info("Hot reload stopped")

    async def _handle_config_change(self) -> None:
        """Handle configuration file changes with debouncing."""
        if self._config_change_task and not self._config_change_task.done():
            self._config_change_task.cancel()

        self._config_change_task = asyncio.create_task(self._debounced_config_change())

    async def _debounced_config_change(self) -> None:
        """Debounced configuration change handler."""
        try:
            await asyncio.sleep(self.debounce_seconds)
            await self.reload()
        except asyncio.CancelledError:
            self.logger.debug("Configuration change handling cancelled")

    async def reload(self) -> bool:
        """
        Reload the configuration file and apply new targets.

        Returns:
            True if the new configuration was applied
        """
        self.logger.info("Reloading configuration due to file change")

        try:
            new_config = load_config(str(self.config_path) if self.config_path else None)
        except (ConfigInvalid, FileNotFoundError) as e:
            self.logger.error(f"Ignoring invalid configuration change: {e}")
            return False

        old_domains = set(self.config.domains)
        new_domains = set(new_config.domains)
        old_thresholds = set(self.config.threshold_days)
        new_thresholds = set(new_config.threshold_days)

        changes = []
        if new_domains - old_domains:
            changes.append(f"Added domains: {sorted(new_domains - old_domains)}")
        if old_domains - new_domains:
            changes.append(f"Removed domains: {sorted(old_domains - new_domains)}")
        if new_thresholds != old_thresholds:
            changes.append(
                f"Thresholds: {sorted(old_thresholds)} -> {sorted(new_thresholds)}"
            )

        self.monitor.evaluator.update_targets(new_config.domains, new_config.threshold_days)
        self.config = new_config

        if changes:
            self.logger.info(f"Configuration updated: {'; '.join(changes)}")
        else:
            self.logger.info("Configuration reloaded (no target changes detected)")

        log_hot_reload(self.logger, str(self.config_path), "config_reloaded")
        return True

    def get_status(self) -> dict:
        """Get hot reload status information."""
        return {
            "enabled": self.config.hot_reload,
            "watching": self._watching,
            "config_path": str(self.config_path) if self.config_path else None,
        }
