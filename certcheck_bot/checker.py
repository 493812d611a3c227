"""
Certificate expiry evaluation and alert scheduling for SSL Certificate Checker.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from certcheck_bot.context import RuntimeContext
from certcheck_bot.errors import NotifierFailed, ProbeError, StoreCorrupt, StoreWriteFailed
from certcheck_bot.history import AlertHistoryStore, HistoryMap, already_alerted, record_alert
from certcheck_bot.logger import (
    get_logger,
    log_alert_sent,
    log_alert_suppressed,
    log_cycle_complete,
    log_expiry_checked,
    log_probe_failed,
)
from certcheck_bot.metrics import MetricsCollector
from certcheck_bot.notifier import Notifier
from certcheck_bot.probe import CertificateProbe


def days_until(not_after: datetime, now: datetime) -> int:
    """
    Whole days between ``now`` and ``not_after``.

    Computed as hours / 24 truncated toward zero, so 6 days 23 hours is 6
    days and an expiry 12 hours in the past is 0.
    """
    hours = (not_after - now).total_seconds() / 3600
    return int(hours / 24)


def select_threshold(days_remaining: int, thresholds: Iterable[int]) -> Optional[int]:
    """
    Pick the threshold that should fire for ``days_remaining``.

    Thresholds form a ladder: the smallest threshold with
    ``days_remaining <= threshold`` wins, so with ``{7, 14, 30}`` a
    certificate 5 days from expiry selects 7, not 14 or 30.

    Returns:
        Selected threshold, or None if the certificate is outside every window
    """
    for threshold in sorted(set(thresholds)):
        if days_remaining <= threshold:
            return threshold
    return None


class AlertOutcome(str, Enum):
    """Per-domain result of an evaluation."""

    ALERTED = "alerted"
    NO_ALERT_NEEDED = "no_alert_needed"
    PROBE_FAILED = "probe_failed"
    NOTIFY_FAILED = "notify_failed"
    ERROR = "error"


@dataclass
class EvaluationResult:
    """Outcome of evaluating a single domain."""

    domain: str
    outcome: AlertOutcome
    threshold: Optional[int] = None
    days_remaining: Optional[int] = None
    not_after: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "outcome": self.outcome.value,
            "threshold": self.threshold,
            "days_remaining": self.days_remaining,
            "not_after": self.not_after.isoformat() if self.not_after else None,
            "error": self.error,
        }


@dataclass
class CycleReport:
    """Summary of one check cycle across all domains."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[EvaluationResult] = field(default_factory=list)
    store_error: Optional[str] = None

    @property
    def alerted(self) -> List[EvaluationResult]:
        return [r for r in self.results if r.outcome == AlertOutcome.ALERTED]

    @property
    def failed(self) -> List[EvaluationResult]:
        return [
            r
            for r in self.results
            if r.outcome
            in (AlertOutcome.PROBE_FAILED, AlertOutcome.NOTIFY_FAILED, AlertOutcome.ERROR)
        ]

    @property
    def succeeded(self) -> bool:
        """True when every domain was evaluated and history was persisted."""
        return self.store_error is None and not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "results": [r.to_dict() for r in self.results],
            "alerted": len(self.alerted),
            "failed": len(self.failed),
            "store_error": self.store_error,
        }


class ExpiryEvaluator:
    """
    Decides, per domain, whether an expiry alert is due and sends it.

    A cycle loads the alert history once, evaluates every domain against a
    single in-memory copy and writes it back once. Cycles are serialized so
    two cycles never interleave their load/save of the history file.
    """

    def __init__(
        self,
        domains: List[str],
        thresholds: List[int],
        probe: CertificateProbe,
        store: AlertHistoryStore,
        notifier: Notifier,
        context: RuntimeContext,
        metrics: Optional[MetricsCollector] = None,
        workers: int = 4,
    ):
        self._domains = list(domains)
        self._thresholds = list(thresholds)
        self.probe = probe
        self.store = store
        self.notifier = notifier
        self.context = context
        self.metrics = metrics
        self.workers = workers
        self.logger = get_logger("checker")

        self.last_checked_at: Optional[datetime] = None
        self.last_report: Optional[CycleReport] = None

        self._executor = ThreadPoolExecutor(max_workers=workers)
        # Locks are created lazily inside the running event loop
        self._cycle_lock: Optional[asyncio.Lock] = None
        self._history_lock: Optional[asyncio.Lock] = None

    def domains(self) -> List[str]:
        return list(self._domains)

    def thresholds(self) -> List[int]:
        return list(self._thresholds)

    def update_targets(self, domains: List[str], thresholds: List[int]) -> None:
        """Replace the monitored domains and thresholds for subsequent cycles."""
        self._domains = list(domains)
        self._thresholds = list(thresholds)

    async def evaluate(
        self, domain: str, history: HistoryMap, thresholds: Optional[List[int]] = None
    ) -> EvaluationResult:
        """
        Evaluate one domain against the in-memory history.

        Probe and notifier failures are reported in the result rather than
        raised. ``history`` is only mutated after a successful send.

        Args:
            domain: Domain to check
            history: Alert history shared by the current cycle
            thresholds: Thresholds to apply, defaults to the configured ones

        Returns:
            Evaluation result for the domain
        """
        if self._history_lock is None:
            self._history_lock = asyncio.Lock()

        try:
            not_after = await self._fetch_expiry(domain)
        except ProbeError as e:
            log_probe_failed(self.logger, domain, e)
            if self.metrics:
                self.metrics.record_probe_failure(domain, type(e).__name__)
            return EvaluationResult(domain, AlertOutcome.PROBE_FAILED, error=str(e))

        now = self.context.now()
        days_remaining = days_until(not_after, now)
        log_expiry_checked(self.logger, domain, days_remaining, not_after)
        if self.metrics:
            self.metrics.record_expiry(domain, not_after, days_remaining)

        threshold = select_threshold(
            days_remaining, self._thresholds if thresholds is None else thresholds
        )
        if threshold is None:
            return EvaluationResult(
                domain,
                AlertOutcome.NO_ALERT_NEEDED,
                days_remaining=days_remaining,
                not_after=not_after,
            )

        async with self._history_lock:
            if already_alerted(history, domain, threshold, not_after, now.date()):
                log_alert_suppressed(self.logger, domain, threshold)
                return EvaluationResult(
                    domain,
                    AlertOutcome.NO_ALERT_NEEDED,
                    threshold=threshold,
                    days_remaining=days_remaining,
                    not_after=not_after,
                )

        try:
            await self.notifier.send_alert(domain, days_remaining, not_after, threshold)
        except NotifierFailed as e:
            self.logger.error(
                f"Failed to send alert for {domain}: {e}",
                extra={"domain": domain, "threshold": threshold, "error_type": "NotifierFailed"},
            )
            if self.metrics:
                self.metrics.record_alert_failure(domain)
            return EvaluationResult(
                domain,
                AlertOutcome.NOTIFY_FAILED,
                threshold=threshold,
                days_remaining=days_remaining,
                not_after=not_after,
                error=str(e),
            )

        async with self._history_lock:
            record_alert(history, domain, threshold, not_after)

        log_alert_sent(self.logger, domain, threshold, days_remaining)
        if self.metrics:
            self.metrics.record_alert(domain, threshold)

        return EvaluationResult(
            domain,
            AlertOutcome.ALERTED,
            threshold=threshold,
            days_remaining=days_remaining,
            not_after=not_after,
        )

    async def run_cycle(self, domains: Optional[List[str]] = None) -> CycleReport:
        """
        Run one full check cycle.

        Args:
            domains: Domains to check, defaults to every configured domain

        Returns:
            Cycle report with per-domain results
        """
        if self._cycle_lock is None:
            self._cycle_lock = asyncio.Lock()

        async with self._cycle_lock:
            targets = list(dict.fromkeys(domains if domains is not None else self._domains))
            thresholds = list(self._thresholds)
            report = CycleReport(started_at=self.context.now())
            start_time = time.time()

            self.logger.info(
                f"Starting certificate check - Domains: {targets}, Thresholds: {thresholds}"
            )

            try:
                history = self.store.load()
            except StoreCorrupt as e:
                self.logger.error(f"Alert history unreadable, skipping cycle: {e}")
                report.store_error = str(e)
                return self._finish_cycle(report, start_time)

            semaphore = asyncio.Semaphore(self.workers)

            async def bounded(domain: str) -> EvaluationResult:
                async with semaphore:
                    return await self.evaluate(domain, history, thresholds)

            loaded = {domain: dict(cells) for domain, cells in history.items()}
            try:
                results = await asyncio.gather(
                    *(bounded(d) for d in targets), return_exceptions=True
                )
            except asyncio.CancelledError:
                # Alerts already delivered must still reach the history file
                if history != loaded:
                    self._save_history(history, report)
                raise

            for domain, result in zip(targets, results):
                if isinstance(result, BaseException):
                    self.logger.error(f"Evaluation failed for {domain}: {result}")
                    report.results.append(
                        EvaluationResult(domain, AlertOutcome.ERROR, error=str(result))
                    )
                else:
                    report.results.append(result)

            if report.alerted:
                self._save_history(history, report)

            return self._finish_cycle(report, start_time)

    def _save_history(self, history: HistoryMap, report: CycleReport) -> None:
        try:
            self.store.save(history)
        except StoreWriteFailed as e:
            self.logger.error(f"Failed to persist alert history: {e}")
            report.store_error = str(e)

    async def send_heartbeat(self) -> None:
        """
        Send a liveness message listing monitored domains and thresholds.

        Raises:
            NotifierFailed: The notification channel rejected the message
        """
        message = (
            "SSL Certificate Checker is running\n"
            f"Monitoring domains: {', '.join(self._domains)}\n"
            f"Thresholds: {', '.join(str(t) for t in sorted(self._thresholds))} days"
        )
        details = {
            "uptime": self.context.uptime_display(),
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
        }
        await self.notifier.send_message(message, details)
        self.logger.info("Heartbeat sent")

    def close(self) -> None:
        """Release the probe executor without waiting on in-flight probes."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def _fetch_expiry(self, domain: str) -> datetime:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.probe.fetch_expiry, domain)

    def _finish_cycle(self, report: CycleReport, start_time: float) -> CycleReport:
        report.finished_at = self.context.now()
        duration = time.time() - start_time

        if self.metrics:
            self.metrics.record_cycle(duration)

        log_cycle_complete(
            self.logger, duration, len(report.results), len(report.alerted), len(report.failed)
        )

        self.last_checked_at = report.finished_at
        self.last_report = report
        return report


class CertificateMonitor:
    """
    Periodic scheduler driving the evaluator.

    Runs a check cycle immediately and then every ``check_interval_seconds``.
    When a heartbeat interval is set, a heartbeat is sent at startup and then
    on that interval. Stopping waits for an in-progress cycle to finish.
    """

    def __init__(
        self,
        evaluator: ExpiryEvaluator,
        check_interval_seconds: int,
        heartbeat_interval_seconds: int = 0,
        retry_delay_seconds: int = 60,
    ):
        self.evaluator = evaluator
        self.check_interval_seconds = check_interval_seconds
        self.heartbeat_interval_seconds = heartbeat_interval_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.logger = get_logger("monitor")

        self._running = False
        self._check_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic check and heartbeat loops."""
        if self._running:
            self.logger.warning("Monitor is already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._check_task = asyncio.create_task(self._check_loop())
        self.logger.info(
            f"Started certificate monitoring - Interval: {self.check_interval_seconds}s"
        )

        if self.heartbeat_interval_seconds > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
            self.logger.info(f"Heartbeat enabled - Interval: {self.heartbeat_interval_seconds}s")

    async def stop(self) -> None:
        """
        Stop scheduling further cycles and release the probe executor.

        A cycle already in progress runs to completion so that alerts it has
        sent are written to the history file.
        """
        self._running = False
        if self._stop_event:
            self._stop_event.set()

        if self._check_task:
            await self._check_task

        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass

        self.evaluator.close()
        self.logger.info("Certificate monitor stopped")

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds, returning True early if stop was requested."""
        assert self._stop_event is not None, "Stop event should be initialized"
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _check_loop(self) -> None:
        """Main checking loop."""
        while self._running:
            try:
                await self.evaluator.run_cycle()
                delay = self.check_interval_seconds
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in check loop: {e}")
                delay = self.retry_delay_seconds

            if await self._wait_for_stop(delay):
                break

    async def _heartbeat_loop(self) -> None:
        """Heartbeat loop."""
        while self._running:
            try:
                await self.evaluator.send_heartbeat()
            except asyncio.CancelledError:
                break
            except NotifierFailed as e:
                self.logger.error(f"Failed to send heartbeat: {e}")

            try:
                await asyncio.sleep(self.heartbeat_interval_seconds)
            except asyncio.CancelledError:
                break

    def get_status(self) -> Dict[str, Any]:
        """Get monitor status information."""
        last_report = self.evaluator.last_report
        last_checked = self.evaluator.last_checked_at
        return {
            "monitor_status": "running" if self._running else "stopped",
            "check_interval_seconds": self.check_interval_seconds,
            "heartbeat_interval_seconds": self.heartbeat_interval_seconds,
            "checked_at": last_checked.isoformat() if last_checked else None,
            "last_cycle": last_report.to_dict() if last_report else None,
        }
