"""
Process runtime context shared by the logger, checker and API.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class RuntimeContext:
    """
    Explicit process context constructed once at startup.

    Carries the process start instant and the clock every component reads,
    so tests can pin time by passing their own ``clock``.
    """

    clock: Callable[[], datetime] = utc_now
    pid: int = field(default_factory=os.getpid)
    started_at: datetime = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()

    def now(self) -> datetime:
        return self.clock()

    def uptime_seconds(self) -> float:
        """Seconds elapsed since the context was created."""
        return max((self.now() - self.started_at).total_seconds(), 0.0)

    def uptime_display(self) -> str:
        """Human readable uptime, e.g. ``3h12m5s``."""
        total = int(self.uptime_seconds())
        hours, remainder = divmod(total, 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours:
            return f"{hours}h{minutes}m{seconds}s"
        if minutes:
            return f"{minutes}m{seconds}s"
        return f"{seconds}s"
