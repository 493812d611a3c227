"""
Alert history persistence for SSL Certificate Checker.

The history file maps domain -> threshold days -> the certificate expiry the
threshold was last alerted for::

    {"example.com": {"7": "2025-03-01T12:00:00+00:00", "14": "..."}}

Older history files stored the calendar date of the last send instead of the
expiry instant; those date-only values are still read and honoured.
"""

import json
import os
import re
import shutil
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Union

from certcheck_bot.errors import StoreCorrupt, StoreWriteFailed
from certcheck_bot.logger import get_logger

HISTORY_FILENAME = "alert-history.json"

AlertStamp = Union[datetime, date]
HistoryMap = Dict[str, Dict[int, AlertStamp]]

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_FRACTION = re.compile(r"\.(\d+)")


def parse_stamp(value: str) -> AlertStamp:
    """
    Parse a stored history value.

    Args:
        value: ISO-8601 timestamp or ``YYYY-MM-DD`` date

    Returns:
        Timezone-aware UTC datetime, or a date for date-only values
    """
    if _DATE_ONLY.match(value):
        return date.fromisoformat(value)

    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    # Trim nanosecond precision down to microseconds
    normalized = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalized, count=1)

    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_stamp(value: AlertStamp) -> str:
    """Serialize a history value to its JSON string form."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    return value.isoformat()


def already_alerted(
    history: HistoryMap, domain: str, threshold: int, not_after: datetime, today: date
) -> bool:
    """
    Check whether an alert for this domain/threshold/certificate was already sent.

    A stored expiry instant suppresses the alert only while the certificate's
    ``notAfter`` is unchanged. A legacy date-only value suppresses it for the
    rest of that calendar day.
    """
    stored = history.get(domain, {}).get(threshold)
    if stored is None:
        return False
    if isinstance(stored, datetime):
        return stored == not_after
    return stored == today


def record_alert(history: HistoryMap, domain: str, threshold: int, not_after: datetime) -> None:
    """Overwrite the history cell for ``(domain, threshold)`` with ``not_after``."""
    history.setdefault(domain, {})[threshold] = not_after


class AlertHistoryStore:
    """
    File backed store for alert history.

    Saves keep a single-generation ``.backup`` copy of the previous file and
    replace the primary file atomically. The store does no locking of its
    own; callers serialize load/save cycles.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir).expanduser()
        self.history_file = self.data_dir / HISTORY_FILENAME
        self.backup_file = self.history_file.with_name(HISTORY_FILENAME + ".backup")
        self.temp_file = self.history_file.with_name(HISTORY_FILENAME + ".tmp")
        self.logger = get_logger("history")

    def load(self) -> HistoryMap:
        """
        Load the full alert history.

        Returns:
            History map, empty when no history file exists yet

        Raises:
            StoreCorrupt: The file exists but cannot be read or parsed
        """
        if not self.history_file.exists():
            self.logger.debug(f"No alert history at {self.history_file}, starting empty")
            return {}

        try:
            with open(self.history_file, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreCorrupt(f"Failed to read alert history {self.history_file}: {e}") from e

        history = self._decode(raw)
        self.logger.debug(f"Loaded alert history for {len(history)} domains")
        return history

    def save(self, history: HistoryMap) -> None:
        """
        Persist the alert history.

        Args:
            history: Full history map to write

        Raises:
            StoreWriteFailed: Backup or write of the new file failed
        """
        payload = self._encode(history)

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)

            if self.history_file.exists():
                shutil.copy2(self.history_file, self.backup_file)

            with open(self.temp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())

            os.replace(self.temp_file, self.history_file)
        except OSError as e:
            raise StoreWriteFailed(f"Failed to write alert history {self.history_file}: {e}") from e

        self.logger.debug(f"Alert history saved ({len(history)} domains)")

    def _decode(self, raw: Any) -> HistoryMap:
        if not isinstance(raw, dict):
            raise StoreCorrupt("Alert history must be a JSON object")

        # Older files wrapped the map in {"alerts": {...}}
        if set(raw) == {"alerts"} and isinstance(raw["alerts"], dict):
            raw = raw["alerts"]

        history: HistoryMap = {}
        for domain, thresholds in raw.items():
            if not isinstance(thresholds, dict):
                raise StoreCorrupt(f"History entry for {domain} must be an object")
            cells: Dict[int, AlertStamp] = {}
            for threshold, stamp in thresholds.items():
                try:
                    cells[int(threshold)] = parse_stamp(str(stamp))
                except ValueError as e:
                    raise StoreCorrupt(
                        f"Invalid history entry {domain}/{threshold}={stamp!r}: {e}"
                    ) from e
            history[domain] = cells
        return history

    def _encode(self, history: HistoryMap) -> Dict[str, Dict[str, str]]:
        return {
            domain: {str(threshold): format_stamp(stamp) for threshold, stamp in cells.items()}
            for domain, cells in history.items()
        }
