from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any

from mpc_center.models import LogEntry, SyncRunResult, SyncStats

logger = logging.getLogger("mpc_center")

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StateStore:
    """Process-wide run state: cumulative stats, rolling activity log and recent runs.

    Nothing here survives a restart. Stats are reset only through ``reset_stats``.
    """

    def __init__(self, log_limit: int = 100, run_history: int = 20) -> None:
        self._lock = threading.RLock()
        self._logs: deque[LogEntry] = deque(maxlen=max(1, int(log_limit)))
        self._runs: deque[SyncRunResult] = deque(maxlen=max(1, int(run_history)))
        self._next_log_id = 1
        self.stats = SyncStats()

    def add_log(self, message: str, level: str = "info", **details: Any) -> LogEntry:
        level = level if level in _LOG_LEVELS else "info"
        with self._lock:
            entry = LogEntry(
                id=self._next_log_id,
                timestamp=_utc_now(),
                level=level,
                message=message,
                details=details,
            )
            self._next_log_id += 1
            self._logs.append(entry)
        logger.log(_LOG_LEVELS[level], "%s: %s", level.upper(), message)
        return entry

    def recent_logs(self, limit: int = 50) -> list[dict[str, Any]]:
        with self._lock:
            entries = list(self._logs)
        limit = max(1, int(limit))
        return [entry.to_dict() for entry in reversed(entries[-limit:])]

    def log_count(self) -> int:
        with self._lock:
            return len(self._logs)

    def record_sync_run(self, result: SyncRunResult) -> None:
        with self._lock:
            self._runs.append(result)
            if result.status != "success":
                return
            self.stats.total_scans += 1
            self.stats.tasks_found += result.tasks_found
            self.stats.events_created += result.created + result.recreated
            self.stats.events_recreated += result.recreated
            self.stats.events_updated += result.updated
            self.stats.events_skipped += result.skipped
            self.stats.events_placeholder += result.placeholders
            self.stats.errors += result.errors
            self.stats.last_run = result.run_at

    def recent_sync_runs(self, limit: int = 20) -> list[dict[str, Any]]:
        with self._lock:
            runs = list(self._runs)
        limit = max(1, int(limit))
        output: list[dict[str, Any]] = []
        for run in reversed(runs[-limit:]):
            item = run.to_dict()
            item.pop("processed_tasks", None)
            output.append(item)
        return output

    def stats_snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self.stats.to_dict()

    def reset_stats(self) -> None:
        with self._lock:
            self.stats = SyncStats()
        self.add_log("Statistics reset", "info")
