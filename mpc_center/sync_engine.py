from __future__ import annotations

import threading
import traceback
from datetime import datetime, timezone

from mpc_center.asana_client import AsanaClient
from mpc_center.config_manager import ConfigManager
from mpc_center.errors import MPCCenterError
from mpc_center.google_calendar import GoogleCalendarClient
from mpc_center.models import SyncAction, SyncRunResult, TaskOutcome
from mpc_center.reconciler import reconcile_task
from mpc_center.state_store import StateStore


def _duration_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


def _summary(result: SyncRunResult) -> str:
    message = (
        f"Sync completed: {result.created + result.recreated} created, "
        f"{result.updated} updated, {result.skipped} skipped"
    )
    if result.errors:
        message += f", {result.errors} failed"
    if result.placeholders:
        message += f" ({result.placeholders} placeholder events)"
    return message


class SyncEngine:
    def __init__(self, config_manager: ConfigManager, state_store: StateStore) -> None:
        self.config_manager = config_manager
        self.state_store = state_store
        self._run_guard = threading.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._run_guard.locked()

    def run_once(self, trigger: str = "manual", keyword: str | None = None) -> SyncRunResult:
        if not self._run_guard.acquire(blocking=False):
            message = "Sync already in progress, request ignored"
            self.state_store.add_log(message, "warning", trigger=trigger)
            return SyncRunResult(status="busy", message=message, trigger=trigger, keyword=keyword or "")
        try:
            return self._run(trigger, keyword)
        finally:
            self._run_guard.release()

    def _run(self, trigger: str, keyword: str | None) -> SyncRunResult:
        started_at = datetime.now(timezone.utc)
        keyword = (keyword or "").strip()
        self.state_store.add_log("Starting sync process...", "info", trigger=trigger)

        try:
            config = self.config_manager.load()
            keyword = keyword or config.sync.search_keyword
            task_source = AsanaClient(config.asana)
            calendar = GoogleCalendarClient(config.google)
            self.state_store.add_log(f'Searching for tasks containing "{keyword}"...', "info")
            tasks = task_source.search_tasks(keyword)
        except Exception as exc:
            error_message = str(exc) if isinstance(exc, MPCCenterError) else f"{type(exc).__name__}: {exc}"
            self.state_store.add_log(
                f"Sync failed: {error_message}",
                "error",
                trigger=trigger,
                traceback=traceback.format_exc(limit=5),
            )
            result = SyncRunResult(
                status="error",
                message=error_message,
                trigger=trigger,
                keyword=keyword,
                duration_ms=_duration_ms(started_at),
            )
            self.state_store.record_sync_run(result)
            return result

        result = SyncRunResult(status="success", message="", trigger=trigger, keyword=keyword)
        result.tasks_found = len(tasks)
        if not tasks:
            self.state_store.add_log("No meeting tasks found", "info")
        else:
            self.state_store.add_log(f"Found {len(tasks)} meeting task(s)", "success")

        for task in tasks:
            try:
                outcome = reconcile_task(
                    task,
                    task_source=task_source,
                    calendar=calendar,
                    state_store=self.state_store,
                    placeholder_fallback=config.sync.placeholder_fallback,
                )
            except Exception as exc:
                self.state_store.add_log(
                    f"Error processing task {task.title}: {exc}",
                    "error",
                    task_id=task.task_id,
                    error=f"{type(exc).__name__}: {exc}",
                )
                outcome = TaskOutcome(
                    action=SyncAction.ERROR,
                    task_id=task.task_id,
                    task_title=task.title,
                    error=str(exc),
                )
            result.outcomes.append(outcome)

        for outcome in result.outcomes:
            if outcome.action == SyncAction.CREATED:
                result.created += 1
            elif outcome.action == SyncAction.RECREATED:
                result.recreated += 1
            elif outcome.action == SyncAction.UPDATED:
                result.updated += 1
            elif outcome.action == SyncAction.SKIPPED:
                result.skipped += 1
            elif outcome.action == SyncAction.ERROR:
                result.errors += 1
            if outcome.placeholder:
                result.placeholders += 1

        result.message = _summary(result) if tasks else "No tasks found"
        result.duration_ms = _duration_ms(started_at)
        self.state_store.record_sync_run(result)
        self.state_store.add_log(result.message, "success" if not result.errors else "warning", trigger=trigger)
        return result
