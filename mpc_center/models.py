from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any


EVENT_DURATION = timedelta(hours=1)
DUE_DATE_ANCHOR = time(9, 0)
PLACEHOLDER_ID_PREFIX = "mock_event_"
DEFAULT_SEARCH_KEYWORD = "MEETING"
DEFAULT_REDIRECT_URI = "http://localhost:3000/auth/google/callback"


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return _ensure_tz(parsed)


def parse_iso_date(value: str | date | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return None
    return date.fromisoformat(text)


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def event_start_for(due_date: date | None, now: datetime) -> datetime:
    """Start time for a new event: the due date at 09:00 UTC, or ``now`` when undated."""
    if due_date is None:
        return _ensure_tz(now)
    return datetime.combine(due_date, DUE_DATE_ANCHOR, tzinfo=timezone.utc)


def same_date(task_due: date | None, event_start: datetime | None) -> bool:
    """Whether a task due date and an event start fall on the same UTC calendar date.

    Two missing values are equal, one missing value never is. The due date is
    anchored at 09:00 UTC, the same convention used to materialise new events,
    and both sides are compared in UTC so the local timezone never matters.
    """
    if task_due is None and event_start is None:
        return True
    if task_due is None or event_start is None:
        return False
    anchored = datetime.combine(task_due, DUE_DATE_ANCHOR, tzinfo=timezone.utc)
    return anchored.date() == _ensure_tz(event_start).astimezone(timezone.utc).date()


def is_placeholder_id(event_id: str | None) -> bool:
    return bool(event_id) and str(event_id).startswith(PLACEHOLDER_ID_PREFIX)


@dataclass
class AsanaConfig:
    token: str = ""
    workspace_id: str = ""
    base_url: str = "https://app.asana.com/api/1.0"
    timeout_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AsanaConfig":
        data = data or {}
        return cls(
            token=str(data.get("token", "") or "").strip(),
            workspace_id=str(data.get("workspace_id", "") or "").strip(),
            base_url=str(data.get("base_url", "") or "").strip().rstrip("/") or "https://app.asana.com/api/1.0",
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
        )


@dataclass
class GoogleConfig:
    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    calendar_id: str = "primary"
    redirect_uri: str = DEFAULT_REDIRECT_URI
    timeout_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "GoogleConfig":
        data = data or {}
        return cls(
            client_id=str(data.get("client_id", "") or "").strip(),
            client_secret=str(data.get("client_secret", "") or "").strip(),
            refresh_token=str(data.get("refresh_token", "") or "").strip(),
            calendar_id=str(data.get("calendar_id", "") or "").strip() or "primary",
            redirect_uri=str(data.get("redirect_uri", "") or "").strip() or DEFAULT_REDIRECT_URI,
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
        )

    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class SyncConfig:
    search_keyword: str = DEFAULT_SEARCH_KEYWORD
    interval_hours: float = 4
    placeholder_fallback: bool = True
    log_limit: int = 100
    auto_start: bool = False
    run_on_start: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncConfig":
        data = data or {}
        interval = float(data.get("interval_hours", 4) or 4)
        return cls(
            search_keyword=str(data.get("search_keyword", "") or "").strip() or DEFAULT_SEARCH_KEYWORD,
            interval_hours=interval if interval > 0 else 4,
            placeholder_fallback=bool(data.get("placeholder_fallback", True)),
            log_limit=max(1, int(data.get("log_limit", 100))),
            auto_start=bool(data.get("auto_start", False)),
            run_on_start=bool(data.get("run_on_start", True)),
        )

    @property
    def interval_seconds(self) -> int:
        return max(60, int(self.interval_hours * 3600))


@dataclass
class AppConfig:
    asana: AsanaConfig = field(default_factory=AsanaConfig)
    google: GoogleConfig = field(default_factory=GoogleConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            asana=AsanaConfig.from_dict(data.get("asana")),
            google=GoogleConfig.from_dict(data.get("google")),
            sync=SyncConfig.from_dict(data.get("sync")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_app_config() -> AppConfig:
    return AppConfig()


@dataclass
class Task:
    task_id: str
    title: str
    notes: str = ""
    due_date: date | None = None
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["due_date"] = self.due_date.isoformat() if self.due_date else None
        return payload


@dataclass
class EventSpec:
    title: str
    description: str
    start: datetime
    end: datetime


@dataclass
class CalendarEvent:
    event_id: str
    title: str = ""
    description: str = ""
    start: datetime | None = None
    end: datetime | None = None
    html_link: str | None = None
    placeholder: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["start"] = serialize_datetime(self.start)
        payload["end"] = serialize_datetime(self.end)
        return payload


class SyncAction(str, Enum):
    CREATED = "created"
    RECREATED = "recreated"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class TaskOutcome:
    action: SyncAction
    task_id: str
    task_title: str
    event_id: str | None = None
    event_url: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    note: str | None = None
    placeholder: bool = False
    marker_written: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "task_id": self.task_id,
            "task_title": self.task_title,
            "event_id": self.event_id,
            "event_url": self.event_url,
            "start_time": serialize_datetime(self.start_time),
            "end_time": serialize_datetime(self.end_time),
            "note": self.note,
            "placeholder": self.placeholder,
            "marker_written": self.marker_written,
            "error": self.error,
        }


@dataclass
class SyncRunResult:
    status: str
    message: str
    trigger: str
    keyword: str = ""
    tasks_found: int = 0
    created: int = 0
    recreated: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    placeholders: int = 0
    outcomes: list[TaskOutcome] = field(default_factory=list)
    duration_ms: int = 0
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status,
            "message": self.message,
            "trigger": self.trigger,
            "keyword": self.keyword,
            "tasks_found": self.tasks_found,
            "events_created": self.created,
            "events_recreated": self.recreated,
            "events_updated": self.updated,
            "events_skipped": self.skipped,
            "errors": self.errors,
            "placeholders": self.placeholders,
            "processed_tasks": [outcome.to_dict() for outcome in self.outcomes],
            "duration_ms": self.duration_ms,
            "run_at": serialize_datetime(self.run_at),
        }


@dataclass
class SyncStats:
    total_scans: int = 0
    tasks_found: int = 0
    events_created: int = 0
    events_recreated: int = 0
    events_updated: int = 0
    events_skipped: int = 0
    events_placeholder: int = 0
    errors: int = 0
    last_run: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["last_run"] = serialize_datetime(self.last_run)
        return payload


@dataclass
class LogEntry:
    id: int
    timestamp: datetime
    level: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": serialize_datetime(self.timestamp),
            "type": self.level,
            "message": self.message,
            "details": dict(self.details),
        }
