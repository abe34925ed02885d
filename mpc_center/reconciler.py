from __future__ import annotations

from datetime import datetime, timezone

from mpc_center.asana_client import AsanaClient
from mpc_center.errors import ConfigError, UpstreamError
from mpc_center.google_calendar import GoogleCalendarClient
from mpc_center.marker import extract_marker, insert_marker, replace_marker, strip_marker
from mpc_center.models import (
    EVENT_DURATION,
    PLACEHOLDER_ID_PREFIX,
    CalendarEvent,
    EventSpec,
    SyncAction,
    Task,
    TaskOutcome,
    event_start_for,
    is_placeholder_id,
    same_date,
)
from mpc_center.state_store import StateStore

ASANA_TASK_URL = "https://app.asana.com/0/0/{task_id}"


def build_event_spec(task: Task, now: datetime) -> EventSpec:
    start = event_start_for(task.due_date, now)
    body = strip_marker(task.notes) or "No description available"
    return EventSpec(
        title=task.title,
        description=f"{body}\n\nFrom Asana Task: {ASANA_TASK_URL.format(task_id=task.task_id)}",
        start=start,
        end=start + EVENT_DURATION,
    )


def _placeholder_event(task: Task, spec: EventSpec) -> CalendarEvent:
    return CalendarEvent(
        event_id=f"{PLACEHOLDER_ID_PREFIX}{task.task_id}",
        title=spec.title,
        description=spec.description,
        start=spec.start,
        end=spec.end,
        html_link=None,
        placeholder=True,
    )


def _create_event(
    task: Task,
    spec: EventSpec,
    *,
    calendar: GoogleCalendarClient,
    state_store: StateStore,
    placeholder_fallback: bool,
) -> tuple[CalendarEvent, str]:
    try:
        event = calendar.create_event(spec)
    except (ConfigError, UpstreamError) as exc:
        if not placeholder_fallback:
            raise
        state_store.add_log(f"Google Calendar error: {exc}", "error", task_id=task.task_id)
        return _placeholder_event(task, spec), str(exc)
    state_store.add_log(f"Created calendar event: {task.title}", "success", task_id=task.task_id, event_id=event.event_id)
    return event, ""


def _create_and_mark(
    task: Task,
    action: SyncAction,
    *,
    task_source: AsanaClient,
    calendar: GoogleCalendarClient,
    state_store: StateStore,
    placeholder_fallback: bool,
    now: datetime,
) -> TaskOutcome:
    spec = build_event_spec(task, now)
    event, failure = _create_event(
        task,
        spec,
        calendar=calendar,
        state_store=state_store,
        placeholder_fallback=placeholder_fallback,
    )
    outcome = TaskOutcome(
        action=action,
        task_id=task.task_id,
        task_title=task.title,
        event_id=event.event_id,
        event_url=event.html_link,
        start_time=event.start or spec.start,
        end_time=event.end or spec.end,
    )
    if event.placeholder:
        # A placeholder must never be recorded as synced, so the next run retries.
        outcome.placeholder = True
        outcome.note = f"Placeholder event - Google Calendar failed: {failure}. Task notes left unchanged."
        state_store.add_log(
            f"Placeholder event used for task {task.title}; marker not written",
            "warning",
            task_id=task.task_id,
        )
        return outcome

    if action == SyncAction.CREATED:
        new_notes = insert_marker(task.notes, event.event_id)
    else:
        new_notes = replace_marker(task.notes, event.event_id)
    try:
        task_source.update_notes(task.task_id, new_notes)
    except UpstreamError as exc:
        outcome.note = f"Event created but marker write failed: {exc}"
        state_store.add_log(
            f"Failed to update Asana task notes for {task.title}: {exc}",
            "error",
            task_id=task.task_id,
            event_id=event.event_id,
        )
        return outcome
    task.notes = new_notes
    outcome.marker_written = True
    state_store.add_log(f"Updated Asana task notes for task {task.task_id}", "info", task_id=task.task_id)
    return outcome


def reconcile_task(
    task: Task,
    *,
    task_source: AsanaClient,
    calendar: GoogleCalendarClient,
    state_store: StateStore,
    placeholder_fallback: bool = True,
    now: datetime | None = None,
) -> TaskOutcome:
    """Bring the calendar event of one task in line with its due date.

    The marker in the task notes decides the path: no marker creates an event,
    a marker whose event is gone recreates it, a changed due date replaces the
    event (delete then create) and a matching date skips without touching
    either service. Calendar changes always happen before the notes are
    rewritten.
    """
    now = now or datetime.now(timezone.utc)
    options = {
        "task_source": task_source,
        "calendar": calendar,
        "state_store": state_store,
        "placeholder_fallback": placeholder_fallback,
        "now": now,
    }

    existing_id = extract_marker(task.notes)
    if existing_id is None:
        state_store.add_log(f"New meeting task found: {task.title}", "info", task_id=task.task_id)
        return _create_and_mark(task, SyncAction.CREATED, **options)

    state_store.add_log(f"Checking existing meeting task: {task.title}", "info", task_id=task.task_id)
    existing = None if is_placeholder_id(existing_id) else calendar.get_event(existing_id)

    if existing is None:
        state_store.add_log(
            f"Calendar event {existing_id} not found, creating new one: {task.title}",
            "warning",
            task_id=task.task_id,
        )
        return _create_and_mark(task, SyncAction.RECREATED, **options)

    if not same_date(task.due_date, existing.start):
        state_store.add_log(f"Due date changed for task: {task.title}", "info", task_id=task.task_id)
        calendar.delete_event(existing_id)
        state_store.add_log(f"Deleted calendar event {existing_id}", "info", task_id=task.task_id)
        return _create_and_mark(task, SyncAction.UPDATED, **options)

    state_store.add_log(f"No changes needed for task: {task.title}", "info", task_id=task.task_id)
    return TaskOutcome(
        action=SyncAction.SKIPPED,
        task_id=task.task_id,
        task_title=task.title,
        event_id=existing_id,
        event_url=existing.html_link,
        start_time=existing.start,
        end_time=existing.end,
    )
