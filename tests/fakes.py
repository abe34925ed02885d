from __future__ import annotations

from dataclasses import replace

from mpc_center.asana_client import matches_keyword
from mpc_center.errors import UpstreamError
from mpc_center.models import CalendarEvent, EventSpec, Task


class FakeTaskSource:
    """In-memory Asana stand-in: search returns fresh copies, update_notes persists."""

    def __init__(self, tasks: list[Task] | None = None) -> None:
        self.tasks: dict[str, Task] = {task.task_id: task for task in tasks or []}
        self.notes_updates: list[tuple[str, str]] = []
        self.search_error: Exception | None = None
        self.update_error: Exception | None = None

    def search_tasks(self, keyword: str) -> list[Task]:
        if self.search_error is not None:
            raise self.search_error
        return [replace(task) for task in self.tasks.values() if matches_keyword(task, keyword)]

    def update_notes(self, task_id: str, notes: str) -> None:
        if self.update_error is not None:
            raise self.update_error
        self.tasks[task_id].notes = notes
        self.notes_updates.append((task_id, notes))


class FakeCalendar:
    def __init__(self) -> None:
        self.events: dict[str, CalendarEvent] = {}
        self.created: list[CalendarEvent] = []
        self.deleted: list[str] = []
        self.create_error: Exception | None = None
        self.broken_event_ids: set[str] = set()
        self._counter = 0

    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        self.events[event.event_id] = event
        return event

    def create_event(self, spec: EventSpec) -> CalendarEvent:
        if self.create_error is not None:
            raise self.create_error
        self._counter += 1
        event_id = f"evt-{self._counter}"
        event = CalendarEvent(
            event_id=event_id,
            title=spec.title,
            description=spec.description,
            start=spec.start,
            end=spec.end,
            html_link=f"https://calendar.example.com/{event_id}",
        )
        self.events[event_id] = event
        self.created.append(event)
        return event

    def get_event(self, event_id: str) -> CalendarEvent | None:
        if event_id in self.broken_event_ids:
            raise UpstreamError(f"Google Calendar lookup failed: backend error for {event_id}", status_code=500)
        return self.events.get(event_id)

    def delete_event(self, event_id: str) -> None:
        self.events.pop(event_id, None)
        self.deleted.append(event_id)

    @property
    def mutations(self) -> int:
        return len(self.created) + len(self.deleted)
