from __future__ import annotations

from typing import Any

import requests

from mpc_center.errors import ConfigError, UpstreamError
from mpc_center.models import AsanaConfig, Task, parse_iso_date

TASK_FIELDS = "gid,name,notes,due_on,assignee.name,projects.name,completed"
PAGE_SIZE = 100
MAX_PAGES = 50


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:300]
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        message = str(errors[0].get("message", "")).strip()
        if message:
            return message
    return response.text[:300]


def _parse_task(payload: dict[str, Any]) -> Task | None:
    task_id = str(payload.get("gid", "") or "").strip()
    if not task_id:
        return None
    try:
        due_date = parse_iso_date(payload.get("due_on"))
    except ValueError:
        due_date = None
    return Task(
        task_id=task_id,
        title=str(payload.get("name", "") or ""),
        notes=str(payload.get("notes", "") or ""),
        due_date=due_date,
        completed=bool(payload.get("completed", False)),
    )


def matches_keyword(task: Task, keyword: str) -> bool:
    if task.completed:
        return False
    return keyword.casefold() in task.title.casefold()


class AsanaClient:
    def __init__(self, config: AsanaConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.config.token and self.config.workspace_id)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.config.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.config.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Asana API error: {exc}") from exc
        if not response.ok:
            detail = _error_detail(response)
            raise UpstreamError(
                f"Asana API error: {detail}",
                status_code=response.status_code,
                detail=detail,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError("Asana API error: response is not JSON") from exc
        return payload if isinstance(payload, dict) else {}

    def search_tasks(self, keyword: str) -> list[Task]:
        if not self.config.token:
            raise ConfigError("Asana token not configured")
        if not self.config.workspace_id:
            raise ConfigError("Asana workspace not configured")

        params: dict[str, Any] = {
            "workspace": self.config.workspace_id,
            "assignee": "me",
            "completed_since": "now",
            "opt_fields": TASK_FIELDS,
            "limit": PAGE_SIZE,
        }
        tasks: list[Task] = []
        for _ in range(MAX_PAGES):
            payload = self._request("GET", "/tasks", params=params)
            for item in payload.get("data", []) or []:
                if not isinstance(item, dict):
                    continue
                task = _parse_task(item)
                if task is not None and matches_keyword(task, keyword):
                    tasks.append(task)
            next_page = payload.get("next_page") or {}
            offset = next_page.get("offset") if isinstance(next_page, dict) else None
            if not offset:
                break
            params = dict(params, offset=offset)
        return tasks

    def update_notes(self, task_id: str, notes: str) -> None:
        if not self.config.token:
            raise ConfigError("Asana token not configured")
        try:
            self._request("PUT", f"/tasks/{requests.utils.quote(task_id, safe='')}", json={"data": {"notes": notes}})
        except UpstreamError as exc:
            raise UpstreamError(
                f"Failed to update Asana task: {exc.detail or exc}",
                status_code=exc.status_code,
                detail=exc.detail,
            ) from exc
