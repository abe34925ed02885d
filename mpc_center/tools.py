from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from mpc_center.context import AppContext
from mpc_center.errors import UnknownToolError
from mpc_center.models import serialize_datetime

DEFAULT_LOG_LIMIT = 20

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "check_status",
        "description": "Check the current status of MPC Center including configuration and statistics",
        "input_schema": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "run_sync",
        "description": "Manually trigger a sync that reconciles matching tasks with calendar events",
        "input_schema": {
            "type": "object",
            "properties": {
                "keyword": {
                    "type": "string",
                    "description": "Keyword to match in task titles (default: configured search keyword)",
                }
            },
            "required": [],
        },
    },
    {
        "name": "start_automation",
        "description": "Start the automated sync process that runs every few hours",
        "input_schema": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "stop_automation",
        "description": "Stop the automated sync process",
        "input_schema": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "get_logs",
        "description": "Retrieve recent activity logs from the MPC Center",
        "input_schema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "number",
                    "description": f"Number of logs to retrieve (default: {DEFAULT_LOG_LIMIT})",
                }
            },
        },
    },
]


class ToolSurface:
    """The operations exposed to tool-calling clients, with JSON-serialisable results."""

    def __init__(self, context: AppContext) -> None:
        self.context = context
        self._handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "check_status": self.check_status,
            "run_sync": self.run_sync,
            "start_automation": self.start_automation,
            "stop_automation": self.stop_automation,
            "get_logs": self.get_logs,
        }

    def list_tools(self) -> list[dict[str, Any]]:
        return [dict(tool) for tool in TOOL_DEFINITIONS]

    def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        return handler(dict(arguments or {}))

    def check_status(self, _arguments: dict[str, Any]) -> dict[str, Any]:
        config = self.context.config_manager.load()
        scheduler = self.context.scheduler
        return {
            "is_running": scheduler.is_running,
            "sync_in_progress": self.context.sync_engine.is_syncing,
            "stats": self.context.state_store.stats_snapshot(),
            "config": {
                "search_keyword": config.sync.search_keyword,
                "interval_hours": config.sync.interval_hours,
                "placeholder_fallback": config.sync.placeholder_fallback,
                "asana_configured": bool(config.asana.token),
                "workspace_configured": bool(config.asana.workspace_id),
                "google_configured": config.google.has_client_credentials(),
                "google_authenticated": bool(config.google.refresh_token),
                "calendar_id": config.google.calendar_id,
            },
            "next_run": serialize_datetime(scheduler.next_run_at) if scheduler.is_running else None,
            "server_time": serialize_datetime(datetime.now(timezone.utc)),
        }

    def run_sync(self, arguments: dict[str, Any]) -> dict[str, Any]:
        keyword = arguments.get("keyword")
        result = self.context.sync_engine.run_once(
            trigger="manual",
            keyword=str(keyword) if keyword is not None else None,
        )
        return result.to_dict()

    def start_automation(self, _arguments: dict[str, Any]) -> dict[str, Any]:
        if not self.context.scheduler.start():
            return {"success": False, "message": "Automation already running"}
        interval_hours = self.context.config_manager.load().sync.interval_hours
        message = f"Automation started - running every {interval_hours:g} hours"
        self.context.state_store.add_log(message, "success")
        return {"success": True, "message": message}

    def stop_automation(self, _arguments: dict[str, Any]) -> dict[str, Any]:
        if not self.context.scheduler.stop():
            return {"success": False, "message": "Automation not running"}
        self.context.state_store.add_log("Automation stopped", "info")
        return {"success": True, "message": "Automation stopped"}

    def get_logs(self, arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            limit = int(arguments.get("limit") or DEFAULT_LOG_LIMIT)
        except (TypeError, ValueError):
            limit = DEFAULT_LOG_LIMIT
        logs = self.context.state_store.recent_logs(limit=limit)
        return {
            "logs": logs,
            "total_logs": self.context.state_store.log_count(),
            "showing": len(logs),
        }
