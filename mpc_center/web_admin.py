from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, Field

from mpc_center.config_manager import SECRET_FIELDS
from mpc_center.context import AppContext
from mpc_center.errors import ConfigError, UnknownToolError, UpstreamError
from mpc_center.google_calendar import GoogleCalendarClient
from mpc_center.models import serialize_datetime
from mpc_center.tools import ToolSurface

APP_VERSION = "1.1.0"
DEFAULT_LOG_LIMIT = 50


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class SyncRequest(BaseModel):
    keyword: str | None = Field(default=None, max_length=200)


class ToolCallRequest(BaseModel):
    name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


def _now_iso() -> str:
    return serialize_datetime(datetime.now(timezone.utc)) or ""


def _masked_meta(config_dict: dict[str, Any]) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    for section, key in SECRET_FIELDS:
        value = str(config_dict.get(section, {}).get(key, "") or "").strip()
        meta.setdefault(section, {})[key] = {"is_masked": bool(value)}
    return meta


def _sanitize_config_payload(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    """Drop blank or masked secrets so they never overwrite stored ones."""
    sanitized = {key: (dict(value) if isinstance(value, dict) else value) for key, value in payload.items()}
    for section, key in SECRET_FIELDS:
        block = sanitized.get(section)
        if not isinstance(block, dict):
            continue
        secret = block.get(key)
        if secret is not None and str(secret).strip() in {"", "***"}:
            if str(current.get(section, {}).get(key, "") or ""):
                block.pop(key, None)
            else:
                block[key] = ""
        if not block:
            sanitized.pop(section, None)
    return sanitized


def _tool_result(surface: ToolSurface, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    try:
        return surface.call_tool(name, arguments)
    except UnknownToolError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def create_app() -> FastAPI:
    context = AppContext.from_env()
    surface = ToolSurface(context)

    app = FastAPI(title="MPC Center", version=APP_VERSION)
    app.state.context = context
    app.state.tools = surface

    @app.on_event("startup")
    def _startup() -> None:
        context.state_store.add_log("MPC Center started", "success")
        config = context.config_manager.load()
        if not config.asana.token:
            context.state_store.add_log("Warning: ASANA_TOKEN not configured", "warning")
        if not config.google.refresh_token:
            context.state_store.add_log("Warning: Google Calendar not authenticated", "warning")
        if config.sync.auto_start:
            surface.call_tool("start_automation")

    @app.on_event("shutdown")
    def _shutdown() -> None:
        context.scheduler.stop()

    @app.get("/")
    def index() -> dict[str, Any]:
        return {
            "name": "MPC Center API",
            "version": APP_VERSION,
            "description": "Multi-Platform Connection: Asana to Google Calendar with Smart Sync",
            "status": "running",
            "endpoints": {
                "GET /health": "Health check",
                "GET /api/status": "Get current status and stats",
                "POST /api/start": "Start automation",
                "POST /api/stop": "Stop automation",
                "POST /api/sync": "Trigger manual sync",
                "GET /api/logs": "Get recent logs",
                "GET /api/google-status": "Check Google Calendar connection",
                "GET /auth/google": "Authenticate with Google Calendar",
                "GET /api/tools": "List callable tools",
                "POST /api/tools/call": "Call a tool by name",
            },
            "timestamp": _now_iso(),
        }

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "healthy", "timestamp": _now_iso(), "version": APP_VERSION}

    @app.get("/api/status")
    def status() -> dict[str, Any]:
        payload = _tool_result(surface, "check_status")
        payload["recent_runs"] = context.state_store.recent_sync_runs(limit=5)
        return payload

    @app.get("/api/logs")
    def logs(limit: int = DEFAULT_LOG_LIMIT) -> dict[str, Any]:
        limit = max(1, limit)
        return {
            "logs": context.state_store.recent_logs(limit=limit),
            "count": context.state_store.log_count(),
            "limit": limit,
        }

    @app.post("/api/sync")
    def trigger_sync(request: SyncRequest | None = None) -> dict[str, Any]:
        keyword = request.keyword if request is not None else None
        result = context.sync_engine.run_once(trigger="manual", keyword=keyword)
        if result.status == "busy":
            raise HTTPException(status_code=409, detail=result.message)
        return result.to_dict()

    @app.post("/api/start")
    def start_automation() -> dict[str, Any]:
        return _tool_result(surface, "start_automation")

    @app.post("/api/stop")
    def stop_automation() -> dict[str, Any]:
        return _tool_result(surface, "stop_automation")

    @app.post("/api/stats/reset")
    def reset_stats() -> dict[str, Any]:
        context.state_store.reset_stats()
        return {"message": "stats reset", "stats": context.state_store.stats_snapshot()}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        raw = context.config_manager.load().to_dict()
        return {"config": context.config_manager.masked(), "meta": _masked_meta(raw)}

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        current = context.config_manager.load().to_dict()
        sanitized_payload = _sanitize_config_payload(request.payload, current)
        context.config_manager.update(sanitized_payload)
        context.state_store.add_log("Configuration updated", "info")
        return {"message": "config updated", "config": context.config_manager.masked()}

    @app.get("/auth/google")
    def google_auth() -> RedirectResponse:
        client = GoogleCalendarClient(context.config_manager.load().google)
        try:
            return RedirectResponse(client.authorization_url())
        except ConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/auth/google/callback", response_class=HTMLResponse)
    def google_auth_callback(code: str = "") -> HTMLResponse:
        if not code:
            raise HTTPException(status_code=400, detail="No authorization code received")
        client = GoogleCalendarClient(context.config_manager.load().google)
        try:
            refresh_token = client.exchange_code(code)
        except ConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except UpstreamError as exc:
            raise HTTPException(status_code=502, detail=f"Authentication failed: {exc}") from exc
        context.config_manager.update({"google": {"refresh_token": refresh_token}})
        context.state_store.add_log("Google Calendar authenticated successfully", "success")
        return HTMLResponse(
            "<html><body><h1>Google Calendar Connected Successfully!</h1>"
            f"<p>The refresh token was saved to {html.escape(str(context.config_manager.config_path))}.</p>"
            "</body></html>"
        )

    @app.get("/api/google-status")
    def google_status() -> dict[str, Any]:
        client = GoogleCalendarClient(context.config_manager.load().google)
        return client.connection_status()

    @app.get("/api/tools")
    def list_tools() -> dict[str, Any]:
        return {"tools": surface.list_tools()}

    @app.post("/api/tools/call")
    def call_tool(request: ToolCallRequest) -> dict[str, Any]:
        result = _tool_result(surface, request.name, request.arguments)
        return {"name": request.name, "result": result}

    return app


app = create_app()
