from __future__ import annotations

import threading
from datetime import datetime, time, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import requests

from mpc_center.errors import ConfigError, UpstreamError
from mpc_center.models import (
    CalendarEvent,
    EventSpec,
    GoogleConfig,
    parse_iso_date,
    parse_iso_datetime,
    serialize_datetime,
)

CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
GONE_STATUSES = {404, 410}
# Refresh a little before Google says the access token expires.
TOKEN_EXPIRY_MARGIN = timedelta(seconds=60)


def _quote(value: str) -> str:
    return requests.utils.quote(str(value), safe="")


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            description = payload.get("error_description")
            return f"{error}: {description}" if description else error
    return response.text[:300]


def _parse_event_time(block: Any) -> datetime | None:
    if not isinstance(block, dict):
        return None
    if block.get("dateTime"):
        return parse_iso_datetime(str(block["dateTime"]))
    if block.get("date"):
        all_day = parse_iso_date(str(block["date"]))
        if all_day is not None:
            return datetime.combine(all_day, time.min, tzinfo=timezone.utc)
    return None


def _parse_event(payload: dict[str, Any]) -> CalendarEvent:
    return CalendarEvent(
        event_id=str(payload.get("id", "") or ""),
        title=str(payload.get("summary", "") or ""),
        description=str(payload.get("description", "") or ""),
        start=_parse_event_time(payload.get("start")),
        end=_parse_event_time(payload.get("end")),
        html_link=payload.get("htmlLink") or None,
    )


class GoogleCalendarClient:
    def __init__(self, config: GoogleConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        self._token_lock = threading.Lock()
        self._access_token = ""
        self._access_token_expires_at: datetime | None = None

    def is_configured(self) -> bool:
        return self.config.has_client_credentials()

    def is_authenticated(self) -> bool:
        return bool(self.config.refresh_token)

    def _require_credentials(self) -> None:
        if not self.config.has_client_credentials():
            raise ConfigError("Google Calendar credentials not configured")
        if not self.config.refresh_token:
            raise ConfigError("Google Calendar not authenticated")

    def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = self.session.post(TOKEN_ENDPOINT, data=data, timeout=self.config.timeout_seconds)
        except requests.RequestException as exc:
            raise UpstreamError(f"Google OAuth error: {exc}") from exc
        if not response.ok:
            detail = _error_detail(response)
            raise UpstreamError(f"Google OAuth error: {detail}", status_code=response.status_code, detail=detail)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Google OAuth error: response is not JSON") from exc

    def access_token(self) -> str:
        self._require_credentials()
        with self._token_lock:
            now = datetime.now(timezone.utc)
            if self._access_token and self._access_token_expires_at and now < self._access_token_expires_at:
                return self._access_token
            payload = self._token_request(
                {
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "refresh_token": self.config.refresh_token,
                    "grant_type": "refresh_token",
                }
            )
            token = str(payload.get("access_token", "") or "")
            if not token:
                raise UpstreamError("Google OAuth error: no access token in response")
            expires_in = int(payload.get("expires_in", 3600) or 3600)
            self._access_token = token
            self._access_token_expires_at = now + timedelta(seconds=expires_in) - TOKEN_EXPIRY_MARGIN
            return token

    def _events_url(self, event_id: str = "") -> str:
        base = f"{CALENDAR_API_BASE}/calendars/{_quote(self.config.calendar_id)}/events"
        if event_id:
            return f"{base}/{_quote(event_id)}"
        return base

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.access_token()}"}
        try:
            return self.session.request(
                method,
                url,
                headers=headers,
                timeout=self.config.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Google Calendar error: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: requests.Response, action: str) -> None:
        if response.ok:
            return
        detail = _error_detail(response)
        raise UpstreamError(
            f"Google Calendar {action} failed: {detail}",
            status_code=response.status_code,
            detail=detail,
        )

    @staticmethod
    def _json_payload(response: requests.Response, action: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"Google Calendar {action} failed: response is not JSON") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"Google Calendar {action} failed: unexpected response body")
        return payload

    def get_event(self, event_id: str) -> CalendarEvent | None:
        response = self._request("GET", self._events_url(event_id))
        if response.status_code in GONE_STATUSES:
            return None
        self._raise_for_status(response, "lookup")
        payload = self._json_payload(response, "lookup")
        # Deleted events can still be fetched by id for a while, flagged as cancelled.
        if str(payload.get("status", "")).lower() == "cancelled":
            return None
        return _parse_event(payload)

    def create_event(self, spec: EventSpec) -> CalendarEvent:
        body = {
            "summary": spec.title,
            "description": spec.description,
            "start": {"dateTime": serialize_datetime(spec.start), "timeZone": "UTC"},
            "end": {"dateTime": serialize_datetime(spec.end), "timeZone": "UTC"},
        }
        response = self._request("POST", self._events_url(), json=body)
        self._raise_for_status(response, "create")
        event = _parse_event(self._json_payload(response, "create"))
        if not event.event_id:
            raise UpstreamError("Google Calendar create failed: response has no event id")
        return event

    def delete_event(self, event_id: str) -> None:
        response = self._request("DELETE", self._events_url(event_id))
        if response.status_code in GONE_STATUSES:
            return
        self._raise_for_status(response, "delete")

    def authorization_url(self) -> str:
        if not self.config.has_client_credentials():
            raise ConfigError("Google Calendar credentials not configured")
        query = urlencode(
            {
                "client_id": self.config.client_id,
                "redirect_uri": self.config.redirect_uri,
                "response_type": "code",
                "scope": CALENDAR_SCOPE,
                "access_type": "offline",
                "prompt": "consent",
            }
        )
        return f"{AUTH_ENDPOINT}?{query}"

    def exchange_code(self, code: str) -> str:
        if not self.config.has_client_credentials():
            raise ConfigError("Google Calendar credentials not configured")
        payload = self._token_request(
            {
                "code": code,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": self.config.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        refresh_token = str(payload.get("refresh_token", "") or "")
        if not refresh_token:
            raise UpstreamError("No refresh token received")
        self.config.refresh_token = refresh_token
        return refresh_token

    def connection_status(self) -> dict[str, Any]:
        configured = self.is_configured()
        authenticated = self.is_authenticated()
        can_create_events = False
        if configured and authenticated:
            try:
                can_create_events = bool(self.access_token())
            except (ConfigError, UpstreamError):
                can_create_events = False
        if can_create_events:
            status = "Ready"
        elif configured:
            status = "Needs Authentication"
        else:
            status = "Not Configured"
        return {
            "configured": configured,
            "authenticated": authenticated,
            "can_create_events": can_create_events,
            "auth_url": "/auth/google",
            "calendar_id": self.config.calendar_id,
            "status": status,
        }
