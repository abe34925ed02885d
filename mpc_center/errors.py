from __future__ import annotations


class MPCCenterError(Exception):
    """Base exception for all mpc-center errors."""


class ConfigError(MPCCenterError):
    """Required credentials or configuration are missing."""


class UpstreamError(MPCCenterError):
    """Asana or Google Calendar returned an error or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class UnknownToolError(MPCCenterError, KeyError):
    """Raised by the tool surface for a tool name it does not expose."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
