from __future__ import annotations

import copy
import errno
import os
import threading
from pathlib import Path
from typing import Any, Mapping

import yaml

from mpc_center.models import AppConfig, default_app_config

SECRET_FIELDS = (
    ("asana", "token"),
    ("google", "client_secret"),
    ("google", "refresh_token"),
)

# Deployment environment variables win over the file but are never saved.
ENV_OVERRIDES = {
    "ASANA_TOKEN": ("asana", "token"),
    "ASANA_WORKSPACE_ID": ("asana", "workspace_id"),
    "GOOGLE_CALENDAR_ID": ("google", "calendar_id"),
    "GOOGLE_CLIENT_ID": ("google", "client_id"),
    "GOOGLE_CLIENT_SECRET": ("google", "client_secret"),
    "GOOGLE_REDIRECT_URI": ("google", "redirect_uri"),
    "GOOGLE_REFRESH_TOKEN": ("google", "refresh_token"),
    "DEFAULT_INTERVAL_HOURS": ("sync", "interval_hours"),
    "DEFAULT_SEARCH_KEYWORD": ("sync", "search_keyword"),
}


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = str(environ.get(env_name, "") or "").strip()
        if not value:
            continue
        overrides.setdefault(section, {})[key] = value
    return overrides


class ConfigManager:
    def __init__(self, config_path: str | os.PathLike[str], environ: Mapping[str, str] | None = None) -> None:
        self.config_path = Path(config_path)
        self.environ = environ
        self._lock = threading.RLock()
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        if self.config_path.exists():
            return
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.save(default_app_config())

    def _load_file(self) -> dict[str, Any]:
        with self.config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        return data if isinstance(data, dict) else {}

    def load(self) -> AppConfig:
        with self._lock:
            data = self._load_file()
            return AppConfig.from_dict(_deep_merge(data, env_overrides(self.environ)))

    def save(self, config: AppConfig) -> None:
        with self._lock:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            config_dict = config.to_dict()
            tmp_path = self.config_path.with_suffix(self.config_path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(
                    config_dict,
                    handle,
                    sort_keys=False,
                    allow_unicode=True,
                    default_flow_style=False,
                )
            try:
                tmp_path.replace(self.config_path)
            except OSError as exc:
                # Some bind-mounted single files in containers cannot be atomically replaced.
                if exc.errno != errno.EBUSY:
                    raise
                with self.config_path.open("w", encoding="utf-8") as handle:
                    yaml.safe_dump(
                        config_dict,
                        handle,
                        sort_keys=False,
                        allow_unicode=True,
                        default_flow_style=False,
                    )
                if tmp_path.exists():
                    tmp_path.unlink()

    def update(self, payload: dict[str, Any]) -> AppConfig:
        with self._lock:
            current = AppConfig.from_dict(self._load_file()).to_dict()
            merged = _deep_merge(current, payload)
            self.save(AppConfig.from_dict(merged))
            return self.load()

    def masked(self) -> dict[str, Any]:
        config = self.load().to_dict()
        for section, key in SECRET_FIELDS:
            if config.get(section, {}).get(key):
                config[section][key] = "***"
        return config
