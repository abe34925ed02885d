from __future__ import annotations

import threading
import traceback
from datetime import datetime, timedelta, timezone
from typing import Optional

from mpc_center.config_manager import ConfigManager
from mpc_center.models import AppConfig, default_app_config
from mpc_center.sync_engine import SyncEngine

STARTUP_DELAY_SECONDS = 1.0


class SyncScheduler:
    def __init__(self, sync_engine: SyncEngine, config_manager: ConfigManager) -> None:
        self.sync_engine = sync_engine
        self.config_manager = config_manager
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self.next_run_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive() and not self._stop_event.is_set())

    def start(self) -> bool:
        with self._state_lock:
            if self.is_running:
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event,),
                name="mpc-center-sync-scheduler",
                daemon=True,
            )
            self._thread.start()
            return True

    def stop(self) -> bool:
        with self._state_lock:
            if not self.is_running:
                return False
            self._stop_event.set()
            thread = self._thread
        # An in-flight run is not aborted; it finishes on its own thread.
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self.next_run_at = None
        return True

    def _schedule_next(self, delay_seconds: float) -> None:
        self.next_run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)

    def _load_config(self) -> Optional[AppConfig]:
        try:
            return self.config_manager.load()
        except Exception as exc:
            self.sync_engine.state_store.add_log(
                f"Scheduler could not load config, keeping previous interval: {exc}",
                "error",
                error=f"{type(exc).__name__}: {exc}",
            )
            return None

    def _run(self, trigger: str) -> None:
        try:
            self.sync_engine.run_once(trigger=trigger)
        except Exception as exc:
            self.sync_engine.state_store.add_log(
                f"Sync failed: {exc}",
                "error",
                trigger=trigger,
                traceback=traceback.format_exc(limit=5),
            )

    def _loop(self, stop_event: threading.Event) -> None:
        config = self._load_config() or default_app_config()
        interval_seconds = config.sync.interval_seconds
        if config.sync.run_on_start:
            self._schedule_next(STARTUP_DELAY_SECONDS)
            if stop_event.wait(timeout=STARTUP_DELAY_SECONDS):
                return
            self._run("startup")

        while not stop_event.is_set():
            config = self._load_config()
            if config is not None:
                interval_seconds = config.sync.interval_seconds
            self._schedule_next(interval_seconds)
            if stop_event.wait(timeout=interval_seconds):
                break
            self.sync_engine.state_store.add_log("Scheduled sync triggered", "info")
            self._run("scheduled")
