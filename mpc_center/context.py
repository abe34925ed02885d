from __future__ import annotations

import os

from mpc_center.config_manager import ConfigManager
from mpc_center.scheduler import SyncScheduler
from mpc_center.state_store import StateStore
from mpc_center.sync_engine import SyncEngine


class AppContext:
    """Everything one process owns: config, run state, engine and scheduler."""

    def __init__(self, config_path: str | os.PathLike[str]) -> None:
        self.config_manager = ConfigManager(config_path)
        config = self.config_manager.load()
        self.state_store = StateStore(log_limit=config.sync.log_limit)
        self.sync_engine = SyncEngine(self.config_manager, self.state_store)
        self.scheduler = SyncScheduler(self.sync_engine, self.config_manager)

    @classmethod
    def from_env(cls) -> "AppContext":
        return cls(os.getenv("MPC_CENTER_CONFIG_PATH", "config.yaml"))
