import threading
import time
import unittest
from unittest import mock

from mpc_center.models import AppConfig
from mpc_center.scheduler import SyncScheduler
from mpc_center.state_store import StateStore


class SyncSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config_manager = mock.Mock()
        self.engine = mock.Mock()
        self.ran = threading.Event()
        self.engine.run_once.side_effect = lambda **_kwargs: self.ran.set()
        self.scheduler = SyncScheduler(self.engine, self.config_manager)
        self.addCleanup(self.scheduler.stop)

    def test_start_runs_once_then_waits_for_interval(self) -> None:
        self.config_manager.load.return_value = AppConfig.from_dict({"sync": {"interval_hours": 2}})

        with mock.patch("mpc_center.scheduler.STARTUP_DELAY_SECONDS", 0.01):
            self.assertTrue(self.scheduler.start())
            self.assertTrue(self.ran.wait(timeout=5))

        self.assertTrue(self.scheduler.is_running)
        self.assertFalse(self.scheduler.start())
        self.engine.run_once.assert_called_once_with(trigger="startup")
        self.assertIsNotNone(self.scheduler.next_run_at)

        self.assertTrue(self.scheduler.stop())
        self.assertFalse(self.scheduler.is_running)
        self.assertIsNone(self.scheduler.next_run_at)
        self.assertFalse(self.scheduler.stop())

    def test_start_without_initial_run(self) -> None:
        self.config_manager.load.return_value = AppConfig.from_dict({"sync": {"run_on_start": False}})

        self.assertTrue(self.scheduler.start())
        self.assertTrue(self.scheduler.stop())

        self.engine.run_once.assert_not_called()

    def test_can_restart_after_stop(self) -> None:
        self.config_manager.load.return_value = AppConfig.from_dict({"sync": {"run_on_start": False}})

        self.assertTrue(self.scheduler.start())
        self.assertTrue(self.scheduler.stop())
        self.assertTrue(self.scheduler.start())
        self.assertTrue(self.scheduler.is_running)

    def _wait_for_logs(self, store: StateStore, count: int) -> None:
        deadline = time.monotonic() + 5
        while store.log_count() < count and time.monotonic() < deadline:
            time.sleep(0.02)

    def test_config_read_failure_is_logged_and_loop_keeps_running(self) -> None:
        self.engine.state_store = StateStore()
        self.config_manager.load.side_effect = [
            AppConfig.from_dict({"sync": {"run_on_start": False}}),
            OSError("config.yaml is busy"),
            OSError("config.yaml is busy"),
        ]

        self.assertTrue(self.scheduler.start())
        self._wait_for_logs(self.engine.state_store, 1)

        self.assertTrue(self.scheduler.is_running)
        entry = self.engine.state_store.recent_logs(limit=1)[0]
        self.assertEqual(entry["type"], "error")
        self.assertIn("config.yaml is busy", entry["message"])
        self.assertIsNotNone(self.scheduler.next_run_at)
        self.engine.run_once.assert_not_called()

    def test_failing_run_is_logged_and_loop_keeps_running(self) -> None:
        self.engine.state_store = StateStore()
        self.engine.run_once.side_effect = RuntimeError("boom")
        self.config_manager.load.return_value = AppConfig()

        with mock.patch("mpc_center.scheduler.STARTUP_DELAY_SECONDS", 0.01):
            self.assertTrue(self.scheduler.start())
            self._wait_for_logs(self.engine.state_store, 1)

        self.assertTrue(self.scheduler.is_running)
        entry = self.engine.state_store.recent_logs(limit=1)[0]
        self.assertEqual(entry["message"], "Sync failed: boom")
        self.assertEqual(entry["details"]["trigger"], "startup")


if __name__ == "__main__":
    unittest.main()
