import threading
import unittest
from unittest import mock

from streamcal.models import SyncConfig
from streamcal.scheduler import SyncScheduler


class SyncSchedulerTests(unittest.TestCase):
    def test_runs_at_startup_then_on_manual_trigger(self) -> None:
        triggers: list[str] = []
        done = threading.Event()

        def run_once(trigger: str) -> None:
            triggers.append(trigger)
            if len(triggers) >= 2:
                done.set()

        engine = mock.Mock()
        engine.run_once.side_effect = run_once
        scheduler = SyncScheduler(engine, SyncConfig(interval_seconds=300))

        scheduler.start()
        scheduler.trigger_manual()
        self.assertTrue(done.wait(timeout=5))
        scheduler.stop()

        self.assertEqual(triggers[:2], ["startup", "manual"])
        self.assertFalse(scheduler.is_running())

    def test_interval_has_lower_bound(self) -> None:
        scheduler = SyncScheduler(mock.Mock(), SyncConfig(interval_seconds=5))
        self.assertEqual(scheduler.interval_seconds, 30)


if __name__ == "__main__":
    unittest.main()
