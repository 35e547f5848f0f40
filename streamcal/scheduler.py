from __future__ import annotations

import logging
import threading
from typing import Optional

from streamcal.models import SyncConfig
from streamcal.sync_engine import SyncEngine


logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, sync_engine: SyncEngine, config: SyncConfig) -> None:
        self.sync_engine = sync_engine
        self.config = config
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._manual_trigger_event = threading.Event()

    @property
    def interval_seconds(self) -> int:
        return max(30, int(self.config.interval_seconds))

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="streamcal-sync-scheduler", daemon=True)
        self._thread.start()
        logger.info("Sync scheduler started, interval %ss", self.interval_seconds)

    def stop(self) -> None:
        self._stop_event.set()
        self._manual_trigger_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    def trigger_manual(self) -> None:
        self._manual_trigger_event.set()

    def _loop(self) -> None:
        # Cycles only ever run on this thread, one after the other.
        self.sync_engine.run_once(trigger="startup")

        while not self._stop_event.is_set():
            manual = self._manual_trigger_event.wait(timeout=self.interval_seconds)
            self._manual_trigger_event.clear()
            if self._stop_event.is_set():
                break
            self.sync_engine.run_once(trigger="manual" if manual else "scheduled")
