from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from notioncal.config_manager import ConfigManager
from notioncal.models import AppConfig, SyncResult
from notioncal.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(
        self,
        config_manager: ConfigManager,
        engine_factory: Callable[[AppConfig], SyncEngine] = SyncEngine,
    ) -> None:
        self.config_manager = config_manager
        self.engine_factory = engine_factory
        self.last_result: Optional[SyncResult] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._manual_trigger_event = threading.Event()
        self._run_lock = threading.Lock()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="notioncal-sync-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._manual_trigger_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    def trigger_manual(self) -> None:
        self._manual_trigger_event.set()

    def run_now(self, trigger: str = "manual") -> SyncResult:
        # A fresh engine per pass so config edits apply to the next run.
        with self._run_lock:
            engine = self.engine_factory(self.config_manager.load())
            result = engine.run_once(trigger=trigger)
        self.last_result = result
        logger.info("Sync %s finished with status %s", trigger, result.status)
        return result

    def _loop(self) -> None:
        # Run one sync at startup so the calendar catches up quickly.
        self.run_now(trigger="startup")

        while not self._stop_event.is_set():
            config = self.config_manager.load()
            interval_seconds = max(30, int(config.sync.interval_seconds))
            manual = self._manual_trigger_event.wait(timeout=interval_seconds)
            self._manual_trigger_event.clear()
            if self._stop_event.is_set():
                break
            if manual:
                self.run_now(trigger="manual")
            else:
                self.run_now(trigger="scheduled")
