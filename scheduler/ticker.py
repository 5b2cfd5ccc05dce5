"""
Background clock for Daily Rhythm.

A daemon thread that feeds ticks into the session every TICK_INTERVAL_MS and
saves every AUTOSAVE_SECONDS. Disabled under pytest or when
DAILY_RHYTHM_DISABLE_WATCHERS is set.
"""
import os
import threading
from datetime import datetime
from typing import Optional

from core.config_manager import config
from core.exceptions import RhythmError
from core.logger import get_logger

logger = get_logger("ticker")


def watchers_disabled() -> bool:
    # Keep tests deterministic and avoid long-lived watcher side effects.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return True
    return os.getenv("DAILY_RHYTHM_DISABLE_WATCHERS", "0").lower() in {"1", "true", "yes"}


class Ticker:
    def __init__(self, session, interval_ms: Optional[int] = None, autosave_seconds: Optional[int] = None):
        self.session = session
        self.interval = (interval_ms or config.TICK_INTERVAL_MS) / 1000
        self.autosave_seconds = config.AUTOSAVE_SECONDS if autosave_seconds is None else autosave_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if watchers_disabled():
            logger.info("Ticker disabled by environment")
            return False
        if self.running:
            return True
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="rhythm-ticker", daemon=True)
        self._thread.start()
        logger.info("Ticker started (%.3fs)", self.interval)
        return True

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Ticker stopped")

    def _run(self) -> None:
        last_save = datetime.now()
        while not self._stop.wait(self.interval):
            try:
                now = datetime.now()
                self.session.tick(now)
                if self.autosave_seconds and (now - last_save).total_seconds() >= self.autosave_seconds:
                    self.session.save(now)
                    last_save = now
            except RhythmError as e:
                logger.error("Tick failed: %s", e.get_user_message())
