"""Fixed-cadence session clock, independent of GPS fix arrival."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from field_coverage.config import settings
from field_coverage.tracking.engine import TrackingEngine

log = logging.getLogger(__name__)


class SessionClock:
    """Calls ``engine.tick()`` every ``interval_s`` on a daemon thread.

    The engine only counts ticks while its session is running, so the clock
    can stay up across pause/resume.
    """

    def __init__(self, engine: TrackingEngine, interval_s: Optional[float] = None) -> None:
        self.engine = engine
        self.interval_s = interval_s if interval_s is not None else settings.tick_interval_s
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-clock", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.engine.tick()
            except Exception:
                log.exception("Session clock tick failed")

    def __enter__(self) -> SessionClock:
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
