"""Proximity tracking: marks coverage points visited from live position fixes.

Session lifecycle::

    IDLE --start--> RUNNING --pause--> PAUSED --resume--> RUNNING
    RUNNING | PAUSED --stop--> FINISHED
    any --reset--> IDLE
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from field_coverage.contracts.coverage_contract import CoverageSet
from field_coverage.core.errors import InvalidTransition
from field_coverage.core.models import PositionFix, TrackingConfig
from field_coverage.geo.kernel import distance

log = logging.getLogger(__name__)

VisitCallback = Callable[[int], None]


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass
class TrackingSession:
    status: SessionStatus = SessionStatus.IDLE
    visited_indices: Set[int] = field(default_factory=set)
    started_at_ms: Optional[int] = None
    elapsed_seconds: int = 0


# command -> (allowed source states, target state)
_TRANSITIONS: Dict[str, tuple[frozenset, SessionStatus]] = {
    "start": (frozenset({SessionStatus.IDLE}), SessionStatus.RUNNING),
    "pause": (frozenset({SessionStatus.RUNNING}), SessionStatus.PAUSED),
    "resume": (frozenset({SessionStatus.PAUSED}), SessionStatus.RUNNING),
    "stop": (frozenset({SessionStatus.RUNNING, SessionStatus.PAUSED}), SessionStatus.FINISHED),
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def format_clock(seconds: int) -> str:
    """``MM:SS`` session clock; minutes keep counting past 59."""
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class TrackingEngine:
    """
    Single-session tracking state machine.

    All public methods take one re-entrant lock, so a timer thread calling
    :meth:`tick` and a location callback calling :meth:`update_position` can
    run concurrently. Visit listeners are invoked after the lock is released.

    Parameters
    ----------
    coverage:
        The coverage set whose points are tracked. Can be bound later with
        :meth:`load`.
    config:
        Visit threshold and accuracy ceiling.
    now_ms:
        Clock used for ``started_at_ms``.
    """

    def __init__(
        self,
        coverage: Optional[CoverageSet] = None,
        config: Optional[TrackingConfig] = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.config = config or TrackingConfig()
        self._now_ms = now_ms
        self._lock = threading.RLock()
        self._listeners: List[VisitCallback] = []
        self._coverage = coverage if coverage is not None else CoverageSet()
        self._session = TrackingSession(visited_indices=set(self._coverage.visited_indices()))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def coverage(self) -> CoverageSet:
        return self._coverage

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._session.status

    @property
    def session(self) -> TrackingSession:
        """Snapshot of the session; mutating it does not affect the engine."""
        with self._lock:
            return replace(self._session, visited_indices=set(self._session.visited_indices))

    def load(self, coverage: CoverageSet) -> None:
        """Bind a freshly generated set and start a new idle session for it.

        Points that are already visited in ``coverage`` seed the session, so
        a restored set resumes where it left off.
        """
        with self._lock:
            self._coverage = coverage
            self._session = TrackingSession(visited_indices=set(coverage.visited_indices()))
            log.info("Tracking %d coverage point(s)", len(coverage))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _transition(self, command: str) -> SessionStatus:
        allowed, target = _TRANSITIONS[command]
        with self._lock:
            current = self._session.status
            if current not in allowed:
                raise InvalidTransition(command, current.value)
            self._session.status = target
            if command == "start":
                self._session.started_at_ms = self._now_ms()
            log.info("Session %s: %s -> %s", command, current.value, target.value)
            return target

    def start(self) -> SessionStatus:
        # Visited history is kept; only reset() clears it.
        return self._transition("start")

    def pause(self) -> SessionStatus:
        return self._transition("pause")

    def resume(self) -> SessionStatus:
        return self._transition("resume")

    def stop(self) -> SessionStatus:
        return self._transition("stop")

    def reset(self) -> SessionStatus:
        with self._lock:
            self._coverage.clear_visits()
            self._session = TrackingSession()
            log.info("Session reset")
            return self._session.status

    def tick(self) -> int:
        """Advance the session clock by one second while running."""
        with self._lock:
            if self._session.status is SessionStatus.RUNNING:
                self._session.elapsed_seconds += 1
            return self._session.elapsed_seconds

    # ------------------------------------------------------------------
    # Fixes
    # ------------------------------------------------------------------

    def update_position(self, fix: PositionFix) -> List[int]:
        """
        Mark every pending point within the visit threshold of ``fix``.

        Returns the indices newly visited by this fix (ascending). Returns an
        empty list when the session is not running or the fix is less
        accurate than the configured ceiling.
        """
        with self._lock:
            if self._session.status is not SessionStatus.RUNNING:
                return []
            if fix.accuracy_m > self.config.accuracy_ceiling_m:
                log.debug(
                    "Stale fix rejected: accuracy %.1f m > ceiling %.1f m",
                    fix.accuracy_m, self.config.accuracy_ceiling_m,
                )
                return []

            here = (fix.longitude, fix.latitude)
            newly: List[int] = []
            for p in self._coverage.pending():
                if distance(here, p.coordinate, "meters") <= self.config.visit_threshold_m:
                    self._coverage.mark_visited(p.index)
                    self._session.visited_indices.add(p.index)
                    newly.append(p.index)
            listeners = list(self._listeners) if newly else []

        for index in newly:
            for cb in listeners:
                try:
                    cb(index)
                except Exception:
                    log.exception("Visit listener failed for point %d", index)
        return newly

    def on_visit(self, callback: VisitCallback) -> Callable[[], None]:
        """Subscribe to visits. Returns a function that unsubscribes."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def summary(self) -> Dict[str, object]:
        with self._lock:
            total = len(self._coverage)
            visited = len(self._session.visited_indices)
            return {
                "status": self._session.status.value,
                "elapsed_seconds": self._session.elapsed_seconds,
                "clock": format_clock(self._session.elapsed_seconds),
                "started_at_ms": self._session.started_at_ms,
                "visited": visited,
                "total": total,
                "remaining": total - visited,
                "visited_indices": sorted(self._session.visited_indices),
            }
