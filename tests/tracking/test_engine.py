"""Tests for the tracking engine state machine and proximity detection."""

from __future__ import annotations

import logging
import threading
from unittest.mock import MagicMock

import pytest

from field_coverage.contracts.coverage_contract import CoverageSet, PointStatus
from field_coverage.core.errors import InvalidTransition
from field_coverage.core.models import PositionFix, TrackingConfig
from field_coverage.tracking.engine import SessionStatus, TrackingEngine, format_clock
from tests.conftest import coverage_along_x, local_point


def _fix(x: float, y: float = 0.0, accuracy: float = 5.0) -> PositionFix:
    lon, lat = local_point(x, y)
    return PositionFix(latitude=lat, longitude=lon, accuracy_m=accuracy)


@pytest.fixture
def engine() -> TrackingEngine:
    return TrackingEngine(coverage_along_x(), now_ms=lambda: 1_700_000_000_000)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_starts_idle(self, engine):
        assert engine.status is SessionStatus.IDLE
        assert engine.session.started_at_ms is None

    def test_full_cycle(self, engine):
        assert engine.start() is SessionStatus.RUNNING
        assert engine.session.started_at_ms == 1_700_000_000_000
        assert engine.pause() is SessionStatus.PAUSED
        assert engine.resume() is SessionStatus.RUNNING
        assert engine.stop() is SessionStatus.FINISHED

    def test_stop_from_paused(self, engine):
        engine.start()
        engine.pause()
        assert engine.stop() is SessionStatus.FINISHED

    @pytest.mark.parametrize(
        "setup, command",
        [
            ([], "pause"),
            ([], "resume"),
            ([], "stop"),
            (["start"], "start"),
            (["start"], "resume"),
            (["start", "pause"], "pause"),
            (["start", "stop"], "start"),
            (["start", "stop"], "resume"),
        ],
    )
    def test_illegal_transitions_raise(self, engine, setup, command):
        for step in setup:
            getattr(engine, step)()
        before = engine.status
        with pytest.raises(InvalidTransition) as exc:
            getattr(engine, command)()
        assert engine.status is before
        assert command in str(exc.value)

    def test_reset_from_any_state(self, engine):
        engine.start()
        engine.update_position(_fix(300.0))
        engine.tick()
        engine.stop()

        assert engine.reset() is SessionStatus.IDLE
        session = engine.session
        assert session.visited_indices == set()
        assert session.elapsed_seconds == 0
        assert session.started_at_ms is None
        assert all(p.status is PointStatus.PENDING for p in engine.coverage)

    def test_start_keeps_visited_history(self):
        coverage = coverage_along_x()
        coverage.mark_visited(1)
        engine = TrackingEngine(coverage)
        engine.start()
        assert engine.session.visited_indices == {1}

    def test_load_replaces_set_with_idle_session(self, engine):
        engine.start()
        engine.update_position(_fix(0.0))

        fresh = coverage_along_x(n=3)
        engine.load(fresh)
        assert engine.coverage is fresh
        assert engine.status is SessionStatus.IDLE
        assert engine.session.visited_indices == set()
        assert engine.summary()["total"] == 3


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class TestTick:
    def test_counts_only_while_running(self, engine):
        assert engine.tick() == 0          # idle
        engine.start()
        for _ in range(3):
            engine.tick()
        engine.pause()
        assert engine.tick() == 3          # paused
        engine.resume()
        assert engine.tick() == 4
        engine.stop()
        assert engine.tick() == 4          # finished
        engine.reset()
        assert engine.session.elapsed_seconds == 0

    def test_concurrent_ticks_and_fixes(self, engine):
        engine.start()

        def ticker():
            for _ in range(250):
                engine.tick()

        def walker():
            for x in range(0, 400, 20):
                engine.update_position(_fix(float(x)))

        threads = [threading.Thread(target=ticker) for _ in range(4)] + [threading.Thread(target=walker)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert engine.session.elapsed_seconds == 1000
        assert engine.session.visited_indices == {0, 1, 2, 3}


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "00:00"), (59, "00:59"), (125, "02:05"), (3600, "60:00")],
)
def test_format_clock(seconds, expected):
    assert format_clock(seconds) == expected


# ---------------------------------------------------------------------------
# Position fixes
# ---------------------------------------------------------------------------

class TestUpdatePosition:
    def test_ignored_unless_running(self, engine):
        assert engine.update_position(_fix(300.0)) == []
        engine.start()
        engine.pause()
        assert engine.update_position(_fix(300.0)) == []
        assert engine.coverage.visited_indices() == []

    def test_accuracy_ceiling(self, engine):
        engine.start()
        # within 5 m of point 3, but reported accuracy is worse than the ceiling
        assert engine.update_position(_fix(305.0, accuracy=30.0)) == []
        assert engine.coverage[3].status is PointStatus.PENDING

        assert engine.update_position(_fix(305.0, accuracy=20.0)) == [3]
        assert engine.coverage[3].status is PointStatus.VISITED
        assert engine.session.visited_indices == {3}

    def test_threshold(self, engine):
        engine.start()
        assert engine.update_position(_fix(220.0)) == []      # 20 m from point 2
        assert engine.update_position(_fix(210.0)) == [2]     # 10 m

    def test_visits_are_monotonic(self, engine):
        engine.start()
        assert engine.update_position(_fix(100.0)) == [1]
        assert engine.update_position(_fix(101.0)) == []
        engine.update_position(_fix(5000.0))
        engine.pause()
        engine.resume()
        assert engine.coverage[1].is_visited
        assert engine.session.visited_indices == {1}

    def test_several_points_in_one_fix_are_ascending(self):
        engine = TrackingEngine(coverage_along_x(n=5, step_m=10.0))
        engine.start()
        # 12 m, 2 m and 8 m from points 0, 1 and 2; 18 m from point 3
        assert engine.update_position(_fix(12.0)) == [0, 1, 2]

    def test_custom_config(self):
        engine = TrackingEngine(
            coverage_along_x(),
            config=TrackingConfig(visit_threshold_m=50.0, accuracy_ceiling_m=100.0),
        )
        engine.start()
        assert engine.update_position(_fix(140.0, accuracy=80.0)) == [1]

    def test_empty_coverage(self):
        engine = TrackingEngine(CoverageSet())
        engine.start()
        assert engine.update_position(_fix(0.0)) == []
        assert engine.summary()["total"] == 0


# ---------------------------------------------------------------------------
# Listeners + reporting
# ---------------------------------------------------------------------------

class TestListeners:
    def test_called_per_new_visit(self, engine):
        cb = MagicMock()
        engine.on_visit(cb)
        engine.start()
        engine.update_position(_fix(100.0))
        engine.update_position(_fix(100.0))
        cb.assert_called_once_with(1)

    def test_unsubscribe(self, engine):
        cb = MagicMock()
        unsubscribe = engine.on_visit(cb)
        unsubscribe()
        engine.start()
        engine.update_position(_fix(100.0))
        cb.assert_not_called()

    def test_failing_listener_is_logged(self, engine, caplog):
        good = MagicMock()
        engine.on_visit(MagicMock(side_effect=RuntimeError("boom")))
        engine.on_visit(good)
        engine.start()
        with caplog.at_level(logging.ERROR):
            assert engine.update_position(_fix(200.0)) == [2]
        good.assert_called_once_with(2)
        assert "Visit listener failed" in caplog.text


def test_summary(engine):
    engine.start()
    engine.tick()
    engine.update_position(_fix(0.0))
    engine.update_position(_fix(400.0))

    assert engine.summary() == {
        "status": "running",
        "elapsed_seconds": 1,
        "clock": "00:01",
        "started_at_ms": 1_700_000_000_000,
        "visited": 2,
        "total": 5,
        "remaining": 3,
        "visited_indices": [0, 4],
    }


def test_session_is_a_snapshot(engine):
    engine.start()
    snap = engine.session
    snap.visited_indices.add(99)
    snap.elapsed_seconds = 50
    assert engine.session.visited_indices == set()
    assert engine.session.elapsed_seconds == 0
