"""Shared fixtures and geometry helpers for the test suite."""

from __future__ import annotations

import pytest
from shapely.geometry import LineString, Polygon, box

from field_coverage.contracts.coverage_contract import CoverageSet, RoadSegment
from field_coverage.geo.kernel import LocalFrame

# Santiago, Chile: far enough from the equator that lon/lat degrees are not square
ORIGIN = (-70.6, -33.45)
FRAME = LocalFrame.at(ORIGIN)


def square_around(side_m: float, origin: tuple[float, float] = ORIGIN) -> Polygon:
    """Square of ``side_m`` metres centred on ``origin`` (lon, lat)."""
    frame = LocalFrame.at(origin)
    half = side_m / 2.0
    return frame.to_geographic(box(-half, -half, half, half))


def local_polygon(coords: list[tuple[float, float]]) -> Polygon:
    """Polygon given in metres around ``ORIGIN``."""
    return FRAME.to_geographic(Polygon(coords))


def local_road(coords: list[tuple[float, float]], name: str | None = None) -> RoadSegment:
    """Road segment given in metres around ``ORIGIN``."""
    line = FRAME.to_geographic(LineString(coords))
    return RoadSegment(coordinates=tuple(line.coords), name=name, highway="residential")


def local_point(x: float, y: float) -> tuple[float, float]:
    return FRAME.inverse(x, y)


def coverage_along_x(n: int = 5, step_m: float = 100.0) -> CoverageSet:
    """``n`` points on the local x axis, ``step_m`` apart, index i at x = i * step_m."""
    return CoverageSet.from_coordinates([local_point(i * step_m, 0.0) for i in range(n)], spacing_m=step_m)


# Irregular, non-convex survey area (metres around ORIGIN)
IRREGULAR_AREA = [
    (-420.0, -310.0),
    (380.0, -455.0),
    (515.0, 120.0),
    (90.0, 40.0),
    (160.0, 470.0),
    (-505.0, 330.0),
]


class FakeRedis:
    """In-memory stand-in for the handful of redis-py calls the app makes."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.zsets: dict[str, dict[str, float]] = {}

    def ping(self):
        return True

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex

    def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)

    def zremrangebyscore(self, key, lo, hi):
        zset = self.zsets.get(key, {})
        hi = float(hi)
        for member in [m for m, score in zset.items() if score <= hi]:
            del zset[member]

    def zrange(self, key, start, end):
        members = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return [m for m, _ in members]


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Never reach a real Redis; tests that want a cache patch in FakeRedis."""
    monkeypatch.setattr("field_coverage.cache.redis_client.get_redis", lambda: None)


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    fake = FakeRedis()
    monkeypatch.setattr("field_coverage.cache.redis_client.get_redis", lambda: fake)
    return fake


@pytest.fixture
def client(monkeypatch):
    """FastAPI test client with a fresh tracking engine and no background clock."""
    from fastapi.testclient import TestClient

    from field_coverage.api import app, new_engine
    from field_coverage.config import settings

    monkeypatch.setattr(settings, "api_clock_enabled", False)
    monkeypatch.setattr(app.state, "engine", new_engine())
    with TestClient(app) as c:
        yield c
