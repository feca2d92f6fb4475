from __future__ import annotations

from typing import Iterable

from field_coverage.contracts.coverage_contract import RoadSegment
from field_coverage.geo.kernel import BoundingBox
from field_coverage.providers.base import RoadProvider


class MockRoadProvider(RoadProvider):
    """
    Deterministic fake street grid so the pipeline runs end-to-end without
    the network. Lays ``streets`` evenly spaced north-south and east-west
    streets across the bounding box.
    """

    def __init__(self, streets: int = 4):
        self.streets = max(1, streets)

    def fetch_roads(self, bbox: BoundingBox) -> list[RoadSegment]:
        west, south, east, north = bbox
        out: list[RoadSegment] = []
        n = self.streets

        for i in range(n):
            frac = (i + 0.5) / n
            lon = west + frac * (east - west)
            out.append(
                RoadSegment(coordinates=((lon, south), (lon, north)), name=f"Avenue {i + 1}", highway="residential")
            )

        for i in range(n):
            frac = (i + 0.5) / n
            lat = south + frac * (north - south)
            out.append(
                RoadSegment(coordinates=((west, lat), (east, lat)), name=f"Street {i + 1}", highway="residential")
            )

        return out


class StaticRoadProvider(RoadProvider):
    """Returns a fixed list of roads, e.g. pre-fetched or test data."""

    def __init__(self, roads: Iterable[RoadSegment]):
        self.roads = list(roads)

    def fetch_roads(self, bbox: BoundingBox) -> list[RoadSegment]:
        return list(self.roads)