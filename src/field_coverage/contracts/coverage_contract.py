# path: field-coverage/src/field_coverage/contracts/coverage_contract.py

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, List, Literal, Optional, Tuple

from shapely.geometry import LineString


class PointStatus(str, Enum):
    PENDING = "pending"
    VISITED = "visited"


@dataclass
class CoveragePoint:
    index: int
    lon: float
    lat: float
    status: PointStatus = PointStatus.PENDING

    @property
    def coordinate(self) -> Tuple[float, float]:
        return (self.lon, self.lat)

    @property
    def is_visited(self) -> bool:
        return self.status is PointStatus.VISITED


@dataclass
class CoverageSet:
    """One generation's worth of coverage points.

    Index ``i`` always denotes the same location for the lifetime of the set.
    A new generation produces a new set; sets are never merged.
    """

    points: List[CoveragePoint] = field(default_factory=list)
    source: Literal["grid", "roads"] = "grid"
    spacing_m: float = 0.0

    @classmethod
    def from_coordinates(
        cls,
        coords: Iterable[Tuple[float, float]],
        source: Literal["grid", "roads"] = "grid",
        spacing_m: float = 0.0,
    ) -> CoverageSet:
        pts = [CoveragePoint(index=i, lon=float(lon), lat=float(lat)) for i, (lon, lat) in enumerate(coords)]
        return cls(points=pts, source=source, spacing_m=spacing_m)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[CoveragePoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> CoveragePoint:
        return self.points[index]

    @property
    def is_empty(self) -> bool:
        return not self.points

    def coordinates(self) -> List[Tuple[float, float]]:
        return [p.coordinate for p in self.points]

    def pending(self) -> List[CoveragePoint]:
        return [p for p in self.points if not p.is_visited]

    def visited_indices(self) -> List[int]:
        return [p.index for p in self.points if p.is_visited]

    def mark_visited(self, index: int) -> bool:
        """Flip a point to visited. Returns False if it already was."""
        p = self.points[index]
        if p.is_visited:
            return False
        p.status = PointStatus.VISITED
        return True

    def clear_visits(self) -> None:
        for p in self.points:
            p.status = PointStatus.PENDING


@dataclass(frozen=True)
class RoadSegment:
    coordinates: Tuple[Tuple[float, float], ...]  # (lon, lat) pairs
    name: Optional[str] = None
    highway: Optional[str] = None  # OSM road class tag

    def __post_init__(self) -> None:
        coords = tuple((float(c[0]), float(c[1])) for c in self.coordinates)
        if len(coords) < 2:
            raise ValueError("A road segment needs at least 2 coordinates")
        object.__setattr__(self, "coordinates", coords)

    @property
    def line(self) -> LineString:
        return LineString(self.coordinates)
