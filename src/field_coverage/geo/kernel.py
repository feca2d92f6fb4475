"""Geometry kernel: containment, distances, buffering, rotation, line walking.

Coordinates are (longitude, latitude) degrees. Metric operations (buffering,
rotation, tessellation) run in a local equirectangular frame, which is an
affine map of lon/lat and therefore preserves straight edges and containment.
"""
from __future__ import annotations

from dataclasses import dataclass
from math import atan2, cos, radians, sin, sqrt
from typing import Iterable, NamedTuple, Sequence, Tuple, Union

import shapely
from shapely import affinity
from shapely.geometry import LineString, MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry

from field_coverage.core.models import Units


EARTH_RADIUS_M = 6_371_008.8  # mean Earth radius

_METERS_PER_UNIT = {
    "meters": 1.0,
    "kilometers": 1000.0,
    "miles": 1609.344,
}

# Points closer than this to a polygon edge count as on the boundary (outside).
BOUNDARY_TOLERANCE_DEG = 1e-12
BOUNDARY_TOLERANCE_M = 1e-6

LonLat = Tuple[float, float]
PointLike = Union[Point, Sequence[float]]


class BoundingBox(NamedTuple):
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

def to_meters(value: float, units: Units) -> float:
    try:
        return value * _METERS_PER_UNIT[units]
    except KeyError:
        raise ValueError(f"Unknown distance units: {units!r} (supported: {', '.join(_METERS_PER_UNIT)})")


def from_meters(value_m: float, units: Units) -> float:
    try:
        return value_m / _METERS_PER_UNIT[units]
    except KeyError:
        raise ValueError(f"Unknown distance units: {units!r} (supported: {', '.join(_METERS_PER_UNIT)})")


def _xy(point: PointLike) -> LonLat:
    if isinstance(point, Point):
        return (point.x, point.y)
    return (float(point[0]), float(point[1]))


# ---------------------------------------------------------------------------
# Local metric frame
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocalFrame:
    """Equirectangular projection centred on an origin, in metres."""

    origin_lon: float
    origin_lat: float

    @classmethod
    def at(cls, origin: PointLike) -> LocalFrame:
        lon, lat = _xy(origin)
        return cls(origin_lon=lon, origin_lat=lat)

    @property
    def _kx(self) -> float:
        return radians(1.0) * EARTH_RADIUS_M * cos(radians(self.origin_lat))

    @property
    def _ky(self) -> float:
        return radians(1.0) * EARTH_RADIUS_M

    def to_local(self, geometry: BaseGeometry) -> BaseGeometry:
        kx, ky = self._kx, self._ky
        return affinity.affine_transform(
            geometry, [kx, 0.0, 0.0, ky, -kx * self.origin_lon, -ky * self.origin_lat]
        )

    def to_geographic(self, geometry: BaseGeometry) -> BaseGeometry:
        kx, ky = self._kx, self._ky
        return affinity.affine_transform(
            geometry, [1.0 / kx, 0.0, 0.0, 1.0 / ky, self.origin_lon, self.origin_lat]
        )

    def inverse(self, x: float, y: float) -> LonLat:
        return (self.origin_lon + x / self._kx, self.origin_lat + y / self._ky)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def bounding_box(geometry: Union[BaseGeometry, Iterable[PointLike]]) -> BoundingBox:
    if isinstance(geometry, BaseGeometry):
        if geometry.is_empty:
            raise ValueError("Bounding box of an empty geometry is undefined")
        return BoundingBox(*geometry.bounds)

    coords = [_xy(c) for c in geometry]
    if not coords:
        raise ValueError("Bounding box of an empty coordinate sequence is undefined")
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    return BoundingBox(min(lons), min(lats), max(lons), max(lats))


def point_in_polygon(
    point: PointLike,
    polygon: Union[Polygon, MultiPolygon],
    tolerance: float = BOUNDARY_TOLERANCE_DEG,
) -> bool:
    """
    Strict containment: points on (or within ``tolerance`` of) the boundary
    are outside, so lattice points on a shared edge are never double-counted.
    Holes are subtracted.
    """
    pt = point if isinstance(point, Point) else Point(_xy(point))
    if not polygon.contains(pt):
        return False
    return polygon.boundary.distance(pt) > tolerance


def distance(a: PointLike, b: PointLike, units: Units) -> float:
    """Great-circle (haversine) distance between two (lon, lat) points."""
    lon1, lat1 = _xy(a)
    lon2, lat2 = _xy(b)
    lat1r, lon1r, lat2r, lon2r = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2r - lat1r
    dlon = lon2r - lon1r
    h = sin(dlat / 2) ** 2 + cos(lat1r) * cos(lat2r) * sin(dlon / 2) ** 2
    return from_meters(EARTH_RADIUS_M * 2 * atan2(sqrt(h), sqrt(1 - h)), units)


def centroid(polygon: Union[Polygon, MultiPolygon]) -> Point:
    """Arithmetic mean of the exterior ring vertices (closing vertex excluded)."""
    parts = polygon.geoms if isinstance(polygon, MultiPolygon) else [polygon]
    xs: list[float] = []
    ys: list[float] = []
    for part in parts:
        ring = list(part.exterior.coords)[:-1]
        xs.extend(c[0] for c in ring)
        ys.extend(c[1] for c in ring)
    if not xs:
        raise ValueError("Centroid of an empty polygon is undefined")
    return Point(sum(xs) / len(xs), sum(ys) / len(ys))


def rotate(geometry: BaseGeometry, angle_degrees: float, pivot: PointLike) -> BaseGeometry:
    """Rotate about ``pivot``; positive angles are counter-clockwise."""
    if angle_degrees % 360.0 == 0.0:
        return shapely.from_wkb(geometry.wkb)
    frame = LocalFrame.at(pivot)
    local = affinity.rotate(frame.to_local(geometry), angle_degrees, origin=(0.0, 0.0))
    return frame.to_geographic(local)


def buffer_inward(polygon: Polygon, margin_meters: float) -> Union[Polygon, MultiPolygon]:
    """
    Shrink ``polygon`` by ``margin_meters``.

    Returns an empty geometry (check ``.is_empty``) when the margin consumes
    the whole polygon. That is an expected outcome, not an error.
    """
    if margin_meters <= 0:
        return shapely.from_wkb(polygon.wkb)
    frame = LocalFrame.at(centroid(polygon))
    shrunk = frame.to_local(polygon).buffer(-margin_meters)
    if shrunk.is_empty:
        return Polygon()
    if shrunk.geom_type not in ("Polygon", "MultiPolygon"):
        return Polygon()
    return frame.to_geographic(shrunk)


def _segment_lengths(coords: Sequence[LonLat], units: Units) -> list[float]:
    return [distance(coords[i - 1], coords[i], units) for i in range(1, len(coords))]


def line_length(line: Union[LineString, Sequence[PointLike]], units: Units) -> float:
    coords = list(line.coords) if isinstance(line, LineString) else [_xy(c) for c in line]
    return sum(_segment_lengths(coords, units))


def point_at_distance(line: Union[LineString, Sequence[PointLike]], dist: float, units: Units) -> Point:
    """
    Point ``dist`` along the polyline, measured with great-circle segment
    lengths and interpolated linearly inside the segment. Distances past the
    end clamp to the last vertex.
    """
    coords = list(line.coords) if isinstance(line, LineString) else [_xy(c) for c in line]
    if not coords:
        raise ValueError("Cannot walk an empty line")
    if dist <= 0 or len(coords) == 1:
        return Point(coords[0])

    travelled = 0.0
    for (lon1, lat1), (lon2, lat2), seg in zip(coords, coords[1:], _segment_lengths(coords, units)):
        if seg > 0 and travelled + seg >= dist:
            frac = (dist - travelled) / seg
            return Point(lon1 + frac * (lon2 - lon1), lat1 + frac * (lat2 - lat1))
        travelled += seg

    return Point(coords[-1])
