"""Sample coverage points along road geometries inside a polygon."""
from __future__ import annotations

import logging
from math import floor
from typing import Iterable, List

from shapely.geometry import Point, Polygon, box

from field_coverage.config import settings
from field_coverage.contracts.coverage_contract import CoverageSet, RoadSegment
from field_coverage.core.errors import InvalidConfig
from field_coverage.core.models import Units
from field_coverage.geo.kernel import distance, line_length, point_at_distance, point_in_polygon, to_meters

log = logging.getLogger(__name__)

# Accepted points must be at least this fraction of the spacing apart. Below
# 1.0 so intersections can be slightly denser, while overlapping or
# near-parallel segments still cannot stack duplicates.
MIN_SEPARATION_FACTOR = 0.8


def _is_separated(candidate: Point, accepted: List[Point], threshold: float, units: Units) -> bool:
    for existing in accepted:
        if distance(candidate, existing, units) < threshold:
            return False
    return True


def sample_along_roads(
    polygon: Polygon,
    roads: Iterable[RoadSegment],
    spacing: float,
    units: Units,
) -> CoverageSet:
    """
    Walk every road at fixed arc-length steps and keep the samples that fall
    inside ``polygon`` and respect the minimum separation against every point
    accepted so far (across all roads).

    Output order is road order, then distance along the road, so identical
    inputs always produce an identical set.
    """
    if not spacing > 0:
        raise InvalidConfig(f"spacing must be positive, got {spacing}")
    spacing_m = to_meters(spacing, units)
    threshold = MIN_SEPARATION_FACTOR * spacing

    search_box = box(*polygon.bounds)
    nearby = [(road.line, line_length(road.line, units)) for road in roads if search_box.intersects(road.line)]
    n_samples = sum(int(floor(length / spacing)) + 1 for _, length in nearby)
    if n_samples > settings.max_candidates:
        raise InvalidConfig(
            f"spacing of {spacing_m:g} m needs {n_samples} road samples in this area "
            f"(limit {settings.max_candidates}); increase the spacing"
        )

    accepted: List[Point] = []
    for line, length in nearby:
        k = 0
        d = 0.0
        while d < length:
            candidate = point_at_distance(line, d, units)
            if point_in_polygon(candidate, polygon) and _is_separated(candidate, accepted, threshold, units):
                accepted.append(candidate)
            k += 1
            d = k * spacing

    log.info("Sampled %d points along %d road(s) (spacing=%.1f m)", len(accepted), len(nearby), spacing_m)
    return CoverageSet.from_coordinates(((p.x, p.y) for p in accepted), source="roads", spacing_m=spacing_m)
