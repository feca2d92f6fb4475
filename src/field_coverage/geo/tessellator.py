"""Grid tessellation: masked rectangular or hexagonal lattices over a polygon."""
from __future__ import annotations

import logging
from math import floor, sqrt
from typing import Iterator, List, Tuple

import shapely
from shapely import affinity
from shapely.geometry import Point, Polygon

from field_coverage.config import settings
from field_coverage.contracts.coverage_contract import CoverageSet
from field_coverage.core.errors import InvalidConfig
from field_coverage.core.models import GenerationConfig
from field_coverage.geo.kernel import (
    BOUNDARY_TOLERANCE_M,
    LocalFrame,
    buffer_inward,
    centroid,
    point_in_polygon,
    to_meters,
)

log = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]

# Slack (in steps) when counting lattice lines across a span, so that a span of
# exactly n steps yields n + 1 lines despite floating-point noise.
_LATTICE_EPS = 1e-6


def validate_config(config: GenerationConfig) -> None:
    if not config.spacing > 0:
        raise InvalidConfig(f"spacing must be positive, got {config.spacing}")
    if not 0.0 <= config.rotation_degrees < 360.0:
        raise InvalidConfig(f"rotation_degrees must be in [0, 360), got {config.rotation_degrees}")
    if not config.margin_meters >= 0:
        raise InvalidConfig(f"margin_meters must be non-negative, got {config.margin_meters}")
    try:
        to_meters(config.spacing, config.units)
    except ValueError as e:
        raise InvalidConfig(str(e)) from e


def _line_count(span: float, step: float) -> int:
    if span < 0:
        return 0
    return int(floor(span / step + _LATTICE_EPS)) + 1


def candidate_count(bounds: Bounds, spacing: float, pattern: str) -> int:
    """Lattice size for `bounds` without building it. Exact for rect, an upper bound for hex."""
    min_x, min_y, max_x, max_y = bounds
    if pattern == "hex":
        r = spacing / 2.0
        return _line_count(max_x - min_x, 1.5 * r) * _line_count(max_y - min_y, sqrt(3) * r)
    return _line_count(max_x - min_x, spacing) * _line_count(max_y - min_y, spacing)


def rect_lattice(bounds: Bounds, step: float) -> List[Point]:
    """Uniform lattice from the minimum corner, row-major (south to north, west to east)."""
    min_x, min_y, max_x, max_y = bounds
    n_cols = _line_count(max_x - min_x, step)
    n_rows = _line_count(max_y - min_y, step)
    return [
        Point(min_x + i * step, min_y + j * step)
        for j in range(n_rows)
        for i in range(n_cols)
    ]


def _hexagon(cx: float, cy: float, r: float) -> Polygon:
    h = sqrt(3) / 2 * r
    return Polygon([
        (cx + r, cy),
        (cx + r / 2, cy + h),
        (cx - r / 2, cy + h),
        (cx - r, cy),
        (cx - r / 2, cy - h),
        (cx + r / 2, cy - h),
    ])


def hex_cells(bounds: Bounds, spacing: float) -> Iterator[Polygon]:
    """
    Flat-topped hexagons of vertex-to-vertex width ``spacing`` tiling the
    bounds, column by column from the minimum corner. Odd columns are shifted
    up by half a cell, which is what produces the offset (triangular) pattern
    of the cell centres.
    """
    min_x, min_y, max_x, max_y = bounds
    r = spacing / 2.0
    dx = 1.5 * r
    dy = sqrt(3) * r

    for i in range(_line_count(max_x - min_x, dx)):
        cx = min_x + i * dx
        y0 = min_y + (dy / 2.0 if i % 2 else 0.0)
        for j in range(_line_count(max_y - y0, dy)):
            yield _hexagon(cx, y0 + j * dy, r)


def tessellate(polygon: Polygon, config: GenerationConfig) -> CoverageSet:
    """
    Generate the coverage lattice for ``polygon``.

    The lattice is always built axis-aligned: for a rotated grid the polygon
    is de-rotated about its vertex centroid, masked there, and the surviving
    points are rotated back.
    """
    validate_config(config)
    spacing_m = to_meters(config.spacing, config.units)

    search = polygon
    if config.margin_meters > 0:
        search = buffer_inward(polygon, config.margin_meters)
        if search.is_empty:
            log.info("Margin of %.1f m leaves no searchable area", config.margin_meters)
            return CoverageSet(source="grid", spacing_m=spacing_m)

    pivot = centroid(search)
    frame = LocalFrame.at(pivot)
    working = frame.to_local(search)
    rotation = config.rotation_degrees
    if rotation != 0:
        working = affinity.rotate(working, -rotation, origin=(0.0, 0.0))

    bounds = working.bounds
    n_candidates = candidate_count(bounds, spacing_m, config.pattern)
    if n_candidates > settings.max_candidates:
        raise InvalidConfig(
            f"spacing of {spacing_m:g} m needs {n_candidates} lattice points over this area "
            f"(limit {settings.max_candidates}); increase the spacing"
        )
    if config.pattern == "hex":
        candidates = [cell.centroid for cell in hex_cells(bounds, spacing_m)]
    else:
        candidates = rect_lattice(bounds, spacing_m)

    shapely.prepare(working)
    kept = [p for p in candidates if point_in_polygon(p, working, tolerance=BOUNDARY_TOLERANCE_M)]

    if rotation != 0:
        kept = [affinity.rotate(p, rotation, origin=(0.0, 0.0)) for p in kept]

    coords = [frame.inverse(p.x, p.y) for p in kept]
    log.info(
        "Tessellated %d of %d %s candidates (spacing=%.1f m, rotation=%.1f deg)",
        len(coords), len(candidates), config.pattern, spacing_m, rotation,
    )
    return CoverageSet.from_coordinates(coords, source="grid", spacing_m=spacing_m)
