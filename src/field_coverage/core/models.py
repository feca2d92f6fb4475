from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field
from shapely.geometry import Polygon, shape
from shapely.geometry.base import BaseGeometry

from field_coverage.core.errors import InvalidGeometry

Units = Literal["meters", "kilometers", "miles"]
GridPattern = Literal["rect", "hex"]


class GenerationConfig(BaseModel):
    """Fully specified generation settings; defaults are applied here, once.

    ``pattern`` and ``rotation_degrees`` are ignored when
    ``use_road_network`` is set, but they are kept so a saved project
    round-trips unchanged.
    """

    spacing: float = 0.05
    units: Units = "kilometers"
    pattern: GridPattern = "rect"
    rotation_degrees: float = 0.0
    margin_meters: float = 0.0
    use_road_network: bool = False


class TrackingConfig(BaseModel):
    # Radius around a coverage point inside which a fix counts as a visit
    visit_threshold_m: float = Field(default=15.0, gt=0)
    # Fixes reporting a worse accuracy than this never produce a visit
    accuracy_ceiling_m: float = Field(default=25.0, ge=0)


class PositionFix(BaseModel):
    latitude: float
    longitude: float
    accuracy_m: float = Field(..., ge=0)
    timestamp_ms: int = 0


def as_polygon(obj: Any) -> Polygon:
    """
    Coerce caller input into a single shapely Polygon.

    Accepts a shapely Polygon, a GeoJSON geometry or Feature dict, or a bare
    exterior ring given as a list of (lon, lat) pairs.
    """
    if isinstance(obj, Polygon):
        geom: BaseGeometry = obj
    elif isinstance(obj, BaseGeometry):
        raise InvalidGeometry(f"Expected a Polygon, got {obj.geom_type}")
    elif isinstance(obj, dict):
        data = obj.get("geometry", obj) if obj.get("type") == "Feature" else obj
        if not data or data.get("type") != "Polygon":
            raise InvalidGeometry(f"Expected a Polygon geometry, got {data.get('type') if data else None}")
        try:
            geom = shape(data)
        except Exception as e:
            raise InvalidGeometry(f"Malformed polygon: {e}") from e
    else:
        try:
            ring = [(float(c[0]), float(c[1])) for c in obj]
        except (TypeError, ValueError, IndexError) as e:
            raise InvalidGeometry(f"Malformed polygon ring: {e}") from e
        if len(ring) < 3:
            raise InvalidGeometry("A polygon ring needs at least 3 distinct corners")
        geom = Polygon(ring)

    if geom.is_empty or len(geom.exterior.coords) < 4:
        raise InvalidGeometry("A polygon ring needs at least 4 coordinates")
    return geom
