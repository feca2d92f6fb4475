"""GeoJSON mapping for a project: polygon + coverage points + settings.

Pure data mapping; reading and writing files is the caller's business.
Visited status is not carried: imported points are all pending.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from shapely.geometry import Polygon, mapping

from field_coverage.contracts.coverage_contract import CoverageSet
from field_coverage.core.errors import InvalidGeometry
from field_coverage.core.models import GenerationConfig, as_polygon
from field_coverage.geo.kernel import to_meters

# Settings assumed for files written before a key existed
_DEFAULT_SETTINGS: Dict[str, Any] = {
    "spacing": 50.0,
    "units": "meters",
    "gridType": "rect",
    "rotation": 0.0,
    "marginMeters": 0.0,
    "useRoads": False,
}


def settings_to_json(config: GenerationConfig) -> Dict[str, Any]:
    return {
        "spacing": config.spacing,
        "units": config.units,
        "gridType": config.pattern,
        "rotation": config.rotation_degrees,
        "marginMeters": config.margin_meters,
        "useRoads": config.use_road_network,
    }


def settings_from_json(raw: Optional[Dict[str, Any]]) -> GenerationConfig:
    s = dict(_DEFAULT_SETTINGS)
    s.update({k: v for k, v in (raw or {}).items() if v is not None})
    return GenerationConfig(
        spacing=float(s["spacing"]),
        units=s["units"],
        pattern=s["gridType"],
        rotation_degrees=float(s["rotation"]),
        margin_meters=float(s["marginMeters"]),
        use_road_network=bool(s["useRoads"]),
    )


def to_feature_collection(
    polygon: Polygon,
    coverage: Optional[CoverageSet],
    config: GenerationConfig,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    features: List[Dict[str, Any]] = [
        {"type": "Feature", "properties": {"role": "area"}, "geometry": mapping(polygon)}
    ]
    for p in coverage or []:
        features.append(
            {
                "type": "Feature",
                "properties": {"index": p.index},
                "geometry": {"type": "Point", "coordinates": [p.lon, p.lat]},
            }
        )

    props: Dict[str, Any] = {"settings": settings_to_json(config)}
    if name is not None:
        props["name"] = name
    if coverage is not None:
        props["source"] = coverage.source

    return {"type": "FeatureCollection", "properties": props, "features": features}


def from_feature_collection(
    data: Dict[str, Any],
) -> Tuple[Polygon, CoverageSet, GenerationConfig, Optional[str]]:
    """Inverse of :func:`to_feature_collection`.

    The first Polygon feature is the area; Point features become coverage
    points ordered by their ``index`` property (file order when absent).
    """
    features = data.get("features") or []

    polygon_feature = next(
        (f for f in features if (f.get("geometry") or {}).get("type") == "Polygon"), None
    )
    if polygon_feature is None:
        raise InvalidGeometry("No polygon found in the feature collection")
    polygon = as_polygon(polygon_feature)

    point_features = [f for f in features if (f.get("geometry") or {}).get("type") == "Point"]
    ordered = sorted(
        enumerate(point_features),
        key=lambda pair: (pair[1].get("properties") or {}).get("index", pair[0]),
    )
    coords = [tuple(f["geometry"]["coordinates"][:2]) for _, f in ordered]

    props = data.get("properties") or {}
    config = settings_from_json(props.get("settings"))
    source = props.get("source") or ("roads" if config.use_road_network else "grid")
    coverage = CoverageSet.from_coordinates(
        coords, source=source, spacing_m=to_meters(config.spacing, config.units)
    )
    return polygon, coverage, config, props.get("name")
