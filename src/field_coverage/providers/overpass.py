"""Drivable roads from the Overpass API (OpenStreetMap)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from requests.exceptions import RequestException

from field_coverage.cache import keys
from field_coverage.cache.redis_client import cache_get_json, cache_set_json
from field_coverage.config import settings
from field_coverage.contracts.coverage_contract import RoadSegment
from field_coverage.core.errors import RoadDataUnavailable
from field_coverage.geo.kernel import BoundingBox
from field_coverage.providers.base import RoadProvider
from field_coverage.providers.http import HTTPClient

log = logging.getLogger(__name__)

DRIVABLE_HIGHWAY_REGEX = (
    "motorway|trunk|primary|secondary|tertiary|unclassified|residential|service|track"
)


def build_roads_query(bbox: BoundingBox, timeout_s: int = 25) -> str:
    """Overpass QL for drivable ways; Overpass wants (south, west, north, east)."""
    west, south, east, north = bbox
    return f"""
    [out:json][timeout:{timeout_s}];
    (
      way["highway"~"^({DRIVABLE_HIGHWAY_REGEX})$"]
      ({south},{west},{north},{east});
    );
    out body;
    >;
    out skel qt;
    """


def parse_overpass_response(data: Dict[str, Any]) -> List[RoadSegment]:
    """
    Assemble ways into line geometries.

    Nodes are indexed first; ways are then resolved node by node. Ways with
    fewer than two resolvable nodes are dropped.
    """
    elements = data.get("elements")
    if not isinstance(elements, list):
        raise ValueError("Overpass payload has no 'elements' list")

    nodes: Dict[int, tuple[float, float]] = {}
    ways: List[Dict[str, Any]] = []
    for el in elements:
        kind = el.get("type")
        if kind == "node":
            nodes[el["id"]] = (float(el["lon"]), float(el["lat"]))
        elif kind == "way":
            ways.append(el)

    segments: List[RoadSegment] = []
    for way in ways:
        coords = [nodes[n] for n in way.get("nodes", []) if n in nodes]
        if len(coords) < 2:
            continue
        tags = way.get("tags") or {}
        segments.append(
            RoadSegment(coordinates=tuple(coords), name=tags.get("name"), highway=tags.get("highway"))
        )
    return segments


def _segments_to_json(segments: List[RoadSegment]) -> List[Dict[str, Any]]:
    return [
        {"coordinates": [list(c) for c in s.coordinates], "name": s.name, "highway": s.highway}
        for s in segments
    ]


def _segments_from_json(rows: List[Dict[str, Any]]) -> List[RoadSegment]:
    return [
        RoadSegment(
            coordinates=tuple(tuple(c) for c in row["coordinates"]),
            name=row.get("name"),
            highway=row.get("highway"),
        )
        for row in rows
    ]


class OverpassRoadProvider(RoadProvider):
    """
    Road segments for a bounding box via the Overpass interpreter:
      - POST an Overpass QL query restricted to drivable highway classes
      - parse nodes + ways into RoadSegment line geometries

    Parsed results are cached in Redis by bounding box when available.
    """

    def __init__(self, url: Optional[str] = None, client: Optional[HTTPClient] = None):
        self.url = url or settings.overpass_url
        self.client = client or HTTPClient(
            user_agent=settings.user_agent,
            timeout_s=settings.overpass_query_timeout_s + 5,
            tries=settings.http_tries,
            backoff_s=settings.http_backoff_s,
        )

    def fetch_roads(self, bbox: BoundingBox, use_cache: bool = True) -> list[RoadSegment]:
        cache_key = keys.overpass_roads(*bbox)
        if use_cache:
            cached = cache_get_json(cache_key)
            if cached is not None:
                try:
                    return _segments_from_json(cached)
                except (KeyError, TypeError, ValueError):
                    log.warning("Discarding malformed cached roads for %s", cache_key)

        query = build_roads_query(bbox, timeout_s=settings.overpass_query_timeout_s)
        try:
            data = self.client.post_json(self.url, data={"data": query})
        except (RequestException, ValueError) as e:
            log.warning("Overpass request failed for bbox %s: %s", tuple(bbox), e)
            raise RoadDataUnavailable(f"Overpass request failed: {type(e).__name__}: {e}", cause=e) from e

        try:
            segments = parse_overpass_response(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            log.warning("Malformed Overpass response for bbox %s: %s", tuple(bbox), e)
            raise RoadDataUnavailable(f"Malformed Overpass response: {e}", cause=e) from e

        log.info("Overpass returned %d road segment(s)", len(segments))
        cache_set_json(cache_key, _segments_to_json(segments), ttl=settings.ttl_roads)
        return segments
