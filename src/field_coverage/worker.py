"""Background road-cache warmer for field-coverage.

Every bounding box generated in road mode through the API is recorded in a
Redis sorted set scored by request time. This worker walks the areas seen in
the last ``settings.worker_area_max_age_s`` seconds and re-fetches their
Overpass roads, so the next road-mode generation for a field already in use
hits a warm cache instead of the public Overpass instance.

Run with:  python -m field_coverage.worker [--once]
"""
from __future__ import annotations

import argparse
import logging
import time
from typing import List, Optional, Tuple

from field_coverage.cache import redis_client
from field_coverage.cache.keys import worker_active_areas
from field_coverage.config import settings
from field_coverage.core.errors import RoadDataUnavailable
from field_coverage.geo.kernel import BoundingBox
from field_coverage.providers.overpass import OverpassRoadProvider

log = logging.getLogger(__name__)

# Pause between areas; the public Overpass instance rate-limits per client
AREA_PAUSE_S = 1.0

Area = Tuple[float, float, float, float]


def _parse_area(member: str) -> Optional[Area]:
    try:
        parts = tuple(float(x) for x in member.split(","))
    except (AttributeError, ValueError):
        return None
    return parts if len(parts) == 4 else None


def active_areas(max_age_s: Optional[int] = None) -> List[Area]:
    """Bounding boxes requested recently, oldest first. Expired ones are pruned."""
    r = redis_client.get_redis()
    if r is None:
        return []

    max_age = max_age_s if max_age_s is not None else settings.worker_area_max_age_s
    r.zremrangebyscore(worker_active_areas(), "-inf", time.time() - max_age)

    areas = []
    for member in r.zrange(worker_active_areas(), 0, -1):
        area = _parse_area(member)
        if area is None:
            log.warning("Skipping malformed active area %r", member)
            continue
        areas.append(area)
    return areas


def warm_area(provider: OverpassRoadProvider, area: Area) -> bool:
    bbox = BoundingBox(*area)
    try:
        roads = provider.fetch_roads(bbox, use_cache=False)
    except RoadDataUnavailable as exc:
        log.warning("Could not refresh roads for %s: %s", tuple(bbox), exc)
        return False
    log.info("Refreshed %d road segment(s) for %s", len(roads), tuple(bbox))
    return True


def run_cycle(provider: Optional[OverpassRoadProvider] = None) -> int:
    """Refresh every active area once. Returns the number of areas visited."""
    areas = active_areas()
    if not areas:
        log.info("No active areas to warm")
        return 0

    provider = provider or OverpassRoadProvider()
    log.info("Warming %d active area(s)", len(areas))
    refreshed = 0
    for i, area in enumerate(areas):
        if i:
            time.sleep(AREA_PAUSE_S)
        refreshed += warm_area(provider, area)
    log.info("Cycle done: %d of %d area(s) refreshed", refreshed, len(areas))
    return len(areas)


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Keep Overpass road data warm for recently requested areas")
    ap.add_argument("--once", action="store_true", help="Run a single warming cycle and exit")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [worker] %(levelname)s %(message)s",
    )

    if redis_client.get_redis() is None:
        log.error("The worker needs Redis to find active areas; set FIELD_COVERAGE_REDIS_URL")
        return 1

    provider = OverpassRoadProvider()
    log.info("Worker starting (interval=%ds)", settings.worker_interval_s)
    while True:
        try:
            run_cycle(provider)
        except Exception:
            log.exception("Warming cycle failed")
        if args.once:
            return 0
        time.sleep(settings.worker_interval_s)


if __name__ == "__main__":
    raise SystemExit(main())
