"""Redis key naming conventions for the field-coverage cache layer."""
from __future__ import annotations

import hashlib

_PREFIX = "fc"


# ── Overpass ─────────────────────────────────────────────────────────────

def overpass_roads(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> str:
    """Key for the parsed road segments of one bounding box."""
    bbox = f"{min_lon:.5f},{min_lat:.5f},{max_lon:.5f},{max_lat:.5f}"
    h = hashlib.sha256(bbox.encode()).hexdigest()[:16]
    return f"{_PREFIX}:overpass:roads:{h}"


# ── Worker ───────────────────────────────────────────────────────────────

def worker_active_areas() -> str:
    return f"{_PREFIX}:worker:active_areas"
