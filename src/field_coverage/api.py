"""FastAPI REST backend for coverage generation and live tracking."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from field_coverage.config import settings
from field_coverage.core.errors import InvalidConfig, InvalidGeometry, InvalidTransition, RoadDataUnavailable
from field_coverage.core.generator import generate_coverage
from field_coverage.core.geojson import to_feature_collection
from field_coverage.core.models import GenerationConfig, PositionFix, TrackingConfig, as_polygon
from field_coverage.geo.kernel import BoundingBox, bounding_box
from field_coverage.providers.registry import build_provider
from field_coverage.tracking.clock import SessionClock
from field_coverage.tracking.engine import TrackingEngine

log = logging.getLogger(__name__)

VERSION = "0.1.0"


def new_engine() -> TrackingEngine:
    return TrackingEngine(
        config=TrackingConfig(
            visit_threshold_m=settings.visit_threshold_m,
            accuracy_ceiling_m=settings.accuracy_ceiling_m,
        )
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    clock: Optional[SessionClock] = None
    if settings.api_clock_enabled:
        clock = SessionClock(app.state.engine)
        clock.start()
    try:
        yield
    finally:
        if clock is not None:
            clock.stop()


app = FastAPI(title="Field Coverage", version=VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# One tracking session per process; the app owns it.
app.state.engine = new_engine()


def get_engine(request: Request) -> TrackingEngine:
    return request.app.state.engine


# ---------------------------------------------------------------------------
# Module-level provider singletons (keep HTTP sessions alive across requests)
# ---------------------------------------------------------------------------
_provider_cache: Dict[str, Any] = {}


def _get_provider(provider_str: str):
    if provider_str not in _provider_cache:
        _provider_cache[provider_str] = build_provider(provider_str)
    return _provider_cache[provider_str]


# ---------------------------------------------------------------------------
# Area tracking: record requested bounding boxes for the background worker
# ---------------------------------------------------------------------------

def _record_active_area(bbox: BoundingBox) -> None:
    """Write the bbox to a Redis sorted set so the worker knows which areas
    to keep road data warm for."""
    try:
        from field_coverage.cache.redis_client import get_redis
        from field_coverage.cache.keys import worker_active_areas

        r = get_redis()
        if r is None:
            return

        area_key = ",".join(f"{v:.5f}" for v in bbox)
        # Score = current unix time so the worker can expire stale areas
        r.zadd(worker_active_areas(), {area_key: time.time()})
    except Exception:
        log.debug("Could not record active area", exc_info=True)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    polygon: Dict[str, Any] = Field(..., description="GeoJSON Polygon geometry or Feature")
    config: GenerationConfig = Field(default_factory=GenerationConfig)
    provider: str = "overpass"
    name: Optional[str] = None


class PositionResponse(BaseModel):
    visited: List[int]
    summary: Dict[str, Any]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    redis_ok = False
    try:
        from field_coverage.cache.redis_client import get_redis
        r = get_redis()
        if r is not None:
            r.ping()
            redis_ok = True
    except Exception:
        log.debug("Redis health check failed", exc_info=True)

    return {"status": "ok", "version": VERSION, "redis": redis_ok}


@app.post("/generate")
async def generate_points(req: GenerateRequest, engine: TrackingEngine = Depends(get_engine)):
    try:
        polygon = as_polygon(req.polygon)
        provider = _get_provider(req.provider) if req.config.use_road_network else None
        coverage = await generate_coverage(polygon, req.config, provider)
    except (InvalidConfig, InvalidGeometry) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RoadDataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    engine.load(coverage)
    if req.config.use_road_network:
        _record_active_area(bounding_box(polygon))

    collection = to_feature_collection(polygon, coverage, req.config, name=req.name)
    collection["properties"]["count"] = len(coverage)
    return collection


@app.post("/tracking/position", response_model=PositionResponse)
def tracking_position(fix: PositionFix, engine: TrackingEngine = Depends(get_engine)):
    visited = engine.update_position(fix)
    return PositionResponse(visited=visited, summary=engine.summary())


@app.get("/tracking")
def tracking_summary(engine: TrackingEngine = Depends(get_engine)):
    return engine.summary()


@app.post("/tracking/{command}")
def tracking_command(command: str, engine: TrackingEngine = Depends(get_engine)):
    actions = {
        "start": engine.start,
        "pause": engine.pause,
        "resume": engine.resume,
        "stop": engine.stop,
        "reset": engine.reset,
        "tick": engine.tick,
    }
    action = actions.get(command)
    if action is None:
        raise HTTPException(status_code=404, detail=f"Unknown tracking command: {command}")
    try:
        action()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return engine.summary()
