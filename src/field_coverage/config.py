"""Centralized settings for the field-coverage backend."""
from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "FIELD_COVERAGE_"}

    # Redis: empty string means disabled (graceful fallback)
    redis_url: str = ""

    # Overpass road data
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    overpass_query_timeout_s: int = 25   # [timeout:..] inside the QL query
    road_fetch_timeout_s: float = 30.0   # caller-side wait before giving up
    http_tries: int = 3
    http_backoff_s: float = 0.8
    user_agent: str = "FieldCoverage/0.1.0"

    # TTL values in seconds for cached data
    ttl_roads: int = 86400               # 24 h, road network changes slowly

    # Largest lattice or road sample a single generation may build
    max_candidates: int = 250_000

    # Tracking
    visit_threshold_m: float = 15.0
    accuracy_ceiling_m: float = 25.0
    tick_interval_s: float = 1.0
    api_clock_enabled: bool = True   # run a SessionClock inside the API process

    # Background worker
    worker_interval_s: int = 600         # 10 min between warming cycles
    worker_area_max_age_s: int = 86400   # areas not requested for a day are dropped


settings = Settings()
