"""Optional Redis cache for fetched road data.

Redis is never required: with no ``FIELD_COVERAGE_REDIS_URL`` or an
unreachable server every helper behaves as a cache miss.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis

from field_coverage.config import settings

log = logging.getLogger(__name__)

_UNSET = object()
_client: Any = _UNSET


def _connect() -> Optional[redis.Redis]:
    if not settings.redis_url:
        log.debug("No Redis URL configured; caching disabled")
        return None
    try:
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True, socket_connect_timeout=3)
        client.ping()
    except (redis.RedisError, ValueError) as exc:
        log.warning("Redis unavailable at %s (%s); caching disabled", settings.redis_url, exc)
        return None
    log.info("Redis connected: %s", settings.redis_url)
    return client


def get_redis() -> Optional[redis.Redis]:
    """Connect on first use. ``None`` when caching is disabled or unreachable."""
    global _client
    if _client is _UNSET:
        _client = _connect()
    return _client


def cache_get_json(key: str) -> Optional[Any]:
    r = get_redis()
    if r is None:
        return None
    try:
        raw = r.get(key)
    except redis.RedisError as exc:
        log.debug("Cache read failed for %s: %s", key, exc)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        log.warning("Ignoring non-JSON cache entry %s", key)
        return None


def cache_set_json(key: str, value: Any, ttl: int) -> None:
    r = get_redis()
    if r is None:
        return
    try:
        r.set(key, json.dumps(value), ex=ttl)
    except redis.RedisError as exc:
        log.debug("Cache write failed for %s: %s", key, exc)
