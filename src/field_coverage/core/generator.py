"""Generation entry points: grid tessellation and road-network sampling."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from shapely.geometry import Polygon

from field_coverage.config import settings
from field_coverage.contracts.coverage_contract import CoverageSet
from field_coverage.core.errors import InvalidConfig, RoadDataUnavailable
from field_coverage.core.models import GenerationConfig
from field_coverage.geo.kernel import bounding_box
from field_coverage.geo.road_sampler import sample_along_roads
from field_coverage.geo.tessellator import tessellate, validate_config
from field_coverage.providers.base import RoadProvider

log = logging.getLogger(__name__)

__all__ = ["generate", "generate_from_roads", "generate_coverage", "validate_config"]


def generate(polygon: Polygon, config: GenerationConfig) -> CoverageSet:
    """Synchronous path: masked rectangular or hexagonal lattice."""
    if config.use_road_network:
        raise InvalidConfig("use_road_network is set; call generate_from_roads instead")
    return tessellate(polygon, config)


async def generate_from_roads(
    polygon: Polygon,
    config: GenerationConfig,
    provider: RoadProvider,
    timeout_s: Optional[float] = None,
) -> CoverageSet:
    """
    Asynchronous path: fetch roads for the polygon's bounding box, then sample
    along them. Pattern and rotation do not apply to road sampling.

    A timeout or any provider failure raises ``RoadDataUnavailable``; a
    successful fetch with no roads yields an empty set.
    """
    validate_config(config)
    if config.pattern != "rect" or config.rotation_degrees != 0:
        log.debug("Ignoring pattern=%s rotation=%.1f in road mode", config.pattern, config.rotation_degrees)

    bbox = bounding_box(polygon)
    timeout = timeout_s if timeout_s is not None else settings.road_fetch_timeout_s
    try:
        roads = await asyncio.wait_for(asyncio.to_thread(provider.fetch_roads, bbox), timeout=timeout)
    except asyncio.TimeoutError as e:
        log.warning("Road fetch timed out after %.1fs", timeout)
        raise RoadDataUnavailable(f"Road fetch timed out after {timeout:.1f}s", cause=e) from e
    except RoadDataUnavailable:
        raise
    except Exception as e:
        log.warning("Road provider failed: %s", e)
        raise RoadDataUnavailable(f"Road provider failed: {type(e).__name__}: {e}", cause=e) from e

    return await asyncio.to_thread(sample_along_roads, polygon, roads, config.spacing, config.units)


async def generate_coverage(
    polygon: Polygon,
    config: GenerationConfig,
    provider: Optional[RoadProvider] = None,
    timeout_s: Optional[float] = None,
) -> CoverageSet:
    """
    Dispatch on ``config.use_road_network``. Lattice building and road
    sampling run in worker threads so a large area does not stall the caller's
    event loop.
    """
    if config.use_road_network:
        if provider is None:
            raise InvalidConfig("use_road_network is set but no road provider was given")
        return await generate_from_roads(polygon, config, provider, timeout_s=timeout_s)
    return await asyncio.to_thread(generate, polygon, config)
