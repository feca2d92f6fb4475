from __future__ import annotations

from field_coverage.providers.base import RoadProvider


def build_provider(provider_str: str) -> RoadProvider:
    """
    Build a road provider from a CLI/API token:
      "overpass"  live OpenStreetMap data
      "mock"      deterministic offline street grid
    """
    token = provider_str.strip().lower() or "overpass"

    # Local imports to avoid circular imports
    from field_coverage.providers.mock import MockRoadProvider
    from field_coverage.providers.overpass import OverpassRoadProvider

    if token == "overpass":
        return OverpassRoadProvider()
    if token == "mock":
        return MockRoadProvider()
    raise ValueError(f"Unknown road provider token: '{token}' (supported: overpass, mock)")
