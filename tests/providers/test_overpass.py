"""Tests for the Overpass road provider."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from field_coverage.cache import keys
from field_coverage.contracts.coverage_contract import RoadSegment
from field_coverage.core.errors import RoadDataUnavailable
from field_coverage.geo.kernel import BoundingBox
from field_coverage.providers.overpass import (
    DRIVABLE_HIGHWAY_REGEX,
    OverpassRoadProvider,
    build_roads_query,
    parse_overpass_response,
)

BBOX = BoundingBox(-70.61, -33.46, -70.59, -33.44)

PAYLOAD = {
    "elements": [
        {"type": "way", "id": 10, "nodes": [1, 2, 3], "tags": {"highway": "residential", "name": "Los Leones"}},
        {"type": "way", "id": 11, "nodes": [4, 99], "tags": {"highway": "service"}},
        {"type": "way", "id": 12, "nodes": [3, 4], "tags": {"highway": "track"}},
        {"type": "node", "id": 1, "lat": -33.450, "lon": -70.600},
        {"type": "node", "id": 2, "lat": -33.451, "lon": -70.601},
        {"type": "node", "id": 3, "lat": -33.452, "lon": -70.602},
        {"type": "node", "id": 4, "lat": -33.453, "lon": -70.603},
    ]
}


def _provider(response=None, side_effect=None) -> tuple[OverpassRoadProvider, MagicMock]:
    client = MagicMock()
    client.post_json.return_value = response
    client.post_json.side_effect = side_effect
    return OverpassRoadProvider(url="https://overpass.test/api/interpreter", client=client), client


# ---------------------------------------------------------------------------
# Query + parsing
# ---------------------------------------------------------------------------

def test_query_uses_south_west_north_east():
    q = build_roads_query(BBOX, timeout_s=25)
    assert "(-33.46,-70.61,-33.44,-70.59)" in q
    assert "[timeout:25]" in q
    assert DRIVABLE_HIGHWAY_REGEX in q
    assert "out skel qt;" in q


def test_drivable_classes():
    classes = DRIVABLE_HIGHWAY_REGEX.split("|")
    assert "residential" in classes and "track" in classes
    assert "footway" not in classes


class TestParse:
    def test_ways_resolved_after_nodes(self):
        roads = parse_overpass_response(PAYLOAD)
        assert [r.highway for r in roads] == ["residential", "track"]
        assert roads[0].name == "Los Leones"
        assert roads[0].coordinates == ((-70.600, -33.450), (-70.601, -33.451), (-70.602, -33.452))

    def test_way_with_one_resolvable_node_is_dropped(self):
        roads = parse_overpass_response(PAYLOAD)
        assert all(len(r.coordinates) >= 2 for r in roads)
        assert "service" not in [r.highway for r in roads]

    def test_empty_area(self):
        assert parse_overpass_response({"elements": []}) == []

    def test_missing_elements(self):
        with pytest.raises(ValueError):
            parse_overpass_response({"remark": "runtime error"})


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

class TestFetchRoads:
    def test_posts_query_and_parses(self):
        provider, client = _provider(response=PAYLOAD)
        roads = provider.fetch_roads(BBOX)
        assert len(roads) == 2
        url, = client.post_json.call_args.args
        assert url == "https://overpass.test/api/interpreter"
        assert "(-33.46,-70.61,-33.44,-70.59)" in client.post_json.call_args.kwargs["data"]["data"]

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.ConnectionError("refused"),
            requests.exceptions.ReadTimeout("slow"),
            requests.exceptions.HTTPError("429 Too Many Requests"),
            ValueError("Expecting value: line 1 column 1"),
        ],
    )
    def test_transport_errors_become_unavailable(self, error):
        provider, _ = _provider(side_effect=error)
        with pytest.raises(RoadDataUnavailable) as exc:
            provider.fetch_roads(BBOX)
        assert exc.value.cause is error

    def test_malformed_payload_becomes_unavailable(self):
        provider, _ = _provider(response={"remark": "timeout"})
        with pytest.raises(RoadDataUnavailable):
            provider.fetch_roads(BBOX)

    def test_no_roads_is_not_an_error(self):
        provider, _ = _provider(response={"elements": []})
        assert provider.fetch_roads(BBOX) == []


class TestCache:
    def test_result_is_cached(self, fake_redis):
        provider, client = _provider(response=PAYLOAD)
        first = provider.fetch_roads(BBOX)
        second = provider.fetch_roads(BBOX)

        assert first == second
        assert client.post_json.call_count == 1
        key = keys.overpass_roads(*BBOX)
        assert key in fake_redis.store
        assert fake_redis.ttls[key] == 86400

    def test_cache_hit_skips_network(self, fake_redis):
        fake_redis.set(
            keys.overpass_roads(*BBOX),
            json.dumps([{"coordinates": [[0, 0], [1, 1]], "name": "Cached", "highway": "primary"}]),
        )
        provider, client = _provider(side_effect=AssertionError("network hit"))
        roads = provider.fetch_roads(BBOX)
        assert roads == [RoadSegment(coordinates=((0.0, 0.0), (1.0, 1.0)), name="Cached", highway="primary")]
        client.post_json.assert_not_called()

    def test_bypass_cache(self, fake_redis):
        provider, client = _provider(response=PAYLOAD)
        provider.fetch_roads(BBOX)
        provider.fetch_roads(BBOX, use_cache=False)
        assert client.post_json.call_count == 2

    def test_failures_are_not_cached(self, fake_redis):
        provider, _ = _provider(side_effect=requests.exceptions.ConnectionError("down"))
        with pytest.raises(RoadDataUnavailable):
            provider.fetch_roads(BBOX)
        assert fake_redis.store == {}


def test_cache_keys_are_stable_per_bbox():
    assert keys.overpass_roads(*BBOX) == keys.overpass_roads(*BBOX)
    assert keys.overpass_roads(*BBOX) != keys.overpass_roads(-70.0, -33.0, -69.0, -32.0)
    assert keys.overpass_roads(*BBOX).startswith("fc:overpass:roads:")
