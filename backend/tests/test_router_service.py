"""
Tests for OSRM route geometry and the straight-line fallback.
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

import router_service
from conftest import ORIGIN, north_of
from config.osrm import osrm_config
from router_service import build_route_polyline, clear_cache, get_route_geometry

STOPS = [ORIGIN, north_of(ORIGIN, 1)]

OSRM_OK = {
    "code": "Ok",
    "routes": [{
        "geometry": {
            "type": "LineString",
            "coordinates": [[80.5526, 16.2315], [80.5530, 16.2360], [80.5526, 16.2405]],
        }
    }],
}


def mock_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture(autouse=True)
def osrm_enabled(monkeypatch):
    monkeypatch.setattr(osrm_config, "GEOMETRY_ENABLED", True)
    monkeypatch.setattr(osrm_config, "CACHE_ENABLED", True)
    clear_cache()
    yield
    clear_cache()


class TestGetRouteGeometry:

    def test_converts_geojson_to_lat_lon(self):
        with patch.object(router_service.requests, "get", return_value=mock_response(payload=OSRM_OK)) as get:
            geometry = get_route_geometry(STOPS)

        assert geometry == [(16.2315, 80.5526), (16.2360, 80.5530), (16.2405, 80.5526)]
        url = get.call_args[0][0]
        assert url.endswith(f"{ORIGIN[1]},{ORIGIN[0]};{STOPS[1][1]},{STOPS[1][0]}")
        assert get.call_args[1]["params"]["geometries"] == "geojson"

    def test_second_request_served_from_cache(self):
        with patch.object(router_service.requests, "get", return_value=mock_response(payload=OSRM_OK)) as get:
            first = get_route_geometry(STOPS)
            second = get_route_geometry(STOPS)
        assert first == second
        assert get.call_count == 1

    def test_disabled_skips_request(self, monkeypatch):
        monkeypatch.setattr(osrm_config, "GEOMETRY_ENABLED", False)
        with patch.object(router_service.requests, "get") as get:
            assert get_route_geometry(STOPS) is None
        get.assert_not_called()

    def test_single_point_skips_request(self):
        with patch.object(router_service.requests, "get") as get:
            assert get_route_geometry([ORIGIN]) is None
        get.assert_not_called()

    @pytest.mark.parametrize("response", [
        mock_response(status_code=503),
        mock_response(payload={"code": "NoRoute", "routes": []}),
        mock_response(payload={"code": "Ok", "routes": [{"geometry": {"coordinates": []}}]}),
    ])
    def test_bad_responses_return_none(self, response):
        with patch.object(router_service.requests, "get", return_value=response):
            assert get_route_geometry(STOPS) is None

    def test_network_error_returns_none(self):
        with patch.object(router_service.requests, "get", side_effect=requests.ConnectionError("down")):
            assert get_route_geometry(STOPS) is None

    def test_failures_are_not_cached(self):
        with patch.object(router_service.requests, "get", side_effect=requests.Timeout("slow")):
            get_route_geometry(STOPS)
        with patch.object(router_service.requests, "get", return_value=mock_response(payload=OSRM_OK)):
            assert get_route_geometry(STOPS) is not None

    def test_cache_is_bounded(self, monkeypatch):
        monkeypatch.setattr(osrm_config, "CACHE_MAX_SIZE", 2)
        with patch.object(router_service.requests, "get", return_value=mock_response(payload=OSRM_OK)):
            for km in (1, 2, 3):
                get_route_geometry([ORIGIN, north_of(ORIGIN, km)])
        assert len(router_service._geometry_cache) == 2


class TestBuildRoutePolyline:

    def test_prefers_road_geometry(self):
        with patch.object(router_service.requests, "get", return_value=mock_response(payload=OSRM_OK)):
            assert len(build_route_polyline(STOPS)) == 3

    def test_falls_back_to_densified_line(self):
        with patch.object(router_service.requests, "get", side_effect=requests.ConnectionError("down")):
            polyline = build_route_polyline(STOPS)
        assert polyline[0] == pytest.approx(STOPS[0])
        assert polyline[-1] == pytest.approx(STOPS[1])
        assert len(polyline) > 2
