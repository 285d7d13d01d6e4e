import pytest

from poi_miner import config
from poi_miner.geo import Cell
from poi_miner.http import BudgetExceededError, HttpClient, RequestBudget, RequestMetrics
from poi_miner.provider import (
    AmapPlaceSearch,
    build_polygon_search_params,
    parse_search_response,
)

CELL = Cell(116.3, 39.9, 116.32, 39.92)

AMAP_PAGE = {
    "status": "1",
    "count": "2",
    "info": "OK",
    "infocode": "10000",
    "pois": [
        {
            "id": "B000A7BD6C",
            "name": "Cafe",
            "type": "餐饮服务;咖啡厅;咖啡厅",
            "typecode": "050500",
            "address": "Road 1",
            "location": "116.310000,39.910000",
            "tel": [],
            "pname": "北京市",
            "cityname": "北京市",
            "adname": "海淀区",
        },
        {"id": "B000A7BD6D", "name": "No location", "typecode": "50100", "location": []},
        {"name": "missing id", "location": "116.31,39.91"},
    ],
}


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.headers = {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        return None


class FakeSession:
    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        return FakeResponse(self.payload)


def make_http_client(payload):
    client = HttpClient(api_key="dummy", timeout=1, retry_max=1, backoff_base=0.0, backoff_max=0.0)
    client.session = FakeSession(payload)
    return client


def test_parse_success_page():
    result = parse_search_response(AMAP_PAGE)
    assert result.status == "success"
    assert result.total_count == 2
    assert [r["id"] for r in result.records] == ["B000A7BD6C", "B000A7BD6D"]
    first = result.records[0]
    assert first["lng"] == 116.31
    assert first["lat"] == 39.91
    assert first["tel"] == ""
    assert first["adname"] == "海淀区"
    second = result.records[1]
    assert second["lng"] is None
    assert second["typecode"] == "50100"


def test_parse_no_data_and_error():
    empty = parse_search_response({"status": "1", "count": "0", "pois": []})
    assert empty.status == "no_data"
    error = parse_search_response({"status": "0", "info": "DAILY_QUERY_OVER_LIMIT", "infocode": "10003"})
    assert error.status == "error"
    assert error.info == "10003:DAILY_QUERY_OVER_LIMIT"
    assert error.is_quota_error
    other = parse_search_response({"status": "0", "info": "INVALID_PARAMS", "infocode": "20000"})
    assert not other.is_quota_error


def test_build_polygon_search_params():
    params = build_polygon_search_params("", CELL, 3, "05|06", 50)
    assert params["polygon"] == "116.300000,39.900000|116.320000,39.920000"
    assert params["types"] == "05|06"
    assert params["page"] == 3
    assert params["offset"] == 50
    assert params["extensions"] == "all"
    assert "keywords" not in params
    assert build_polygon_search_params("咖啡", CELL, 1, "", 25)["keywords"] == "咖啡"


def test_amap_search_consumes_budget_and_sends_key():
    metrics = RequestMetrics()
    budget = RequestBudget(max_search=5, metrics=metrics)
    http_client = make_http_client(AMAP_PAGE)
    provider = AmapPlaceSearch(http_client, budget, metrics=metrics)

    result = provider.search("", CELL, 1, type_filter="05", page_size=50)

    assert result.status == "success"
    assert metrics.network_search == 1
    url, params = http_client.session.calls[0]
    assert url == config.AMAP_PLACE_POLYGON_URL
    assert params["key"] == "dummy"
    assert params["types"] == "05"


def test_amap_search_counts_page_errors():
    metrics = RequestMetrics()
    budget = RequestBudget(max_search=5, metrics=metrics)
    http_client = make_http_client({"status": "0", "info": "USER_DAILY_QUERY_OVER_LIMIT", "infocode": "10044"})
    provider = AmapPlaceSearch(http_client, budget, metrics=metrics)

    result = provider.search("", CELL, 1)

    assert result.status == "error"
    assert metrics.page_errors == 1
    assert metrics.quota_errors == 1


def test_budget_guard_stops_requests_before_network():
    budget = RequestBudget(max_search=1)
    http_client = make_http_client(AMAP_PAGE)
    provider = AmapPlaceSearch(http_client, budget)

    provider.search("", CELL, 1)
    with pytest.raises(BudgetExceededError):
        provider.search("", CELL, 2)
    assert len(http_client.session.calls) == 1
