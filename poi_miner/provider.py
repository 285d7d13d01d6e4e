"""AMap place search provider and response parsing."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from . import config
from .geo import Cell
from .http import HttpClient, RequestBudget, RequestMetrics

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_NO_DATA = "no_data"
STATUS_ERROR = "error"


@dataclass
class SearchResult:
    status: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    total_count: int = 0
    info: str = ""

    @property
    def is_quota_error(self) -> bool:
        return self.status == STATUS_ERROR and self.info.split(":", 1)[0] in config.AMAP_QUOTA_INFOCODES


class SearchProvider(Protocol):
    def search(
        self,
        free_text: str,
        cell: Cell,
        page_index: int,
        type_filter: str = "",
        page_size: int = config.PAGE_SIZE,
    ) -> SearchResult:
        ...


class AmapPlaceSearch:
    """Rectangle search against the AMap web service polygon endpoint.

    Transport failures (after the HTTP client's own retries) and budget
    exhaustion propagate as exceptions; provider-level failures come back as
    a SearchResult with status "error".
    """

    def __init__(
        self,
        http_client: HttpClient,
        budget: RequestBudget,
        metrics: Optional[RequestMetrics] = None,
        url: str = config.AMAP_PLACE_POLYGON_URL,
    ) -> None:
        self.http = http_client
        self.budget = budget
        self.metrics = metrics
        self.url = url

    def search(
        self,
        free_text: str,
        cell: Cell,
        page_index: int,
        type_filter: str = "",
        page_size: int = config.PAGE_SIZE,
    ) -> SearchResult:
        params = build_polygon_search_params(free_text, cell, page_index, type_filter, page_size)
        self.budget.consume()
        response = self.http.get_json(self.url, params)
        result = parse_search_response(response)
        if result.status == STATUS_ERROR:
            if result.is_quota_error:
                logger.warning("Provider quota/key error: %s", result.info)
            if self.metrics is not None:
                self.metrics.inc_page_error(quota=result.is_quota_error)
        return result


def build_polygon_search_params(
    free_text: str,
    cell: Cell,
    page_index: int,
    type_filter: str,
    page_size: int,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "polygon": cell.as_polygon_param(),
        "offset": int(page_size),
        "page": int(page_index),
        "extensions": config.AMAP_EXTENSIONS,
    }
    if free_text:
        params["keywords"] = free_text
    if type_filter:
        params["types"] = type_filter
    return params


def _parse_location(value: Any) -> Tuple[Optional[float], Optional[float]]:
    if isinstance(value, dict):
        lng = value.get("lng") if value.get("lng") is not None else value.get("lon")
        return _to_float(lng), _to_float(value.get("lat"))
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return _to_float(value[0]), _to_float(value[1])
    if isinstance(value, str) and "," in value:
        lng, lat = value.split(",", 1)
        return _to_float(lng), _to_float(lat)
    return None, None


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _text(value: Any) -> Any:
    # The provider encodes absent scalar fields as empty lists.
    if isinstance(value, list) and not value:
        return ""
    return value


# Adapter/mapper for AMap response fields

def parse_pois(pois: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    parsed: List[Dict[str, Any]] = []
    for p in pois:
        poi_id = _text(p.get("id"))
        if not poi_id:
            continue
        lng, lat = _parse_location(p.get("location"))
        parsed.append(
            {
                "id": str(poi_id),
                "name": _text(p.get("name")) or "",
                "type": _text(p.get("type")) or "",
                "typecode": _text(p.get("typecode")) or "",
                "address": _text(p.get("address")),
                "tel": _text(p.get("tel")),
                "lng": lng,
                "lat": lat,
                "pname": _text(p.get("pname")),
                "cityname": _text(p.get("cityname")),
                "adname": _text(p.get("adname")),
            }
        )
    return parsed


def parse_search_response(response: Dict[str, Any]) -> SearchResult:
    if str(response.get("status", "")) != "1":
        infocode = str(response.get("infocode") or "")
        info = str(response.get("info") or "UNKNOWN_ERROR")
        return SearchResult(status=STATUS_ERROR, info=f"{infocode}:{info}" if infocode else info)

    pois = response.get("pois") or []
    total = _to_int(response.get("count"))
    if not pois:
        return SearchResult(status=STATUS_NO_DATA, total_count=total)
    return SearchResult(
        status=STATUS_SUCCESS,
        records=parse_pois(pois),
        total_count=total,
        info=str(response.get("info") or ""),
    )
