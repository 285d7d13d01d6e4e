"""Geospatial helpers over plain (lng, lat) vertices."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

from .errors import InvalidGeometry

Vertex = Tuple[float, float]


@dataclass(frozen=True)
class Cell:
    sw_lng: float
    sw_lat: float
    ne_lng: float
    ne_lat: float

    @property
    def width(self) -> float:
        return self.ne_lng - self.sw_lng

    @property
    def height(self) -> float:
        return self.ne_lat - self.sw_lat

    def contains(self, lng: float, lat: float) -> bool:
        return self.sw_lng <= lng <= self.ne_lng and self.sw_lat <= lat <= self.ne_lat

    def as_polygon_param(self) -> str:
        return f"{self.sw_lng:.6f},{self.sw_lat:.6f}|{self.ne_lng:.6f},{self.ne_lat:.6f}"


def validate_polygon(polygon: Any) -> List[Vertex]:
    """Return the polygon as a list of float (lng, lat) tuples.

    Raises InvalidGeometry for fewer than 3 vertices or a vertex that is not a
    finite numeric pair. A duplicated closing vertex is kept; the ring is
    treated as implicitly closed either way.
    """
    if polygon is None:
        raise InvalidGeometry("Polygon is missing")
    if isinstance(polygon, (str, bytes, dict)) or not hasattr(polygon, "__iter__"):
        raise InvalidGeometry(f"Polygon must be a sequence of [lng, lat] pairs, got {type(polygon).__name__}")
    vertices: List[Vertex] = []
    for raw in polygon:
        try:
            lng, lat = raw[0], raw[1]
            vertex = (float(lng), float(lat))
        except (TypeError, ValueError, IndexError) as exc:
            raise InvalidGeometry(f"Invalid vertex: {raw!r}") from exc
        if not (math.isfinite(vertex[0]) and math.isfinite(vertex[1])):
            raise InvalidGeometry(f"Non-finite vertex: {raw!r}")
        vertices.append(vertex)
    if len(vertices) < 3:
        raise InvalidGeometry(f"Polygon needs at least 3 vertices, got {len(vertices)}")
    return vertices


def polygon_from_geojson(data: Any) -> List[List[float]]:
    """Extract the exterior ring from a vertex list or GeoJSON object.

    Accepts a bare [[lng, lat], ...] list, a Polygon or MultiPolygon geometry,
    a Feature, or a FeatureCollection (first polygonal feature wins).
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        raise InvalidGeometry("Unsupported polygon input")
    kind = data.get("type")
    if kind == "FeatureCollection":
        for feature in data.get("features") or []:
            geometry = (feature or {}).get("geometry") or {}
            if geometry.get("type") in ("Polygon", "MultiPolygon"):
                return polygon_from_geojson(geometry)
        raise InvalidGeometry("FeatureCollection has no polygon feature")
    if kind == "Feature":
        return polygon_from_geojson(data.get("geometry") or {})
    if kind == "Polygon":
        rings = data.get("coordinates") or []
        if not rings:
            raise InvalidGeometry("Polygon has no coordinates")
        return rings[0]
    if kind == "MultiPolygon":
        polygons = data.get("coordinates") or []
        if not polygons or not polygons[0]:
            raise InvalidGeometry("MultiPolygon has no coordinates")
        return polygons[0][0]
    raise InvalidGeometry(f"Unsupported GeoJSON type: {kind}")


def bounding_box(polygon: Sequence[Sequence[float]]) -> Cell:
    vertices = validate_polygon(polygon)
    lngs = [v[0] for v in vertices]
    lats = [v[1] for v in vertices]
    return Cell(min(lngs), min(lats), max(lngs), max(lats))


def point_in_ring(point: Sequence[float], polygon: Sequence[Sequence[float]]) -> bool:
    """Even-odd ray casting over the implicitly closed ring.

    Edge convention is half-open: an edge includes its lower endpoint in
    latitude and excludes the upper one, and a point is inside when strictly
    left of a crossing. Points on the west or south boundary of an
    axis-aligned ring are therefore inside, points on the east or north
    boundary outside.
    """
    x, y = float(point[0]), float(point[1])
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = float(polygon[i][0]), float(polygon[i][1])
        xj, yj = float(polygon[j][0]), float(polygon[j][1])
        if (yi > y) != (yj > y):
            x_cross = xi + (y - yi) * (xj - xi) / (yj - yi)
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def cell_size_km(cell: Cell) -> Tuple[float, float]:
    mid_lat = (cell.sw_lat + cell.ne_lat) / 2
    width = haversine_km(mid_lat, cell.sw_lng, mid_lat, cell.ne_lng)
    height = haversine_km(cell.sw_lat, cell.sw_lng, cell.ne_lat, cell.sw_lng)
    return width, height
