import pytest

from poi_miner.errors import InvalidGeometry
from poi_miner.geo import Cell, bounding_box, point_in_ring, polygon_from_geojson, validate_polygon

UNIT_SQUARE = [[0, 0], [0, 1], [1, 1], [1, 0]]
# U shape opening to the north: the notch x in (1, 2), y in (1, 3) is outside.
U_SHAPE = [[0, 0], [3, 0], [3, 3], [2, 3], [2, 1], [1, 1], [1, 3], [0, 3]]


def test_bounding_box_min_max():
    bbox = bounding_box([[116.3, 39.9], [116.5, 39.8], [116.4, 40.1]])
    assert bbox == Cell(116.3, 39.8, 116.5, 40.1)


@pytest.mark.parametrize("polygon", [[], [[0, 0]], [[0, 0], [1, 1]]])
def test_bounding_box_rejects_short_polygons(polygon):
    with pytest.raises(InvalidGeometry):
        bounding_box(polygon)


def test_validate_polygon_rejects_bad_vertices():
    with pytest.raises(InvalidGeometry):
        validate_polygon([[0, 0], [1, "x"], [1, 1]])
    with pytest.raises(InvalidGeometry):
        validate_polygon([[0, 0], [1], [1, 1]])
    with pytest.raises(InvalidGeometry):
        validate_polygon(None)


def test_point_in_ring_square_implicitly_closed():
    assert point_in_ring((0.5, 0.5), UNIT_SQUARE)
    assert not point_in_ring((1.5, 0.5), UNIT_SQUARE)
    assert not point_in_ring((0.5, -0.1), UNIT_SQUARE)


def test_point_in_ring_explicitly_closed_ring_matches():
    closed = UNIT_SQUARE + [UNIT_SQUARE[0]]
    for point in [(0.5, 0.5), (0.99, 0.01), (1.2, 0.5), (-0.1, 0.5)]:
        assert point_in_ring(point, closed) == point_in_ring(point, UNIT_SQUARE)


def test_point_in_ring_concave():
    assert point_in_ring((0.5, 2.0), U_SHAPE)
    assert point_in_ring((2.5, 2.0), U_SHAPE)
    assert point_in_ring((1.5, 0.5), U_SHAPE)
    assert not point_in_ring((1.5, 2.0), U_SHAPE)


def test_point_in_ring_edge_convention_is_half_open():
    assert point_in_ring((0.0, 0.5), UNIT_SQUARE)
    assert point_in_ring((0.5, 0.0), UNIT_SQUARE)
    assert not point_in_ring((1.0, 0.5), UNIT_SQUARE)
    assert not point_in_ring((0.5, 1.0), UNIT_SQUARE)


def test_shared_edge_point_belongs_to_one_polygon():
    left = [[0, 0], [1, 0], [1, 1], [0, 1]]
    right = [[1, 0], [2, 0], [2, 1], [1, 1]]
    point = (1.0, 0.5)
    assert point_in_ring(point, left) != point_in_ring(point, right)


def test_polygon_from_geojson_variants():
    ring = [[0, 0], [1, 0], [1, 1], [0, 0]]
    assert polygon_from_geojson(ring) == ring
    assert polygon_from_geojson({"type": "Polygon", "coordinates": [ring]}) == ring
    feature = {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [ring]}}
    assert polygon_from_geojson(feature) == ring
    collection = {
        "type": "FeatureCollection",
        "features": [{"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}}, feature],
    }
    assert polygon_from_geojson(collection) == ring
    assert polygon_from_geojson({"type": "MultiPolygon", "coordinates": [[ring]]}) == ring
    with pytest.raises(InvalidGeometry):
        polygon_from_geojson({"type": "LineString", "coordinates": ring})
