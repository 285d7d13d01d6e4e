"""Regular lattice decomposition of a bounding box into search cells."""
from __future__ import annotations

import math
from typing import List, Tuple

from .geo import Cell

_SPAN_EPSILON = 1e-9


def _steps(span: float, step: float) -> int:
    if span <= 0:
        return 1
    return max(1, int(math.ceil(span / step - _SPAN_EPSILON)))


def grid_shape(bbox: Cell, step: float) -> Tuple[int, int]:
    if step <= 0:
        raise ValueError("Grid step must be > 0")
    return _steps(bbox.height, step), _steps(bbox.width, step)


def decompose(bbox: Cell, step: float) -> List[Cell]:
    """Cover bbox with cells of `step` degrees, row-major from the SW corner.

    Rows advance in latitude, columns in longitude. The NE corner of each cell
    is clamped to the bbox, so the last row and column may be narrower.
    """
    rows, cols = grid_shape(bbox, step)
    cells: List[Cell] = []
    for r in range(rows):
        lat0 = bbox.sw_lat + r * step
        lat1 = bbox.ne_lat if r == rows - 1 else min(bbox.sw_lat + (r + 1) * step, bbox.ne_lat)
        for c in range(cols):
            lng0 = bbox.sw_lng + c * step
            lng1 = bbox.ne_lng if c == cols - 1 else min(bbox.sw_lng + (c + 1) * step, bbox.ne_lng)
            cells.append(Cell(lng0, lat0, lng1, lat1))
    return cells


def estimate_max_requests(cell_count: int, max_pages: int) -> int:
    return cell_count * max(1, max_pages)
