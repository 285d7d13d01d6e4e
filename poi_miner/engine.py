"""Polygon-constrained POI aggregation.

One run covers the polygon's bounding box with grid cells, pages through the
provider per cell, and keeps only records that are new, inside the original
polygon, and in a selected category. Cells are processed strictly in order;
a failing cell is logged and skipped, never fatal.
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from . import config
from .categories import is_selected, normalize_typecode, parse_selection, selected_labels
from .errors import CellFetchFailure, InvalidGeometry, NoCategorySelected, ProviderUnavailable
from .fetcher import fetch_cell
from .geo import Cell, Vertex, bounding_box, cell_size_km, point_in_ring, validate_polygon
from .grid import decompose
from .http import BudgetExceededError, RequestMetrics
from .provider import SearchProvider
from .reporting import (
    STATUS_COMPLETE,
    STATUS_ERROR,
    STATUS_FETCHING,
    ProgressSink,
    ProgressSnapshot,
)

logger = logging.getLogger(__name__)

Reporter = Union[ProgressSink, Callable[[ProgressSnapshot], None], None]


@dataclass
class PoiRecord:
    id: str
    name: str
    type: str
    typecode: str
    address: str
    lng: float
    lat: float
    tel: str
    pname: str
    cityname: str
    adname: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RunStats:
    cells_total: int = 0
    cells_completed: int = 0
    cells_failed: int = 0
    candidates_seen: int = 0
    invalid_candidates: int = 0
    duplicates_skipped: int = 0
    outside_polygon: int = 0
    category_rejected: int = 0
    accepted: int = 0


@dataclass
class RunResult:
    records: List[PoiRecord]
    snapshot: ProgressSnapshot
    stats: RunStats
    cancelled: bool = False
    budget_exhausted: bool = False
    metrics: Dict[str, int] = field(default_factory=dict)


def _join(value: Any, sep: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return sep.join(str(v) for v in value if v not in (None, ""))
    return str(value)


def normalize_record(raw: Dict[str, Any]) -> PoiRecord:
    return PoiRecord(
        id=str(raw["id"]),
        name=_join(raw.get("name"), ""),
        type=_join(raw.get("type"), ""),
        typecode=normalize_typecode(raw.get("typecode")),
        address=_join(raw.get("address"), ""),
        lng=float(raw["lng"]),
        lat=float(raw["lat"]),
        tel=_join(raw.get("tel"), ";"),
        pname=_join(raw.get("pname"), ""),
        cityname=_join(raw.get("cityname"), ""),
        adname=_join(raw.get("adname"), ""),
    )


def _emitter(reporter: Reporter) -> Callable[[ProgressSnapshot], None]:
    if reporter is None:
        return lambda _snapshot: None
    update = getattr(reporter, "update", None)
    if callable(update):
        return update
    if callable(reporter):
        return reporter
    raise TypeError("reporter must be a ProgressSink or a callable")


def completion_message(
    found: int,
    cancelled: bool = False,
    completed: int = 0,
    total: int = 0,
    budget_exhausted: bool = False,
) -> str:
    if budget_exhausted:
        return f"Stopped: request budget exhausted after {completed}/{total} cells. {found} records kept."
    if cancelled:
        return f"Cancelled after {completed}/{total} cells. {found} records kept."
    if found == 0:
        return (
            "Completed: no matching POIs found (0 records). "
            "Possible causes: provider quota exhausted, key restrictions, "
            "or no POIs of the selected categories in this area."
        )
    return f"Completed: {found} records found."


class AggregationEngine:
    def __init__(
        self,
        step: float = config.GRID_STEP_DEG,
        page_size: int = config.PAGE_SIZE,
        max_pages: int = config.MAX_PAGES_PER_CELL,
        page_delay: float = config.PAGE_DELAY_SECONDS,
        cell_delay: float = config.CELL_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.step = step
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.cell_delay = cell_delay
        self.sleep = sleep
        self.metrics = metrics

    def plan(
        self,
        polygon: Sequence[Sequence[float]],
        selection: Sequence[str],
        provider: Optional[SearchProvider],
    ) -> Tuple[List[Vertex], List[str], List[Cell]]:
        """Validate inputs in pre-flight order and lay out the grid.

        Raises InvalidGeometry, NoCategorySelected or ProviderUnavailable
        without touching the provider.
        """
        vertices = validate_polygon(polygon)
        codes = parse_selection(selection or [])
        if not codes:
            raise NoCategorySelected("Select at least one POI category")
        if provider is None:
            raise ProviderUnavailable("Search provider is not available")
        return vertices, codes, decompose(bounding_box(vertices), self.step)

    def run(
        self,
        polygon: Sequence[Sequence[float]],
        selection: Sequence[str],
        provider: Optional[SearchProvider],
        reporter: Reporter = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> RunResult:
        emit = _emitter(reporter)
        stats = RunStats()

        try:
            vertices, codes, cells = self.plan(polygon, selection, provider)
        except (InvalidGeometry, NoCategorySelected, ProviderUnavailable, ValueError) as exc:
            logger.error("Run aborted before fetching: %s", exc)
            emit(ProgressSnapshot(status=STATUS_ERROR, message=f"Failed: {exc}"))
            raise

        total = len(cells)
        stats.cells_total = total
        width_km, height_km = cell_size_km(cells[0])
        logger.info(
            "Grid: %s cells of %.4f deg (~%.1f x %.1f km), categories=%s",
            total,
            self.step,
            width_km,
            height_km,
            "|".join(codes),
        )
        emit(
            ProgressSnapshot(
                total_cells=total,
                completed_cells=0,
                total_found=0,
                status=STATUS_FETCHING,
                message=f"Scanning... (0/{total})",
            )
        )

        labels = selected_labels(codes)
        records: List[PoiRecord] = []
        unique_ids: Set[str] = set()
        cancelled = False
        budget_exhausted = False

        for i, cell in enumerate(cells):
            if should_cancel is not None and should_cancel():
                cancelled = True
                logger.info("Run cancelled after %s/%s cells", i, total)
                break

            try:
                candidates = fetch_cell(
                    cell,
                    codes,
                    provider,
                    page_size=self.page_size,
                    max_pages=self.max_pages,
                    page_delay=self.page_delay,
                    sleep=self.sleep,
                )
            except BudgetExceededError as exc:
                budget_exhausted = True
                logger.warning("Stopping at cell %s/%s: %s", i + 1, total, exc)
                break
            except Exception as exc:
                candidates = []
                stats.cells_failed += 1
                if self.metrics is not None:
                    self.metrics.inc_cell_failure()
                logger.warning("%s", CellFetchFailure(i, exc))

            self._accept(candidates, vertices, codes, labels, unique_ids, records, stats)

            stats.cells_completed = i + 1
            emit(
                ProgressSnapshot(
                    total_cells=total,
                    completed_cells=i + 1,
                    total_found=len(records),
                    status=STATUS_FETCHING,
                    message=f"Scanning... ({i + 1}/{total}) found: {len(records)}",
                )
            )
            if self.cell_delay > 0:
                self.sleep(self.cell_delay)

        stats.accepted = len(records)
        if not records and not (cancelled or budget_exhausted):
            logger.warning(
                "No data found. Check provider quota, key configuration, "
                "or whether the area contains POIs of the selected categories."
            )
        final = ProgressSnapshot(
            total_cells=total,
            completed_cells=stats.cells_completed,
            total_found=len(records),
            status=STATUS_COMPLETE,
            message=completion_message(
                len(records), cancelled, stats.cells_completed, total, budget_exhausted=budget_exhausted
            ),
        )
        emit(final)
        return RunResult(
            records=records,
            snapshot=final,
            stats=stats,
            cancelled=cancelled,
            budget_exhausted=budget_exhausted,
            metrics=self.metrics.as_dict() if self.metrics is not None else {},
        )

    def _accept(
        self,
        candidates: List[Dict[str, Any]],
        vertices: List[Vertex],
        codes: List[str],
        labels: List[str],
        unique_ids: Set[str],
        records: List[PoiRecord],
        stats: RunStats,
    ) -> None:
        for raw in candidates:
            stats.candidates_seen += 1
            poi_id = raw.get("id")
            lng, lat = raw.get("lng"), raw.get("lat")
            if not poi_id or lng is None or lat is None:
                stats.invalid_candidates += 1
                continue
            poi_id = str(poi_id)
            if poi_id in unique_ids:
                stats.duplicates_skipped += 1
                continue
            if not point_in_ring((lng, lat), vertices):
                stats.outside_polygon += 1
                continue
            if not is_selected(raw, codes, labels):
                stats.category_rejected += 1
                continue
            unique_ids.add(poi_id)
            records.append(normalize_record(raw))
