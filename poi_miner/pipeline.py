"""Pipeline orchestration: wire the provider, run the engine, write outputs."""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import config
from .engine import AggregationEngine, RunResult
from .errors import PoiMinerError
from .http import HttpClient, RequestBudget, RequestMetrics
from .provider import AmapPlaceSearch, SearchProvider
from .reporting import (
    ProgressReporter,
    ensure_dir,
    utc_now_iso,
    write_json_object,
    write_records_csv,
    write_records_geojson,
    write_records_json,
    write_records_xlsx,
    write_summary,
    xlsx_filename,
)

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("csv", "geojson", "json", "xlsx")


def build_provider(
    api_key: Optional[str],
    max_requests: int,
    metrics: RequestMetrics,
) -> Optional[AmapPlaceSearch]:
    if not api_key:
        return None
    http_client = HttpClient(
        api_key,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        backoff_base=config.HTTP_BACKOFF_BASE,
        backoff_max=config.HTTP_BACKOFF_MAX,
    )
    budget = RequestBudget(max_search=max_requests, metrics=metrics)
    return AmapPlaceSearch(http_client, budget, metrics=metrics)


def run(
    api_key: Optional[str],
    polygon: Sequence[Sequence[float]],
    categories: Sequence[str],
    output_dir: str = config.OUTPUT_DIR,
    write_outputs: bool = True,
    formats: Sequence[str] = OUTPUT_FORMATS,
    provider: Optional[SearchProvider] = None,
    max_requests: int = config.MAX_SEARCH_REQUESTS_PER_RUN,
    step: Optional[float] = None,
    page_size: Optional[int] = None,
    max_pages: Optional[int] = None,
    metrics: Optional[RequestMetrics] = None,
    sleep: Callable[[float], None] = time.sleep,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> RunResult:
    unknown = [f for f in formats if f not in OUTPUT_FORMATS]
    if unknown:
        raise ValueError(f"Unknown output format(s): {', '.join(unknown)}")

    if metrics is None:
        metrics = RequestMetrics()

    if provider is None:
        provider = build_provider(api_key, max_requests, metrics)

    engine = AggregationEngine(
        step=config.GRID_STEP_DEG if step is None else step,
        page_size=config.PAGE_SIZE if page_size is None else page_size,
        max_pages=config.MAX_PAGES_PER_CELL if max_pages is None else max_pages,
        page_delay=config.PAGE_DELAY_SECONDS,
        cell_delay=config.CELL_DELAY_SECONDS,
        sleep=sleep,
        metrics=metrics,
    )

    if write_outputs:
        try:
            engine.plan(polygon, categories, provider)
        except (PoiMinerError, ValueError) as exc:
            logger.error("Run aborted before fetching: %s", exc)
            raise
        ensure_dir(output_dir)

    progress = ProgressReporter(
        output_path=os.path.join(output_dir, "progress.json") if write_outputs else None,
        log_every=config.PROGRESS_LOG_EVERY,
        write_interval_seconds=config.PROGRESS_WRITE_INTERVAL_SECONDS,
        logger=logger,
    )

    logger.info("Stage 1: decompose and fetch cells")
    started = time.monotonic()
    result = engine.run(polygon, categories, provider, reporter=progress, should_cancel=should_cancel)
    elapsed = time.monotonic() - started
    progress.flush()

    if write_outputs:
        logger.info("Stage 2: outputs")
        rows = [r.as_dict() for r in result.records]
        base = os.path.join(output_dir, config.OUTPUT_BASENAME)
        if "csv" in formats:
            write_records_csv(f"{base}.csv", rows)
        if "geojson" in formats:
            write_records_geojson(f"{base}.geojson", rows)
        if "json" in formats:
            write_records_json(f"{base}.json", rows)
        if "xlsx" in formats:
            write_records_xlsx(os.path.join(output_dir, xlsx_filename(config.OUTPUT_BASENAME)), rows)
        summary = build_run_summary(result, categories, elapsed)
        write_json_object(os.path.join(output_dir, "run_summary.json"), summary)
        write_summary(os.path.join(output_dir, "summary.txt"), render_summary(summary))

    return result


def build_run_summary(result: RunResult, categories: Sequence[str], elapsed_seconds: float) -> Dict[str, Any]:
    stats = result.stats
    return {
        "finished_at": utc_now_iso(),
        "status": result.snapshot.status,
        "message": result.snapshot.message,
        "cancelled": result.cancelled,
        "budget_exhausted": result.budget_exhausted,
        "categories": list(categories),
        "elapsed_seconds": round(elapsed_seconds, 2),
        "cells": {
            "total": stats.cells_total,
            "completed": stats.cells_completed,
            "failed": stats.cells_failed,
        },
        "candidates": {
            "seen": stats.candidates_seen,
            "invalid": stats.invalid_candidates,
            "duplicates": stats.duplicates_skipped,
            "outside_polygon": stats.outside_polygon,
            "category_rejected": stats.category_rejected,
        },
        "accepted": stats.accepted,
        "requests": dict(result.metrics),
    }


def render_summary(summary: Dict[str, Any]) -> List[str]:
    cells = summary["cells"]
    candidates = summary["candidates"]
    lines = [
        f"Finished: {summary['finished_at']}",
        f"Status: {summary['status']}",
        f"Message: {summary['message']}",
        f"Categories: {', '.join(summary['categories'])}",
        f"Cells: total={cells['total']}, completed={cells['completed']}, failed={cells['failed']}",
        "Candidates: seen={seen}, invalid={invalid}, duplicates={duplicates}, "
        "outside_polygon={outside_polygon}, category_rejected={category_rejected}".format(**candidates),
        f"Accepted records: {summary['accepted']}",
    ]
    if summary.get("budget_exhausted"):
        lines.append("Stopped early: search request budget exhausted")
    requests_info = summary.get("requests") or {}
    if requests_info:
        lines.append(
            "Request stats: " + ", ".join(f"{k}={v}" for k, v in sorted(requests_info.items()))
        )
    lines.append(f"Elapsed: {summary['elapsed_seconds']}s")
    return lines
