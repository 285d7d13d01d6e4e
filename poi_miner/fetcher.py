"""Paged search for a single grid cell."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Sequence

from . import config
from .categories import type_filter
from .errors import ProviderPageError
from .geo import Cell
from .provider import STATUS_ERROR, STATUS_NO_DATA, STATUS_SUCCESS, SearchProvider

logger = logging.getLogger(__name__)


def fetch_cell(
    cell: Cell,
    selection: Sequence[str],
    provider: SearchProvider,
    page_size: int = config.PAGE_SIZE,
    max_pages: int = config.MAX_PAGES_PER_CELL,
    page_delay: float = config.PAGE_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    free_text: str = "",
) -> List[Dict[str, Any]]:
    """Return raw, unfiltered candidates for one cell.

    Pages are requested in order until the provider runs out of results or
    `max_pages` is reached. A provider error stops the cell early but keeps
    the records of pages already fetched.
    """
    types = type_filter(selection)
    records: List[Dict[str, Any]] = []
    page = 1
    while True:
        result = provider.search(free_text, cell, page, type_filter=types, page_size=page_size)
        if result.status == STATUS_SUCCESS and result.records:
            records.extend(result.records)
            if result.total_count > page * page_size and page < max_pages:
                page += 1
                if page_delay > 0:
                    sleep(page_delay)
                continue
            if result.total_count > page * page_size:
                logger.info(
                    "Cell %s hit page cap (%s pages, provider total=%s)",
                    cell.as_polygon_param(),
                    max_pages,
                    result.total_count,
                )
            break
        if result.status in (STATUS_SUCCESS, STATUS_NO_DATA):
            break
        if result.status == STATUS_ERROR:
            logger.warning("%s (cell %s)", ProviderPageError(page, result.info), cell.as_polygon_param())
            break
        logger.warning("Unknown provider status %r on page %s; stopping cell", result.status, page)
        break
    return records
