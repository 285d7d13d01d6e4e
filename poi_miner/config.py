"""Project configuration.

Loads user-defined search parameters from search_config.json when available,
falling back to sensible defaults. Keep API request shapes centralized here.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

AMAP_PLACE_POLYGON_URL = "https://restapi.amap.com/v3/place/polygon"
AMAP_API_KEY_ENV = "AMAP_API_KEY"

# --- Provider request shape ---

AMAP_EXTENSIONS = "all"
PAGE_SIZE = 50
MAX_PAGES_PER_CELL = 20
# infocodes the provider returns for exhausted or throttled keys
AMAP_QUOTA_INFOCODES = {"10003", "10004", "10005", "10009", "10044"}

# --- Grid ---

GRID_STEP_DEG = 0.02

# --- Courtesy delays (fixed, not adaptive) ---

PAGE_DELAY_SECONDS = 0.05
CELL_DELAY_SECONDS = 0.05

# --- Budgets ---

MAX_SEARCH_REQUESTS_PER_RUN = 20000
DRY_RUN_MAX_SEARCH_REQUESTS = 10

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 5
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Outputs ---

OUTPUT_DIR = "out"
OUTPUT_BASENAME = "poi_data"
PROGRESS_LOG_EVERY = 25
PROGRESS_WRITE_INTERVAL_SECONDS = 5.0

# --- Mutable search parameters (populated by load_search_config or directly) ---

SEARCH_POLYGON: List[List[float]] = []
SELECTED_CATEGORIES: List[str] = []


def load_search_config(path: Optional[str] = None) -> bool:
    """Load search configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "search_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    polygon = data.get("polygon")
    if polygon:
        globals_ref["SEARCH_POLYGON"] = [list(v) for v in polygon]

    categories = data.get("categories", [])
    if categories:
        globals_ref["SELECTED_CATEGORIES"] = [str(c) for c in categories]

    step = data.get("grid_step_deg")
    if step is not None:
        globals_ref["GRID_STEP_DEG"] = float(step)

    page_size = data.get("page_size")
    if page_size is not None:
        globals_ref["PAGE_SIZE"] = int(page_size)

    max_pages = data.get("max_pages")
    if max_pages is not None:
        globals_ref["MAX_PAGES_PER_CELL"] = int(max_pages)

    delays: Any = data.get("delays", {})
    if "page_seconds" in delays:
        globals_ref["PAGE_DELAY_SECONDS"] = float(delays["page_seconds"])
    if "cell_seconds" in delays:
        globals_ref["CELL_DELAY_SECONDS"] = float(delays["cell_seconds"])

    max_requests = data.get("max_requests")
    if max_requests is not None:
        globals_ref["MAX_SEARCH_REQUESTS_PER_RUN"] = int(max_requests)

    return True
