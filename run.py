"""CLI entrypoint."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv

from poi_miner import config
from poi_miner.categories import POI_CATEGORIES, parse_selection, unknown_codes
from poi_miner.errors import PoiMinerError
from poi_miner.geo import bounding_box, polygon_from_geojson, validate_polygon
from poi_miner.grid import estimate_max_requests, grid_shape
from poi_miner.pipeline import OUTPUT_FORMATS, run


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def load_polygon(value: Optional[str]) -> List[Any]:
    """Read a polygon from inline JSON or a JSON/GeoJSON file path."""
    if not value:
        return list(config.SEARCH_POLYGON)
    text = value.strip()
    if text.startswith("[") or text.startswith("{"):
        data = json.loads(text)
    else:
        with open(Path(text).expanduser(), "r", encoding="utf-8") as f:
            data = json.load(f)
    return polygon_from_geojson(data)


def parse_categories(value: Optional[str]) -> List[str]:
    if value is None:
        return parse_selection(config.SELECTED_CATEGORIES)
    return parse_selection(value.split(","))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Enumerate POIs inside a polygon via AMap search")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--preflight", action="store_true", help="Run offline checks only")
    group.add_argument("--list-categories", action="store_true", help="Print the category taxonomy")
    parser.add_argument("--config", type=str, default=None, help="Path to search_config.json")
    parser.add_argument(
        "--polygon",
        type=str,
        default=None,
        help="Polygon as inline JSON or a path to a JSON/GeoJSON file ([[lng, lat], ...])",
    )
    parser.add_argument(
        "--categories",
        type=str,
        default=None,
        help="Comma-separated two-digit category codes, e.g. 05,06",
    )
    parser.add_argument("--step", type=float, default=None, help="Grid cell size in degrees")
    parser.add_argument("--page-size", type=int, default=None)
    parser.add_argument("--max-pages", type=int, default=None, help="Page cap per cell")
    parser.add_argument("--max-requests", type=int, default=None, help="Cap on search requests per run")
    parser.add_argument("--dry-run", action="store_true", help="Run with a tiny request cap")
    parser.add_argument(
        "--format",
        choices=list(OUTPUT_FORMATS) + ["all"],
        default="all",
        help="Output format (default: all)",
    )
    parser.add_argument("--out", type=str, default=config.OUTPUT_DIR)
    return parser.parse_args(argv)


def print_categories() -> None:
    for category in POI_CATEGORIES:
        print(f"{category.code}  {category.label}  {category.color}")


def run_preflight(
    api_key: Optional[str],
    polygon: List[Any],
    categories: List[str],
    step: float,
    max_pages: int,
) -> int:
    ok = True

    if api_key:
        print("API key: OK")
    else:
        print(f"API key: MISSING ({config.AMAP_API_KEY_ENV})")
        ok = False

    try:
        vertices = validate_polygon(polygon)
        print(f"Polygon: OK ({len(vertices)} vertices)")
        rows, cols = grid_shape(bounding_box(vertices), step)
        cells = rows * cols
        print(f"Grid: {rows} x {cols} = {cells} cells at {step} deg")
        print(f"Max search requests: {estimate_max_requests(cells, max_pages)}")
    except (PoiMinerError, ValueError) as exc:
        print(f"Polygon: FAIL ({exc})")
        ok = False

    if not categories:
        print("Categories: FAIL (none selected)")
        ok = False
    else:
        unknown = unknown_codes(categories)
        if unknown:
            print(f"Categories: WARN (not in taxonomy: {', '.join(unknown)})")
        print(f"Categories: OK ({'|'.join(categories)})")

    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    config.load_search_config(args.config)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.list_categories:
        print_categories()
        return 0

    api_key = (os.environ.get(config.AMAP_API_KEY_ENV) or "").strip() or None
    try:
        polygon = load_polygon(args.polygon)
    except (OSError, ValueError) as exc:
        print(f"Polygon input error: {exc}", file=sys.stderr)
        return 1
    categories = parse_categories(args.categories)
    step = args.step if args.step is not None else config.GRID_STEP_DEG
    max_pages = args.max_pages if args.max_pages is not None else config.MAX_PAGES_PER_CELL

    if args.preflight:
        return run_preflight(api_key, polygon, categories, step, max_pages)

    max_requests = args.max_requests if args.max_requests is not None else config.MAX_SEARCH_REQUESTS_PER_RUN
    if args.dry_run:
        max_requests = config.DRY_RUN_MAX_SEARCH_REQUESTS
    formats = OUTPUT_FORMATS if args.format == "all" else (args.format,)

    try:
        result = run(
            api_key=api_key,
            polygon=polygon,
            categories=categories,
            output_dir=args.out,
            write_outputs=True,
            formats=formats,
            max_requests=max_requests,
            step=step,
            page_size=args.page_size,
            max_pages=max_pages,
        )
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(result.snapshot.message)
    print(f"Results written to {args.out}/")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
