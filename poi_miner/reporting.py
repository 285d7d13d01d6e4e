"""Progress reporting and output writers."""
from __future__ import annotations

import csv
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, TextIO

import pandas as pd

STATUS_IDLE = "idle"
STATUS_DRAWING = "drawing"
STATUS_FETCHING = "fetching"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"
TERMINAL_STATUSES = {STATUS_COMPLETE, STATUS_ERROR}


@dataclass(frozen=True)
class ProgressSnapshot:
    total_cells: int = 0
    completed_cells: int = 0
    total_found: int = 0
    status: str = STATUS_IDLE
    message: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProgressSink(Protocol):
    def update(self, snapshot: ProgressSnapshot) -> None:
        ...


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except (AttributeError, OSError):
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def split_type_levels(type_str: Optional[str]) -> List[str]:
    """Split "大类;中类;小类" into exactly three levels, padding with ""."""
    parts = (type_str or "").split(";")
    return (parts + ["", "", ""])[:3]


CSV_FIELDNAMES = [
    "name",
    "category",
    "sub_category_1",
    "sub_category_2",
    "full_type",
    "address",
    "lng",
    "lat",
    "tel",
    "province",
    "city",
    "district",
    "id",
    "typecode",
]


def write_records_csv(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDNAMES)
        writer.writeheader()
        for row in rows:
            big, mid, small = split_type_levels(row.get("type"))
            writer.writerow(
                {
                    "name": row.get("name", ""),
                    "category": big,
                    "sub_category_1": mid,
                    "sub_category_2": small,
                    "full_type": row.get("type", ""),
                    "address": row.get("address", ""),
                    "lng": row.get("lng"),
                    "lat": row.get("lat"),
                    "tel": row.get("tel", ""),
                    "province": row.get("pname", ""),
                    "city": row.get("cityname", ""),
                    "district": row.get("adname", ""),
                    "id": row.get("id", ""),
                    "typecode": row.get("typecode", ""),
                }
            )


def build_feature_collection(rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    features = []
    for row in rows:
        big, mid, small = split_type_levels(row.get("type"))
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [row.get("lng"), row.get("lat")]},
                "properties": {
                    "id": row.get("id", ""),
                    "name": row.get("name", ""),
                    "category_big": big,
                    "category_mid": mid,
                    "category_small": small,
                    "full_type": row.get("type", ""),
                    "address": row.get("address", ""),
                    "tel": row.get("tel", ""),
                    "city": row.get("cityname", ""),
                },
            }
        )
    return {"type": "FeatureCollection", "features": features}


def write_records_geojson(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(build_feature_collection(rows), f, ensure_ascii=False)


def write_records_json(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(list(rows), f, ensure_ascii=False, indent=2)


XLSX_SHEET_NAME = "POI Data"

XLSX_COLUMNS = [
    "名称 (Name)",
    "大类 (Category)",
    "中类 (Sub-Cat 1)",
    "小类 (Sub-Cat 2)",
    "完整类型 (Full Type)",
    "地址 (Address)",
    "经度 (Lng)",
    "纬度 (Lat)",
    "电话 (Tel)",
    "省份 (Province)",
    "城市 (City)",
    "区域 (District)",
]


def xlsx_filename(basename: str, day: Optional[date] = None) -> str:
    day = day or datetime.now(timezone.utc).date()
    return f"{basename}_{day.isoformat()}.xlsx"


def build_xlsx_frame(rows: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    table = []
    for row in rows:
        big, mid, small = split_type_levels(row.get("type"))
        table.append(
            [
                row.get("name", ""),
                big,
                mid,
                small,
                row.get("type", ""),
                row.get("address", ""),
                row.get("lng"),
                row.get("lat"),
                row.get("tel", ""),
                row.get("pname", ""),
                row.get("cityname", ""),
                row.get("adname", ""),
            ]
        )
    return pd.DataFrame(table, columns=XLSX_COLUMNS)


def write_records_xlsx(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    """Write the bilingual-header workbook, replacing `path` atomically."""
    frame = build_xlsx_frame(rows)
    dir_path = os.path.dirname(path) or "."
    fd, tmp_path = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".xlsx", dir=dir_path)
    os.close(fd)
    try:
        frame.to_excel(tmp_path, sheet_name=XLSX_SHEET_NAME, index=False, engine="openpyxl")
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_summary(path: str, summary_lines: List[str]) -> None:
    atomic_write_text(path, "\n".join(summary_lines))


class ProgressReporter:
    """Progress sink that logs cell progress and mirrors it to progress.json."""

    def __init__(
        self,
        output_path: Optional[str],
        log_every: int = 25,
        write_interval_seconds: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.output_path = output_path
        self.log_every = max(1, int(log_every)) if log_every else 0
        self.write_interval_seconds = float(write_interval_seconds)
        self.logger = logger or logging.getLogger(__name__)
        self.snapshot = ProgressSnapshot()
        self.history: List[str] = []
        self._next_log = self.log_every if self.log_every else 0
        self._last_write = 0.0

    def update(self, snapshot: ProgressSnapshot) -> None:
        status_changed = snapshot.status != self.snapshot.status
        self.snapshot = snapshot
        if status_changed:
            self.history.append(snapshot.status)
            self._next_log = self.log_every if self.log_every else 0
            self.logger.info("Status: %s %s", snapshot.status, snapshot.message)
        elif self.log_every and snapshot.completed_cells >= self._next_log:
            self.logger.info(
                "Progress: cells=%s/%s found=%s",
                snapshot.completed_cells,
                snapshot.total_cells,
                snapshot.total_found,
            )
            self._next_log += self.log_every
        self._write_if_due(force=status_changed or snapshot.status in TERMINAL_STATUSES)

    def flush(self) -> None:
        self._write_if_due(force=True)

    def _write_if_due(self, force: bool = False) -> None:
        if not self.output_path:
            return
        now = time.monotonic()
        if not force and (now - self._last_write) < self.write_interval_seconds:
            return
        payload = self.snapshot.as_dict()
        payload["timestamp"] = utc_now_iso()
        with atomic_writer(self.output_path, mode="w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        self._last_write = now
