"""AMap POI taxonomy and category matching.

Top-level classes follow the provider's published classification (01-99).
Codes are authoritative; the label path only serves records whose typecode
is missing or unusable.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class CategoryInfo:
    code: str
    label: str
    color: str
    index: int

    @property
    def display_label(self) -> str:
        # "购物服务 (Shopping)" -> "购物服务"
        return self.label.split(" ")[0]


_TAXONOMY_ROWS = [
    ("01", "汽车服务 (Auto Service)", "#3B82F6"),
    ("02", "汽车销售 (Auto Sales)", "#2563EB"),
    ("03", "汽车维修 (Auto Repair)", "#1D4ED8"),
    ("04", "摩托车服务 (Motorcycle)", "#1E40AF"),
    ("05", "餐饮服务 (Dining)", "#EF4444"),
    ("06", "购物服务 (Shopping)", "#F59E0B"),
    ("07", "生活服务 (Life Service)", "#10B981"),
    ("08", "体育休闲 (Sports)", "#8B5CF6"),
    ("09", "医疗保健 (Medical)", "#EC4899"),
    ("10", "住宿服务 (Hotel)", "#6366F1"),
    ("11", "风景名胜 (Scenic)", "#22C55E"),
    ("12", "商务住宅 (Business)", "#0EA5E9"),
    ("13", "政府机构 (Government)", "#64748B"),
    ("14", "科教文化 (Education)", "#A855F7"),
    ("15", "交通设施 (Transport)", "#06B6D4"),
    ("16", "金融保险 (Finance)", "#EAB308"),
    ("17", "公司企业 (Company)", "#14B8A6"),
    ("18", "道路附属 (Road Furniture)", "#78716C"),
    ("19", "地名地址 (Address)", "#9CA3AF"),
    ("20", "公共设施 (Public)", "#4B5563"),
    ("22", "事件活动 (Events)", "#F43F5E"),
    ("97", "室内设施 (Indoor)", "#D4D4D8"),
    ("98", "通行设施 (Pass)", "#52525B"),
]

POI_CATEGORIES: Tuple[CategoryInfo, ...] = tuple(
    CategoryInfo(code=code, label=label, color=color, index=i)
    for i, (code, label, color) in enumerate(_TAXONOMY_ROWS)
)
CATEGORIES_BY_CODE: Mapping[str, CategoryInfo] = {c.code: c for c in POI_CATEGORIES}


def normalize_typecode(raw_code: Any) -> str:
    if raw_code is None:
        return ""
    code = str(raw_code).strip()
    if len(code) == 5:
        code = "0" + code
    return code


def resolve_category(raw_code: Any) -> Optional[int]:
    code = normalize_typecode(raw_code)
    if len(code) < 2:
        return None
    prefix = code[:2]
    for category in POI_CATEGORIES:
        if category.code == prefix:
            return category.index
    return None


def parse_selection(codes: Iterable[Any]) -> List[str]:
    """Normalize a user selection: strip, zero-pad single digits, dedupe in order."""
    out: List[str] = []
    for raw in codes:
        code = str(raw).strip()
        if not code:
            continue
        if len(code) == 1 and code.isdigit():
            code = "0" + code
        if code not in out:
            out.append(code)
    return out


def unknown_codes(selection: Iterable[str]) -> List[str]:
    return [code for code in selection if code not in CATEGORIES_BY_CODE]


def selected_labels(selection: Iterable[str]) -> List[str]:
    wanted = set(selection)
    return [c.display_label for c in POI_CATEGORIES if c.code in wanted]


def type_filter(selection: Iterable[str]) -> str:
    return "|".join(selection)


def is_selected(
    raw: Dict[str, Any],
    selection: Iterable[str],
    labels: Optional[List[str]] = None,
) -> bool:
    codes = list(selection)
    code = normalize_typecode(raw.get("typecode"))
    if len(code) >= 2:
        return any(code.startswith(selected) for selected in codes)
    if labels is None:
        labels = selected_labels(codes)
    type_str = raw.get("type") or ""
    if not isinstance(type_str, str):
        return False
    return any(label and type_str.startswith(label) for label in labels)
