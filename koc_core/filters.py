from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from functools import lru_cache
from typing import Iterable, List, Literal, Optional, Sequence

from pyuca import Collator

from koc_core.config import DEFAULT_PAGE_SIZE
from koc_core.grouping import EntityGroup
from koc_core.records import RECORD_FIELDS, KOCRecord


Direction = Literal["ascending", "descending"]
SEARCH_FIELDS = ("name", "koc_id", "tax_code", "phone", "email")
SORTABLE_KEYS = [f for f in RECORD_FIELDS if f != "row_id"]


@dataclass(frozen=True)
class KOCFilters:
    search: str = ""
    brands: List[str] = field(default_factory=list)
    province: str = ""
    main_field: str = ""
    koc_types: List[str] = field(default_factory=list)
    followers_min: Optional[int] = None
    followers_max: Optional[int] = None


@dataclass(frozen=True)
class SortConfig:
    key: str
    direction: Direction = "ascending"


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def _as_bound(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except Exception:
        return None


def normalize_filters(raw: Optional[dict]) -> KOCFilters:
    raw = raw or {}
    return KOCFilters(
        search=str(raw.get("search") or "").strip(),
        brands=_as_str_list(raw.get("brands")),
        province=str(raw.get("province") or "").strip(),
        main_field=str(raw.get("main_field") or "").strip(),
        koc_types=_as_str_list(raw.get("koc_types")),
        followers_min=_as_bound(raw.get("followers_min")),
        followers_max=_as_bound(raw.get("followers_max")),
    )


def is_active(filters: KOCFilters) -> bool:
    return any(getattr(filters, f.name) not in ("", [], None) for f in fields(filters))


def _matches_search(record: KOCRecord, query: str) -> bool:
    return any(query in str(getattr(record, name)).casefold() for name in SEARCH_FIELDS)


def matches_filters(group: EntityGroup, filters: KOCFilters) -> bool:
    main = group.main
    if filters.search:
        query = filters.search.casefold()
        if not any(_matches_search(r, query) for r in group.history):
            return False
    if filters.brands and not any(r.brand.value in filters.brands for r in group.history):
        return False
    if filters.province and main.address != filters.province:
        return False
    if filters.main_field and main.main_field != filters.main_field:
        return False
    if filters.koc_types and main.koc_type.value not in filters.koc_types:
        return False
    if filters.followers_min is not None and main.followers < filters.followers_min:
        return False
    if filters.followers_max is not None and main.followers > filters.followers_max:
        return False
    return True


def filter_groups(groups: Iterable[EntityGroup], filters: KOCFilters) -> List[EntityGroup]:
    return [g for g in groups if matches_filters(g, filters)]


def request_sort(current: Optional[SortConfig], key: str) -> SortConfig:
    """Clicking a column sorts ascending; clicking it again while ascending flips to descending."""
    if key not in SORTABLE_KEYS:
        raise ValueError(f"Unknown sort key: {key}")
    if current is not None and current.key == key and current.direction == "ascending":
        return SortConfig(key=key, direction="descending")
    return SortConfig(key=key, direction="ascending")


@lru_cache(maxsize=1)
def _collator() -> Collator:
    # Unicode collation: accents and case rank below the base letter, so "Ánh" sits between "an" and "Bảo".
    return Collator()


def _sort_value(record: KOCRecord, key: str):
    value = getattr(record, key)
    if isinstance(value, str):
        return _collator().sort_key(value)
    return value


def sort_groups(groups: Sequence[EntityGroup], sort: Optional[SortConfig]) -> List[EntityGroup]:
    ordered = list(groups)
    if sort is None:
        return ordered
    if sort.key not in SORTABLE_KEYS:
        raise ValueError(f"Unknown sort key: {sort.key}")
    # sorted() is stable for reverse=True too, so ties keep their prior order.
    return sorted(ordered, key=lambda g: _sort_value(g.main, sort.key), reverse=sort.direction == "descending")


def total_pages(count: int, page_size: int = DEFAULT_PAGE_SIZE) -> int:
    return math.ceil(count / page_size) if count > 0 else 0


def paginate(groups: Sequence[EntityGroup], page: int, page_size: int = DEFAULT_PAGE_SIZE) -> List[EntityGroup]:
    """1-based page slice; pages outside the available range are empty."""
    if page < 1:
        return []
    start = (page - 1) * page_size
    return list(groups[start : start + page_size])


def available_koc_types(records: Iterable[KOCRecord]) -> List[str]:
    return sorted({r.koc_type.value for r in records if r.koc_type})
