from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from koc_core.config import DEFAULT_PAGE_SIZE
from koc_core.dates import coerce_date, parse_canonical
from koc_core.filters import (
    KOCFilters,
    SortConfig,
    filter_groups,
    normalize_filters,
    paginate,
    sort_groups,
    total_pages,
)
from koc_core.grouping import EntityGroup, group_records
from koc_core.records import RECORD_FIELDS, KOCRecord, record_as_dict


NUMERIC_COLUMNS = ["stt", "birth_year", "unit_price", "followers", "engagement_rate", "avg_views", "revenue_1m", "revenue_3m"]


def records_frame(records: Iterable[KOCRecord]) -> pd.DataFrame:
    rows = [record_as_dict(r) for r in records]
    if not rows:
        return pd.DataFrame(columns=RECORD_FIELDS)
    df = pd.DataFrame(rows, columns=RECORD_FIELDS)
    for col in NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0)
    return df


def with_parsed_dates(df: pd.DataFrame) -> pd.DataFrame:
    """Add a `coop_date` datetime column; non-canonical dates become NaT."""
    out = df.copy()
    dates = out["cooperation_date"].astype("string")
    out["coop_date"] = pd.to_datetime(dates.where(dates.str.fullmatch(r"\d{4}-\d{2}-\d{2}", na=False)), format="%Y-%m-%d", errors="coerce")
    return out


def filter_by_date_range(records: Sequence[KOCRecord], start: object = None, end: object = None) -> List[KOCRecord]:
    """Inclusive on both ends. With any bound set, records without a valid date are dropped."""
    start_date = coerce_date(start)
    end_date = coerce_date(end)
    if start_date is None and end_date is None:
        return list(records)
    out: List[KOCRecord] = []
    for record in records:
        coop = parse_canonical(record.cooperation_date)
        if coop is None:
            continue
        if start_date is not None and coop < start_date:
            continue
        if end_date is not None and coop > end_date:
            continue
        out.append(record)
    return out


def group_as_dict(group: EntityGroup) -> Dict[str, Any]:
    return {
        "identifier": group.identifier,
        "main": record_as_dict(group.main),
        "brands": group.brands,
        "collaborations": len(group.history),
        "history": [record_as_dict(r) for r in group.history],
    }


def prepare_context(
    records: Sequence[KOCRecord],
    filters: dict | KOCFilters | None = None,
    sort: Optional[SortConfig] = None,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    filt = filters if isinstance(filters, KOCFilters) else normalize_filters(filters)
    groups = group_records(records)
    filtered = filter_groups(groups, filt)
    ordered = sort_groups(filtered, sort)
    return {
        "filters": filt,
        "sort": sort,
        "groups": groups,
        "filtered_groups": ordered,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages(len(ordered), page_size),
        "page_groups": paginate(ordered, page, page_size),
    }
