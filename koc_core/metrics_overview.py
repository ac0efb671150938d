from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from koc_core.charts import brand_share_chart, province_chart, to_vega_spec, trend_chart
from koc_core.data import filter_by_date_range, records_frame, with_parsed_dates
from koc_core.dates import coerce_date, month_start
from koc_core.grouping import identity_key
from koc_core.records import Brand, KOCRecord, to_enum


NO_DATA = "N/A"
OTHER_LABEL = "Other"
PROVINCE_TOP_N = 6
MONTHLY_TOP_N = 10
QUARTERLY_TOP_N = 5
LEADERBOARD_COLUMNS = ["row_id", "koc_id", "name", "brand", "cooperation_date", "revenue_1m", "revenue_3m"]


def unique_koc_count(records: Sequence[KOCRecord]) -> int:
    return len({key for key in (identity_key(r) for r in records) if key})


def total_revenue(df: pd.DataFrame) -> float:
    if df.empty:
        return 0.0
    return float(df["revenue_3m"].sum())


def best_brand(df: pd.DataFrame) -> Dict[str, Any]:
    if df.empty:
        return {"name": NO_DATA, "revenue": 0}
    by_brand = df.groupby("brand", sort=False)["revenue_3m"].sum()
    # idxmax keeps the first brand reached on ties.
    return {"name": str(by_brand.idxmax()), "revenue": float(by_brand.max())}


def _counts(series: pd.Series) -> pd.Series:
    values = series.astype("string").str.strip()
    values = values[values.notna() & (values != "")]
    return values.groupby(values, sort=False).size()


def brand_histogram(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    counts = _counts(df["brand"])
    return [{"name": str(name), "value": int(value)} for name, value in counts.items()]


def province_histogram(df: pd.DataFrame, top_n: int = PROVINCE_TOP_N) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    counts = _counts(df["address"]).sort_values(ascending=False, kind="stable")
    items = [{"name": str(name), "value": int(value)} for name, value in counts.items()]
    if len(items) > top_n + 1:
        tail = sum(item["value"] for item in items[top_n:])
        items = items[:top_n] + [{"name": OTHER_LABEL, "value": tail}]
    return items


def collaboration_trend(df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    dated = with_parsed_dates(df).dropna(subset=["coop_date"])
    if dated.empty:
        return []
    buckets = (
        dated.assign(year=dated["coop_date"].dt.year, month=dated["coop_date"].dt.month)
        .groupby(["year", "month"])
        .size()
        .sort_index()
    )
    return [{"name": f"{int(month)}/{int(year)}", "value": int(value)} for (year, month), value in buckets.items()]


def _leaderboard(df: pd.DataFrame, metric: str, top_n: int) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    ranked = df.sort_values(metric, ascending=False, kind="stable").head(top_n)
    out = ranked[LEADERBOARD_COLUMNS].to_dict(orient="records")
    for rank, row in enumerate(out, start=1):
        row["rank"] = rank
    return out


def _brand_dated(df: pd.DataFrame, brand: object) -> pd.DataFrame:
    if df.empty:
        return df
    brand_value = to_enum(Brand, brand, Brand.SACHI).value
    dated = with_parsed_dates(df)
    return dated[(dated["brand"] == brand_value) & dated["coop_date"].notna()]


def top_monthly_revenue(df: pd.DataFrame, brand: object, today: Optional[date] = None, top_n: int = MONTHLY_TOP_N) -> List[Dict[str, Any]]:
    """Top collaborations by 1-month revenue dated in the current calendar month."""
    today = today or date.today()
    base = _brand_dated(df, brand)
    if base.empty:
        return []
    in_month = base[(base["coop_date"].dt.month == today.month) & (base["coop_date"].dt.year == today.year)]
    return _leaderboard(in_month, "revenue_1m", top_n)


def top_quarterly_revenue(df: pd.DataFrame, brand: object, today: Optional[date] = None, top_n: int = QUARTERLY_TOP_N) -> List[Dict[str, Any]]:
    """Top collaborations by 3-month revenue dated from day 1 of the month two months back."""
    today = today or date.today()
    base = _brand_dated(df, brand)
    if base.empty:
        return []
    window_start = pd.Timestamp(month_start(today, months_back=2))
    return _leaderboard(base[base["coop_date"] >= window_start], "revenue_3m", top_n)


def compute_overview(
    records: Sequence[KOCRecord],
    *,
    start: object = None,
    end: object = None,
    top10_brand: object = Brand.SACHI,
    top5_brand: object = Brand.SACHI,
    today: Optional[date] = None,
    include_charts: bool = True,
) -> Dict[str, Any]:
    today = today or date.today()
    scoped = filter_by_date_range(records, start, end)
    df = records_frame(scoped)

    brands = brand_histogram(df)
    provinces = province_histogram(df)
    trend = collaboration_trend(df)

    payload: Dict[str, Any] = {
        "date_range": {
            "start": (coerce_date(start).isoformat() if coerce_date(start) else None),
            "end": (coerce_date(end).isoformat() if coerce_date(end) else None),
        },
        "kpis": {
            "total_kocs": unique_koc_count(scoped),
            "total_revenue": total_revenue(df),
            "best_brand": best_brand(df),
        },
        "brand_histogram": brands,
        "province_histogram": provinces,
        "trend": trend,
        "leaderboards": {
            "monthly": {
                "brand": to_enum(Brand, top10_brand, Brand.SACHI).value,
                "rows": top_monthly_revenue(df, top10_brand, today),
            },
            "quarterly": {
                "brand": to_enum(Brand, top5_brand, Brand.SACHI).value,
                "rows": top_quarterly_revenue(df, top5_brand, today),
            },
        },
        "charts": {},
    }
    if include_charts:
        payload["charts"] = {
            "brands": to_vega_spec(brand_share_chart(brands)),
            "provinces": to_vega_spec(province_chart(provinces)),
            "trend": to_vega_spec(trend_chart(trend)),
        }
    return payload
