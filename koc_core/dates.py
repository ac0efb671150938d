"""Date normalization between sheet display (dd/mm/yyyy), canonical
(yyyy-mm-dd) and spreadsheet import values (datetime cells, Excel serials).

Canonical text is always rendered from UTC components so a date never
drifts by a day depending on the machine's timezone.
"""

from __future__ import annotations

import logging
import math
import numbers
import re
from datetime import date, datetime, timezone
from typing import Optional

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)

DMY_PATTERN = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
CANONICAL_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EXCEL_EPOCH = "1899-12-30"


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NaT


def _to_utc_timestamp(value: object, *, local_midnight: bool) -> Optional[pd.Timestamp]:
    if isinstance(value, str):
        text = value.strip()
        match = DMY_PATTERN.match(text)
        if match:
            day, month, year = (int(g) for g in match.groups())
            return pd.Timestamp(datetime(year, month, day, tzinfo=timezone.utc))
        return pd.to_datetime(text, utc=True, errors="coerce")

    if isinstance(value, (datetime, date, pd.Timestamp, np.datetime64)):
        ts = pd.Timestamp(value)
        if ts.tzinfo is None:
            # Naive values are wall-clock dates; read them as UTC midnight.
            return ts.tz_localize("UTC")
        if local_midnight:
            ts = ts + ts.utcoffset()
        return ts.tz_convert("UTC")

    if isinstance(value, bool):
        return None

    if isinstance(value, numbers.Real):
        return pd.to_datetime(float(value), unit="D", origin=EXCEL_EPOCH, utc=True)

    return None


def to_canonical(value: object, *, local_midnight: bool = False) -> str:
    """Return `yyyy-mm-dd` for a sheet/import date value, or '' if it cannot be parsed.

    `local_midnight` marks values built as local midnight by an import source;
    their UTC offset is added back before the UTC date is read.
    """
    if _is_blank(value):
        return ""
    try:
        ts = _to_utc_timestamp(value, local_midnight=local_midnight)
    except (TypeError, ValueError, OverflowError):
        ts = None
    if ts is None or pd.isna(ts):
        logger.warning("Unparseable date value %r; leaving it empty.", value)
        return ""
    return f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"


def to_display(canonical: object) -> str:
    if not isinstance(canonical, str) or not CANONICAL_PATTERN.match(canonical):
        return ""
    year, month, day = canonical.split("-")
    return f"{day}/{month}/{year}"


def parse_canonical(text: object) -> Optional[date]:
    if not isinstance(text, str) or not CANONICAL_PATTERN.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def coerce_date(value: object) -> Optional[date]:
    """Accept a `date`, canonical text or any sheet date value; None when unset."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if _is_blank(value):
        return None
    return parse_canonical(to_canonical(value))


def month_start(today: date, months_back: int = 0) -> date:
    month_index = today.year * 12 + (today.month - 1) - months_back
    return date(month_index // 12, month_index % 12 + 1, 1)
