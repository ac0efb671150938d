from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Tuple

from koc_core.dates import parse_canonical
from koc_core.records import KOCRecord


PLACEHOLDER_KEY = "-"


@dataclass(frozen=True)
class EntityGroup:
    identifier: str
    main: KOCRecord
    history: Tuple[KOCRecord, ...]

    @property
    def brands(self) -> List[str]:
        seen: Dict[str, None] = {}
        for record in self.history:
            seen.setdefault(record.brand.value, None)
        return list(seen)


def identity_key(record: KOCRecord) -> str:
    """Tax code when present, else `name-phone`; '' when neither identifies anyone."""
    tax_code = record.tax_code.strip()
    if tax_code and tax_code != PLACEHOLDER_KEY:
        return tax_code
    key = f"{record.name.strip()}-{record.phone.strip()}"
    return "" if key == PLACEHOLDER_KEY else key


def _recency(record: KOCRecord) -> Tuple[date, int]:
    return parse_canonical(record.cooperation_date) or date.min, record.row_id


def group_records(records: Iterable[KOCRecord]) -> List[EntityGroup]:
    buckets: Dict[str, List[KOCRecord]] = {}
    for record in records:
        key = identity_key(record)
        if not key:
            continue
        buckets.setdefault(key, []).append(record)

    groups: List[EntityGroup] = []
    for key, members in buckets.items():
        history = tuple(sorted(members, key=_recency, reverse=True))
        groups.append(EntityGroup(identifier=key, main=history[0], history=history))
    return groups
