from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

from koc_core.gateway import SheetGateway, SheetGatewayError
from koc_core.records import KOCRecord


logger = logging.getLogger(__name__)


def _sorted_by_stt(records: Iterable[KOCRecord]) -> Tuple[KOCRecord, ...]:
    return tuple(sorted(records, key=lambda r: r.stt))


def shift_after_delete(records: Sequence[KOCRecord], deleted: Iterable[int]) -> Tuple[KOCRecord, ...]:
    """Drop deleted rows and move every surviving row up by the number of deleted rows above it."""
    removed = sorted(set(deleted))
    kept: List[KOCRecord] = []
    for record in records:
        if record.row_id in removed:
            continue
        above = sum(1 for r in removed if r < record.row_id)
        kept.append(replace(record, row_id=record.row_id - above) if above else record)
    return tuple(kept)


class AppState:
    """Owns the in-memory record collection.

    The snapshot is only replaced after the sheet confirms a write, so a failed
    write leaves it untouched and the error propagates to the caller.
    """

    def __init__(self, records: Iterable[KOCRecord] = ()):
        self.records: Tuple[KOCRecord, ...] = tuple(records)
        self.loading = False
        self.error: Optional[str] = None
        self.loaded = False
        self._write_lock = threading.Lock()

    def load(self, gateway: SheetGateway) -> bool:
        self.loading = True
        self.error = None
        try:
            self.records = tuple(gateway.fetch_all())
            self.loaded = True
        except SheetGatewayError as exc:
            logger.exception("Loading records failed")
            self.error = str(exc) or "Could not load data from the sheet."
        finally:
            self.loading = False
        return self.error is None

    def add(self, gateway: SheetGateway, record: KOCRecord) -> KOCRecord:
        with self._write_lock:
            created = gateway.create(record)
            self.records = _sorted_by_stt([*self.records, created])
        logger.info("Created %s (row %d).", created.koc_id, created.row_id)
        return created

    def batch_add(self, gateway: SheetGateway, records: Iterable[KOCRecord]) -> List[KOCRecord]:
        with self._write_lock:
            created = gateway.batch_create(records)
            self.records = _sorted_by_stt([*self.records, *created])
        return created

    def update(self, gateway: SheetGateway, record: KOCRecord) -> KOCRecord:
        with self._write_lock:
            updated = gateway.update(record)
            self.records = tuple(updated if r.row_id == updated.row_id else r for r in self.records)
        logger.info("Updated row %d.", updated.row_id)
        return updated

    def delete(self, gateway: SheetGateway, row_ids: Iterable[int]) -> List[int]:
        with self._write_lock:
            deleted = gateway.delete(row_ids)
            self.records = shift_after_delete(self.records, deleted)
        logger.info("Deleted rows %s.", deleted)
        return deleted
