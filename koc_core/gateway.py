"""Client for the spreadsheet action API (a Google Apps Script web app).

Wire contract:
- GET  ?action=GET_ALL                          -> [row, ...] (header already removed)
- POST {"action": "CREATE", "data": row}        -> {"success", "rowId", "data"}
- POST {"action": "BATCH_CREATE", "data": rows} -> {"success", "startRow", "data"}
- POST {"action": "UPDATE", "rowId", "data"}    -> {"success", "rowId", "data"}
- POST {"action": "DELETE", "rowIds": [...]}    -> {"success", "deleted"}
Any response may be {"error": "..."} instead, whatever its HTTP status.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from koc_core.config import is_configured_url
from koc_core.records import KOCRecord, as_text, record_to_row, row_to_record


logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2  # row 1 holds the header


class SheetGatewayError(Exception):
    """Base class for every failure talking to the sheet."""


class SheetConfigError(SheetGatewayError):
    pass


class SheetTransportError(SheetGatewayError):
    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Network response was not ok ({status_code}).")


class SheetApplicationError(SheetGatewayError):
    pass


class SheetNetworkError(SheetGatewayError):
    """The endpoint could not be reached at all; no response was received."""


class SheetGateway:
    def __init__(self, url: str, *, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.url = (url or "").strip()
        self.session = session or requests.Session()
        self.timeout = timeout

    # ---------------- transport ----------------
    def _check_url(self) -> None:
        if not is_configured_url(self.url):
            raise SheetConfigError("The sheet endpoint URL is not configured. Set KOC_SHEET_URL or enter it in the app.")

    def _decode(self, response: requests.Response) -> Any:
        if not response.ok:
            try:
                detail = response.text
            except Exception:
                detail = "Could not retrieve error details."
            logger.error("Sheet API error response (%s): %s", response.status_code, detail)
            raise SheetTransportError(response.status_code, detail)
        try:
            payload = response.json()
        except ValueError as exc:
            raise SheetApplicationError("The sheet endpoint returned a non-JSON response.") from exc
        if isinstance(payload, dict) and payload.get("error"):
            raise SheetApplicationError(str(payload["error"]))
        return payload

    def _send(self, method: str, **kwargs: Any) -> requests.Response:
        self._check_url()
        try:
            return getattr(self.session, method)(self.url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("Sheet API unreachable: %s", exc)
            raise SheetNetworkError(f"Could not reach the sheet endpoint: {exc}") from exc

    def _get(self, action: str) -> Any:
        return self._decode(self._send("get", params={"action": action}))

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self._send(
            "post",
            data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            headers={"Content-Type": "text/plain;charset=utf-8"},
        )
        result = self._decode(response)
        if not isinstance(result, dict):
            raise SheetApplicationError(f"Unexpected response to {payload.get('action')}: {type(result).__name__}")
        return result

    # ---------------- actions ----------------
    def fetch_all(self) -> List[KOCRecord]:
        data = self._get("GET_ALL")
        if not isinstance(data, list):
            raise SheetApplicationError("GET_ALL did not return a list of rows.")
        records: List[KOCRecord] = []
        for index, row in enumerate(data):
            if not row or len(row) < 3 or not as_text(row[2]).strip():
                continue
            records.append(row_to_record(row, index + FIRST_DATA_ROW))
        logger.info("Fetched %d records (%d raw rows).", len(records), len(data))
        return records

    def create(self, record: KOCRecord) -> KOCRecord:
        result = self._post({"action": "CREATE", "data": record_to_row(record)})
        return row_to_record(result.get("data"), int(result["rowId"]))

    def batch_create(self, records: Iterable[KOCRecord]) -> List[KOCRecord]:
        rows = [record_to_row(r) for r in records]
        if not rows:
            return []
        result = self._post({"action": "BATCH_CREATE", "data": rows})
        start_row = int(result["startRow"])
        created = [row_to_record(row, start_row + i) for i, row in enumerate(result.get("data") or [])]
        logger.info("Batch created %d records starting at row %d.", len(created), start_row)
        return created

    def update(self, record: KOCRecord) -> KOCRecord:
        if record.row_id < FIRST_DATA_ROW:
            raise SheetApplicationError(f"Invalid rowId for update operation: {record.row_id}")
        row = record_to_row(record)
        # TODO: stop re-sending stt/koc_id once it is settled whether the sheet or the client owns them on update.
        row[0] = record.stt
        row[1] = record.koc_id
        result = self._post({"action": "UPDATE", "rowId": record.row_id, "data": row})
        return row_to_record(result.get("data"), int(result["rowId"]))

    def delete(self, row_ids: Iterable[int]) -> List[int]:
        # Descending so removing one row never shifts a row still waiting to be removed.
        ordered = sorted({int(r) for r in row_ids}, reverse=True)
        if not ordered:
            return []
        result = self._post({"action": "DELETE", "rowIds": ordered})
        deleted = result.get("deleted", ordered)
        return [int(r) for r in deleted]
