"""In-memory stand-in for the Apps Script web app, wired in as a requests session."""

import json
from typing import Any, Dict, List, Optional

import requests

from koc_core.records import ROW_WIDTH

HEADER = ["STT", "Mã KOC", "Họ & Tên"] + [f"col{i}" for i in range(3, ROW_WIDTH)]
SHEET_URL = "https://script.google.com/macros/s/test-deployment/exec"


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, text: Optional[str] = None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


def make_row(name: str, **cells: Any) -> List[Any]:
    """Sheet row with `name` and any other cells given by column index, e.g. c13="Chilly"."""
    row: List[Any] = [""] * ROW_WIDTH
    row[2] = name
    for key, value in cells.items():
        row[int(key[1:])] = value
    return row


class SheetBackend:
    def __init__(self, rows: Optional[List[List[Any]]] = None):
        self.sheet: List[List[Any]] = [list(HEADER)] + [list(r) for r in rows or []]
        self.requests: List[Dict[str, Any]] = []
        self.fail_with: Optional[FakeResponse] = None

    @property
    def rows(self) -> List[List[Any]]:
        return self.sheet[1:]

    def _respond(self, payload: Any) -> FakeResponse:
        if self.fail_with is not None:
            return self.fail_with
        return FakeResponse(payload)

    # requests.Session surface
    def get(self, url, params=None, timeout=None):
        self.requests.append({"method": "GET", "url": url, "params": params, "timeout": timeout})
        if (params or {}).get("action") != "GET_ALL":
            return self._respond({"error": "Invalid or missing 'action' parameter for GET request."})
        return self._respond([list(r) for r in self.rows])

    def post(self, url, data=None, headers=None, timeout=None):
        body = json.loads(data.decode("utf-8"))
        sent = json.loads(data.decode("utf-8"))
        self.requests.append({"method": "POST", "url": url, "body": sent, "headers": headers, "timeout": timeout})
        if self.fail_with is not None:
            return self.fail_with
        action = body.get("action")
        if action == "CREATE":
            return FakeResponse(self._create(body["data"]))
        if action == "BATCH_CREATE":
            return FakeResponse(self._batch_create(body["data"]))
        if action == "UPDATE":
            return FakeResponse(self._update(body.get("rowId"), body["data"]))
        if action == "DELETE":
            return FakeResponse(self._delete(body["rowIds"]))
        return FakeResponse({"error": f"Invalid action specified in POST request: {action}"})

    # sheet behaviour
    def _create(self, row):
        last_row = len(self.sheet)
        row[0] = last_row
        row[1] = "KOC" + str(last_row).zfill(3)
        self.sheet.append(row)
        return {"success": True, "rowId": last_row + 1, "data": row}

    def _batch_create(self, rows):
        last_row = len(self.sheet)
        for index, row in enumerate(rows):
            stt = last_row + 1 + index
            row[0] = stt
            row[1] = "KOC" + str(stt).zfill(3)
        self.sheet.extend(rows)
        return {"success": True, "startRow": last_row + 1, "data": rows}

    def _update(self, row_id, row):
        if not row_id or row_id < 2:
            return {"error": "Invalid rowId for update operation."}
        self.sheet[row_id - 1] = row
        return {"success": True, "rowId": row_id, "data": row}

    def _delete(self, row_ids):
        ordered = sorted(row_ids, reverse=True)
        for row_id in ordered:
            if row_id and row_id > 1:
                del self.sheet[row_id - 1]
        return {"success": True, "deleted": ordered}

    def posted(self, action: str) -> List[Dict[str, Any]]:
        return [r["body"] for r in self.requests if r["method"] == "POST" and r["body"].get("action") == action]


class UnreachableSession:
    """Session whose every call fails before a response arrives."""

    def __init__(self, exc: Optional[Exception] = None):
        self.exc = exc or requests.ConnectionError("network unreachable")
        self.calls = 0

    def get(self, url, params=None, timeout=None):
        self.calls += 1
        raise self.exc

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls += 1
        raise self.exc
