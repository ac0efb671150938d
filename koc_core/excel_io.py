from __future__ import annotations

import io
import logging
from typing import Any, Dict, Iterable, List

import pandas as pd

from koc_core.dates import to_canonical, to_display
from koc_core.records import ROW_COLUMNS, KOCRecord, as_text, record_as_dict, record_from_dict


logger = logging.getLogger(__name__)

# Exact header text used in the team's spreadsheets; lookup is by label, not by position.
HEADER_LABELS: Dict[str, str] = {
    "stt": "STT",
    "koc_id": "Mã KOC",
    "name": "Họ & Tên",
    "gender": "Giới Tính",
    "birth_year": "Năm Sinh",
    "tax_code": "Mã Số Thuế",
    "phone": "SĐT",
    "email": "Email",
    "address": "Địa chỉ (Tỉnh/TP)",
    "unit_price": "Đơn Giá",
    "main_field": "Lĩnh vực chính",
    "profile_link": "Link profile",
    "followers": "Follower",
    "brand": "Nhãn phụ trách",
    "engagement_rate": "Tỷ lệ tương tác (%)",
    "cooperation_date": "Ngày hợp tác",
    "avg_views": "Lượt view trung bình",
    "posted_content_link": "Nội dung đã đăng (link)",
    "revenue_1m": "Doanh số sau 1m",
    "revenue_3m": "Doanh số sau 3m",
    "voice": "Voice",
    "progress": "Tiến độ",
    "koc_type": "Loại KOC",
    "potential": "Tiềm năng phát triển",
    "notes": "Ghi chú",
}
IMPORT_FIELDS = [f for f in ROW_COLUMNS if f not in ("stt", "koc_id")]
EXPORT_SHEET_NAME = "KOCs"


class ImportFileError(ValueError):
    """The uploaded file cannot be read as a KOC sheet at all."""


def read_upload_file(file_bytes: bytes, filename: str) -> pd.DataFrame:
    """Load the first sheet (xlsx/xls) or a csv with no header inference."""
    bio = io.BytesIO(file_bytes)
    lower = (filename or "").lower()
    try:
        if lower.endswith(".csv"):
            try:
                return pd.read_csv(bio, header=None, dtype=object, encoding="utf-8-sig")
            except UnicodeDecodeError:
                bio.seek(0)
                return pd.read_csv(bio, header=None, dtype=object)
        return pd.read_excel(bio, sheet_name=0, header=None, dtype=object)
    except Exception as exc:
        logger.warning("Could not read upload %s: %s", filename, exc)
        raise ImportFileError(f"Could not read '{filename}' as a spreadsheet.") from exc


def _cell(row: pd.Series, index: int) -> Any:
    if index < 0 or index >= len(row):
        return None
    value = row.iloc[index]
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return value


def parse_import_frame(raw: pd.DataFrame) -> List[KOCRecord]:
    if raw.empty:
        raise ImportFileError("The file has no rows.")
    header = [as_text(h).strip() for h in raw.iloc[0].tolist()]
    columns = {name: (header.index(label) if label in header else -1) for name, label in HEADER_LABELS.items()}
    if columns["name"] < 0:
        raise ImportFileError(f"Header '{HEADER_LABELS['name']}' was not found in the first row.")

    records: List[KOCRecord] = []
    for _, row in raw.iloc[1:].iterrows():
        name = as_text(_cell(row, columns["name"])).strip()
        if not name:
            continue
        values = {field: _cell(row, columns[field]) for field in IMPORT_FIELDS}
        values["name"] = name
        values["cooperation_date"] = to_canonical(values["cooperation_date"], local_midnight=True)
        records.append(record_from_dict(values))
    logger.info("Parsed %d records from %d data rows.", len(records), len(raw) - 1)
    return records


def import_records(file_bytes: bytes, filename: str) -> List[KOCRecord]:
    return parse_import_frame(read_upload_file(file_bytes, filename))


def export_frame(records: Iterable[KOCRecord]) -> pd.DataFrame:
    rows = []
    for record in records:
        data = record_as_dict(record)
        data["cooperation_date"] = to_display(data["cooperation_date"])
        rows.append({HEADER_LABELS[f]: data[f] for f in ROW_COLUMNS})
    return pd.DataFrame(rows, columns=[HEADER_LABELS[f] for f in ROW_COLUMNS])


def export_records(records: Iterable[KOCRecord]) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        export_frame(records).to_excel(writer, sheet_name=EXPORT_SHEET_NAME, index=False)
    return buffer.getvalue()
