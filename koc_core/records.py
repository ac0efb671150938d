from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from koc_core.dates import to_canonical


logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


class Gender(str, Enum):
    MALE = "Nam"
    FEMALE = "Nữ"
    OTHER = "Khác"


class Brand(str, Enum):
    SACHI = "Sachi"
    CHILLY = "Chilly"
    FYSOLINE = "Fysoline"
    PROSPAN = "Prospan"
    KAN = "Kan"


class KOCType(str, Enum):
    NANO = "Nano"
    MICRO = "Micro"
    MACRO = "Macro"
    MEGA = "Mega"


BRANDS: List[str] = [b.value for b in Brand]
GENDERS: List[str] = [g.value for g in Gender]
KOC_TYPES: List[str] = [t.value for t in KOCType]

PROVINCES: List[str] = [
    "An Giang", "Bà Rịa - Vũng Tàu", "Bắc Giang", "Bắc Kạn", "Bạc Liêu", "Bắc Ninh",
    "Bến Tre", "Bình Định", "Bình Dương", "Bình Phước", "Bình Thuận", "Cà Mau",
    "Cần Thơ", "Cao Bằng", "Đà Nẵng", "Đắk Lắk", "Đắk Nông", "Điện Biên",
    "Đồng Nai", "Đồng Tháp", "Gia Lai", "Hà Giang", "Hà Nam", "Hà Nội",
    "Hà Tĩnh", "Hải Dương", "Hải Phòng", "Hậu Giang", "Hòa Bình", "Hưng Yên",
    "Khánh Hòa", "Kiên Giang", "Kon Tum", "Lai Châu", "Lâm Đồng", "Lạng Sơn",
    "Lào Cai", "Long An", "Nam Định", "Nghệ An", "Ninh Bình", "Ninh Thuận",
    "Phú Thọ", "Phú Yên", "Quảng Bình", "Quảng Nam", "Quảng Ngãi", "Quảng Ninh",
    "Quảng Trị", "Sóc Trăng", "Sơn La", "Tây Ninh", "Thái Bình", "Thái Nguyên",
    "Thanh Hóa", "Thừa Thiên Huế", "Tiền Giang", "TP. Hồ Chí Minh", "Trà Vinh",
    "Tuyên Quang", "Vĩnh Long", "Vĩnh Phúc", "Yên Bái",
]

MAIN_FIELDS: List[str] = [
    "Làm đẹp",
    "Thời trang",
    "Ẩm thực",
    "Mẹ và bé",
    "Sức khỏe",
    "Du lịch",
    "Công nghệ",
    "Đời sống",
    "Giải trí",
    "Thể thao",
    "Khác",
]

# Sheet column order. Positional and load-bearing: every consumer of the sheet relies on it.
ROW_COLUMNS = (
    "stt",
    "koc_id",
    "name",
    "gender",
    "birth_year",
    "tax_code",
    "phone",
    "email",
    "address",
    "unit_price",
    "main_field",
    "profile_link",
    "followers",
    "brand",
    "engagement_rate",
    "cooperation_date",
    "avg_views",
    "posted_content_link",
    "revenue_1m",
    "revenue_3m",
    "voice",
    "progress",
    "koc_type",
    "potential",
    "notes",
)
ROW_WIDTH = len(ROW_COLUMNS)

INT_FIELDS = {"stt", "birth_year", "followers", "avg_views"}
FLOAT_FIELDS = {"unit_price", "engagement_rate", "revenue_1m", "revenue_3m"}
ENUM_FIELDS: Dict[str, tuple] = {
    "gender": (Gender, Gender.OTHER),
    "brand": (Brand, Brand.SACHI),
    "koc_type": (KOCType, KOCType.NANO),
}
PROFILE_FIELDS = (
    "name",
    "gender",
    "birth_year",
    "phone",
    "email",
    "address",
    "main_field",
    "profile_link",
    "followers",
    "koc_type",
    "voice",
)


@dataclass(frozen=True)
class KOCRecord:
    row_id: int = 0
    stt: int = 0
    koc_id: str = ""
    name: str = ""
    gender: Gender = Gender.OTHER
    birth_year: int = 0
    tax_code: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    unit_price: float = 0.0
    main_field: str = ""
    profile_link: str = ""
    followers: int = 0
    brand: Brand = Brand.SACHI
    engagement_rate: float = 0.0
    cooperation_date: str = ""
    avg_views: int = 0
    posted_content_link: str = ""
    revenue_1m: float = 0.0
    revenue_3m: float = 0.0
    voice: str = ""
    progress: str = ""
    koc_type: KOCType = KOCType.NANO
    potential: str = ""
    notes: str = ""


RECORD_FIELDS = [f.name for f in fields(KOCRecord)]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def to_enum(enum_cls: Type[E], raw: Any, default: E) -> E:
    """Map a raw cell to an enum member; blank or unknown values map to `default`.

    Accepted spellings: the member value, the value in any letter case, or the member name.
    """
    if isinstance(raw, enum_cls):
        return raw
    if _is_blank(raw):
        return default
    text = str(raw).strip()
    for member in enum_cls:
        if text == member.value or text.casefold() == member.value.casefold() or text.upper() == member.name:
            return member
    logger.warning("Unknown %s value %r; using %s.", enum_cls.__name__, raw, default.value)
    return default


def as_float(value: Any) -> float:
    if _is_blank(value) or isinstance(value, bool):
        return 0.0
    try:
        out = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(out) or math.isinf(out):
        return 0.0
    return out


def as_int(value: Any) -> int:
    return int(as_float(value))


def as_text(value: Any) -> str:
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_field(name: str, value: Any) -> Any:
    if name in INT_FIELDS:
        return as_int(value)
    if name in FLOAT_FIELDS:
        return as_float(value)
    if name in ENUM_FIELDS:
        enum_cls, default = ENUM_FIELDS[name]
        return to_enum(enum_cls, value, default)
    if name == "cooperation_date":
        return to_canonical(value)
    return as_text(value)


def row_to_record(row: Optional[Sequence[Any]], row_id: int) -> KOCRecord:
    cells = list(row or [])[:ROW_WIDTH]
    cells += [None] * (ROW_WIDTH - len(cells))
    values = {name: _coerce_field(name, cell) for name, cell in zip(ROW_COLUMNS, cells)}
    return KOCRecord(row_id=int(row_id), **values)


def record_to_row(record: KOCRecord) -> List[Any]:
    """Sheet row for a record; `stt` and `koc_id` are left blank for the sheet to assign."""
    row: List[Any] = []
    for name in ROW_COLUMNS:
        value = getattr(record, name)
        row.append(value.value if isinstance(value, Enum) else value)
    row[0] = ""
    row[1] = ""
    return row


def record_as_dict(record: KOCRecord) -> Dict[str, Any]:
    return {
        name: (value.value if isinstance(value, Enum) else value)
        for name, value in ((f, getattr(record, f)) for f in RECORD_FIELDS)
    }


def record_from_dict(data: Dict[str, Any]) -> KOCRecord:
    values = {name: _coerce_field(name, data.get(name)) for name in ROW_COLUMNS}
    return KOCRecord(row_id=as_int(data.get("row_id")), **values)


def with_changes(record: KOCRecord, **changes: Any) -> KOCRecord:
    coerced = {name: (_coerce_field(name, value) if name in ROW_COLUMNS else value) for name, value in changes.items()}
    return replace(record, **coerced)


def blank_record(today: Optional[date] = None) -> KOCRecord:
    today = today or date.today()
    return KOCRecord(birth_year=today.year - 18, cooperation_date=today.isoformat())


def profile_from_existing(records: Iterable[KOCRecord], tax_code: str) -> Optional[Dict[str, Any]]:
    """Profile fields of the first record with this tax code, used to prefill a new collaboration."""
    code = (tax_code or "").strip()
    if not code:
        return None
    for record in records:
        if record.tax_code.strip() == code:
            return {name: getattr(record, name) for name in PROFILE_FIELDS}
    return None
