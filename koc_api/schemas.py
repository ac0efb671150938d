from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from koc_core.filters import SORTABLE_KEYS, KOCFilters, SortConfig, normalize_filters
from koc_core.records import KOCRecord, record_from_dict


class RecordModel(BaseModel):
    row_id: int = 0
    stt: int = 0
    koc_id: str = ""
    name: str = ""
    gender: str = "Khác"
    birth_year: int = 0
    tax_code: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    unit_price: float = 0.0
    main_field: str = ""
    profile_link: str = ""
    followers: int = 0
    brand: str = "Sachi"
    engagement_rate: float = 0.0
    cooperation_date: str = ""
    avg_views: int = 0
    posted_content_link: str = ""
    revenue_1m: float = 0.0
    revenue_3m: float = 0.0
    voice: str = ""
    progress: str = ""
    koc_type: str = "Nano"
    potential: str = ""
    notes: str = ""

    def to_record(self) -> KOCRecord:
        return record_from_dict(self.model_dump())


class FiltersModel(BaseModel):
    search: str = ""
    brands: List[str] = Field(default_factory=list)
    province: str = ""
    main_field: str = ""
    koc_types: List[str] = Field(default_factory=list)
    followers_min: Optional[int] = None
    followers_max: Optional[int] = None

    def to_filters(self) -> KOCFilters:
        return normalize_filters(self.model_dump())


class SortModel(BaseModel):
    key: str
    direction: Literal["ascending", "descending"] = "ascending"

    @field_validator("key")
    @classmethod
    def _known_key(cls, value: str) -> str:
        if value not in SORTABLE_KEYS:
            raise ValueError(f"Unknown sort key: {value}")
        return value

    def to_sort(self) -> SortConfig:
        return SortConfig(key=self.key, direction=self.direction)


class GroupsQueryModel(BaseModel):
    filters: FiltersModel = Field(default_factory=FiltersModel)
    sort: Optional[SortModel] = None
    page: int = 1


class OverviewQueryModel(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    top10_brand: str = "Sachi"
    top5_brand: str = "Sachi"
    include_charts: bool = True


class DeleteRequestModel(BaseModel):
    row_ids: List[int] = Field(default_factory=list)
