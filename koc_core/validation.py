from __future__ import annotations

import re
from datetime import date
from typing import Dict, Optional

from koc_core.records import KOCRecord


EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
MIN_BIRTH_YEAR = 1920


def validate_record(record: KOCRecord, *, current_year: Optional[int] = None) -> Dict[str, str]:
    """Field -> message for every check the form blocks on. Empty dict means the record may be saved."""
    current_year = current_year or date.today().year
    errors: Dict[str, str] = {}
    if not record.name.strip():
        errors["name"] = "Name is required."
    if not record.phone.strip():
        errors["phone"] = "Phone number is required."
    if not record.email.strip():
        errors["email"] = "Email is required."
    elif not EMAIL_PATTERN.search(record.email):
        errors["email"] = "Email is not valid."
    if record.followers < 0:
        errors["followers"] = "Followers cannot be negative."
    if record.birth_year > current_year or record.birth_year < MIN_BIRTH_YEAR:
        errors["birth_year"] = f"Birth year must be between {MIN_BIRTH_YEAR} and {current_year}."
    return errors
