import unittest
from datetime import date, datetime, timedelta, timezone

import pandas as pd

from koc_core.dates import coerce_date, month_start, parse_canonical, to_canonical, to_display
from koc_core.records import (
    Brand,
    Gender,
    KOCRecord,
    KOCType,
    blank_record,
    profile_from_existing,
    record_as_dict,
    record_from_dict,
    record_to_row,
    row_to_record,
    to_enum,
)


class DateConversionTests(unittest.TestCase):
    def test_display_text_becomes_canonical(self):
        self.assertEqual(to_canonical("15/03/2024"), "2024-03-15")
        self.assertEqual(to_canonical("5-1-2024"), "2024-01-05")

    def test_canonical_and_iso_text_pass_through(self):
        self.assertEqual(to_canonical("2024-03-15"), "2024-03-15")
        self.assertEqual(to_canonical("2024-03-15T00:00:00.000Z"), "2024-03-15")

    def test_blank_and_garbage_become_empty(self):
        for value in (None, "", "   ", float("nan"), "not a date", True):
            self.assertEqual(to_canonical(value), "", value)

    def test_naive_datetime_keeps_its_calendar_day(self):
        self.assertEqual(to_canonical(datetime(2024, 3, 15, 0, 0)), "2024-03-15")
        self.assertEqual(to_canonical(pd.Timestamp("2024-03-15")), "2024-03-15")
        self.assertEqual(to_canonical(date(2024, 3, 15)), "2024-03-15")

    def test_local_midnight_from_east_of_utc_keeps_its_day(self):
        hanoi = timezone(timedelta(hours=7))
        local_midnight = datetime(2024, 3, 15, 0, 0, tzinfo=hanoi)
        self.assertEqual(to_canonical(local_midnight), "2024-03-14")
        self.assertEqual(to_canonical(local_midnight, local_midnight=True), "2024-03-15")

    def test_excel_serial_number(self):
        self.assertEqual(to_canonical(45366), "2024-03-15")

    def test_zero_padded_display_dates_survive_a_round_trip(self):
        day = date(2023, 12, 25)
        while day < date(2024, 3, 5):
            text = day.strftime("%d/%m/%Y")
            self.assertEqual(to_display(to_canonical(text)), text)
            day += timedelta(days=1)

    def test_display_round_trip_of_canonical(self):
        self.assertEqual(to_display("2024-03-15"), "15/03/2024")
        self.assertEqual(to_display(""), "")
        self.assertEqual(to_display("15/03/2024"), "")

    def test_parse_and_coerce(self):
        self.assertEqual(parse_canonical("2024-02-29"), date(2024, 2, 29))
        self.assertIsNone(parse_canonical("2023-02-29"))
        self.assertIsNone(coerce_date(None))
        self.assertEqual(coerce_date("01/02/2024"), date(2024, 2, 1))
        self.assertEqual(coerce_date(datetime(2024, 2, 1, 13, 0)), date(2024, 2, 1))

    def test_month_start_crosses_year_boundary(self):
        self.assertEqual(month_start(date(2024, 2, 20), months_back=2), date(2023, 12, 1))
        self.assertEqual(month_start(date(2024, 5, 31)), date(2024, 5, 1))


class RecordMappingTests(unittest.TestCase):
    def test_short_row_is_padded_with_defaults(self):
        record = row_to_record([7, "KOC007", "Minh"], row_id=8)
        self.assertEqual(record.row_id, 8)
        self.assertEqual(record.stt, 7)
        self.assertEqual(record.name, "Minh")
        self.assertEqual(record.gender, Gender.OTHER)
        self.assertEqual(record.brand, Brand.SACHI)
        self.assertEqual(record.koc_type, KOCType.NANO)
        self.assertEqual(record.followers, 0)
        self.assertEqual(record.cooperation_date, "")

    def test_numbers_from_the_sheet_are_coerced(self):
        row = [1, "KOC001", "Minh", "Nữ", "1998", 123456789.0, 901234567.0, "m@x.vn", "Hà Nội", "1500000", "Làm đẹp", "", "12,000"]
        record = row_to_record(row, row_id=2)
        self.assertEqual(record.birth_year, 1998)
        self.assertEqual(record.tax_code, "123456789")
        self.assertEqual(record.phone, "901234567")
        self.assertEqual(record.unit_price, 1500000.0)
        self.assertEqual(record.gender, Gender.FEMALE)
        self.assertEqual(record.followers, 0)

    def test_unknown_enum_value_falls_back(self):
        with self.assertLogs("koc_core.records", level="WARNING"):
            self.assertEqual(to_enum(Brand, "Unknown Co", Brand.SACHI), Brand.SACHI)
        self.assertEqual(to_enum(Brand, "chilly", Brand.SACHI), Brand.CHILLY)
        self.assertEqual(to_enum(KOCType, "MACRO", KOCType.NANO), KOCType.MACRO)

    def test_row_round_trip_keeps_every_column_position(self):
        record = record_from_dict(
            {"stt": 4, "koc_id": "KOC004", "name": "Vy", "brand": "Kan", "cooperation_date": "2024-03-15", "notes": "hi"}
        )
        row = record_to_row(record)
        self.assertEqual(len(row), 25)
        self.assertEqual(row[:2], ["", ""])
        self.assertEqual(row[13], "Kan")
        self.assertEqual(row[15], "2024-03-15")
        self.assertEqual(row[24], "hi")
        self.assertEqual(row_to_record(row, 5).brand, Brand.KAN)

    def test_dict_form_uses_plain_values(self):
        data = record_as_dict(KOCRecord(name="A", gender=Gender.MALE))
        self.assertEqual(data["gender"], "Nam")
        self.assertEqual(record_from_dict(data), KOCRecord(name="A", gender=Gender.MALE))

    def test_blank_record_defaults(self):
        record = blank_record(date(2025, 6, 1))
        self.assertEqual(record.birth_year, 2007)
        self.assertEqual(record.cooperation_date, "2025-06-01")
        self.assertEqual(record.gender, Gender.OTHER)
        self.assertEqual(record.brand, Brand.SACHI)

    def test_profile_from_existing_tax_code(self):
        records = [
            KOCRecord(row_id=2, name="A", tax_code="111", phone="01", followers=500, brand=Brand.KAN),
            KOCRecord(row_id=3, name="B", tax_code="222"),
        ]
        profile = profile_from_existing(records, " 111 ")
        self.assertEqual(profile["name"], "A")
        self.assertEqual(profile["followers"], 500)
        self.assertNotIn("brand", profile)
        self.assertIsNone(profile_from_existing(records, "999"))
        self.assertIsNone(profile_from_existing(records, ""))


if __name__ == "__main__":
    unittest.main()
