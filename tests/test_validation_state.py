import logging
import unittest

from koc_core.config import Settings, configure_logging, is_configured_url, load_settings
from koc_core.gateway import SheetApplicationError, SheetGateway, SheetTransportError
from koc_core.records import KOCRecord, record_from_dict, with_changes
from koc_core.state import AppState, shift_after_delete
from koc_core.validation import validate_record
from tests.sheet_backend import SHEET_URL, FakeResponse, SheetBackend, UnreachableSession, make_row


def valid_record(**extra):
    data = {"name": "Lan", "phone": "0901", "email": "lan@example.com", "birth_year": 1995}
    data.update(extra)
    return record_from_dict(data)


class ValidationTests(unittest.TestCase):
    def test_valid_record_has_no_errors(self):
        self.assertEqual(validate_record(valid_record(), current_year=2025), {})

    def test_required_fields(self):
        errors = validate_record(KOCRecord(birth_year=1990), current_year=2025)
        self.assertEqual(set(errors), {"name", "phone", "email"})

    def test_email_shape(self):
        self.assertIn("email", validate_record(valid_record(email="lan@example"), current_year=2025))
        self.assertIn("email", validate_record(valid_record(email="lan example.com"), current_year=2025))

    def test_followers_and_birth_year_bounds(self):
        self.assertIn("followers", validate_record(valid_record(followers=-1), current_year=2025))
        self.assertEqual(validate_record(valid_record(birth_year=1920), current_year=2025), {})
        self.assertEqual(validate_record(valid_record(birth_year=2025), current_year=2025), {})
        self.assertIn("birth_year", validate_record(valid_record(birth_year=1919), current_year=2025))
        self.assertIn("birth_year", validate_record(valid_record(birth_year=2026), current_year=2025))


class ShiftAfterDeleteTests(unittest.TestCase):
    def test_survivors_move_up_past_removed_rows(self):
        records = [KOCRecord(row_id=i, name=f"R{i}") for i in range(2, 9)]
        kept = shift_after_delete(records, [7, 5, 3])
        self.assertEqual([r.name for r in kept], ["R2", "R4", "R6", "R8"])
        self.assertEqual([r.row_id for r in kept], [2, 3, 4, 5])


class AppStateTests(unittest.TestCase):
    def setUp(self):
        self.backend = SheetBackend(
            [make_row("A", c0=1, c1="KOC001"), make_row("B", c0=2, c1="KOC002"), make_row("C", c0=3, c1="KOC003")]
        )
        self.gateway = SheetGateway(SHEET_URL, session=self.backend)
        self.state = AppState()
        self.assertTrue(self.state.load(self.gateway))

    def assert_matches_sheet(self):
        fresh = SheetGateway(SHEET_URL, session=self.backend).fetch_all()
        self.assertEqual(
            [(r.row_id, r.name) for r in sorted(self.state.records, key=lambda r: r.row_id)],
            [(r.row_id, r.name) for r in fresh],
        )

    def test_load_failure_keeps_error_message(self):
        backend = SheetBackend()
        backend.fail_with = FakeResponse(None, status_code=503, text="down")
        state = AppState()
        with self.assertLogs("koc_core.state", level="ERROR"):
            self.assertFalse(state.load(SheetGateway(SHEET_URL, session=backend)))
        self.assertIn("503", state.error)
        self.assertFalse(state.loading)
        self.assertFalse(state.loaded)

    def test_load_with_no_network_keeps_error_message(self):
        state = AppState()
        with self.assertLogs("koc_core.state", level="ERROR"):
            self.assertFalse(state.load(SheetGateway(SHEET_URL, session=UnreachableSession())))
        self.assertIn("network unreachable", state.error)
        self.assertFalse(state.loading)
        self.assertFalse(state.loaded)
        self.assertEqual(state.records, ())

    def test_add_appends_the_server_record(self):
        created = self.state.add(self.gateway, valid_record(name="D"))
        self.assertEqual(created.koc_id, "KOC004")
        self.assertEqual(self.state.records[-1], created)
        self.assert_matches_sheet()

    def test_batch_add(self):
        created = self.state.batch_add(self.gateway, [valid_record(name="D"), valid_record(name="E")])
        self.assertEqual([r.row_id for r in created], [5, 6])
        self.assertEqual(len(self.state.records), 5)
        self.assert_matches_sheet()

    def test_update_replaces_in_place(self):
        target = self.state.records[1]
        self.state.update(self.gateway, with_changes(target, name="B2", followers="1500"))
        self.assertEqual(self.state.records[1].name, "B2")
        self.assertEqual(self.state.records[1].followers, 1500)
        self.assertEqual(self.state.records[1].koc_id, "KOC002")
        self.assert_matches_sheet()

    def test_delete_then_update_targets_the_right_row(self):
        self.state.delete(self.gateway, [2])
        self.assertEqual([(r.row_id, r.name) for r in self.state.records], [(2, "B"), (3, "C")])
        self.state.update(self.gateway, with_changes(self.state.records[1], name="C2"))
        self.assertEqual([r[2] for r in self.backend.rows], ["B", "C2"])
        self.assert_matches_sheet()

    def test_failed_write_leaves_snapshot_untouched(self):
        before = self.state.records
        self.backend.fail_with = FakeResponse({"error": "Lock timeout"})
        with self.assertRaises(SheetApplicationError):
            self.state.add(self.gateway, valid_record(name="D"))
        self.backend.fail_with = FakeResponse(None, status_code=500, text="x")
        with self.assertRaises(SheetTransportError):
            self.state.delete(self.gateway, [2])
        self.assertIs(self.state.records, before)


class ConfigTests(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(load_settings({}), Settings())

    def test_environment_values(self):
        settings = load_settings(
            {"KOC_SHEET_URL": f" {SHEET_URL} ", "KOC_SHEET_TIMEOUT": "15", "KOC_PAGE_SIZE": "500", "KOC_LOG_LEVEL": "debug"}
        )
        self.assertEqual(settings.sheet_url, SHEET_URL)
        self.assertEqual(settings.request_timeout, 15.0)
        self.assertEqual(settings.page_size, 200)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_bad_values_fall_back(self):
        settings = load_settings({"KOC_SHEET_TIMEOUT": "-3", "KOC_PAGE_SIZE": "many"})
        self.assertIsNone(settings.request_timeout)
        self.assertEqual(settings.page_size, 10)

    def test_placeholder_urls_are_not_configured(self):
        self.assertTrue(is_configured_url(SHEET_URL))
        self.assertFalse(is_configured_url("  "))
        self.assertFalse(is_configured_url("https://x/YOUR_GOOGLE_APPS_SCRIPT_WEB_APP_URL_HERE"))

    def test_configure_logging_sets_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging("WARNING")
            self.assertEqual(root.level, logging.WARNING)
        finally:
            root.setLevel(previous)


if __name__ == "__main__":
    unittest.main()
