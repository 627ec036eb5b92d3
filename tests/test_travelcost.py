from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
import tempfile
import unittest

from travelcost import format_currency, render_report_html
from travelcost.models import Expense, ExpenseCategory, Trip, UserProfile
from travelcost.money import round_currency, to_decimal
from travelcost.storage import ReceiptStorage
from backend.services.german_travel_rules import calculate_meal_allowances
from backend.services.report_aggregator import build_report


class MoneyTestCase(unittest.TestCase):
    def test_rounding_is_half_up(self):
        self.assertEqual(round_currency(Decimal("2.345")), Decimal("2.35"))
        self.assertEqual(round_currency(Decimal("2.344")), Decimal("2.34"))
        self.assertEqual(round_currency(0.125), Decimal("0.13"))

    def test_parse_amounts(self):
        self.assertEqual(to_decimal("1.234,50"), Decimal("1234.50"))
        self.assertEqual(to_decimal("12.5"), Decimal("12.5"))
        self.assertIsNone(to_decimal(""))
        with self.assertRaises(ValueError):
            to_decimal("zwölf")
        with self.assertRaises(ValueError):
            to_decimal(True)

    def test_format_currency(self):
        self.assertEqual(format_currency(Decimal("1234.5")), "1.234,50 €")
        self.assertEqual(format_currency(0), "0,00 €")


class ReceiptStorageTestCase(unittest.TestCase):
    def test_upload_path_stays_inside_trip_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = ReceiptStorage(base_dir=Path(tmp) / "uploads")
            upload = storage.upload_path("trip-3", "../../unsafe.png")
            self.assertTrue(str(upload).endswith("uploads/trip-3/unsafe.png"))

    def test_receipts_are_saved_and_removed_per_trip(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = ReceiptStorage(base_dir=Path(tmp))
            first = storage.save_receipt("trip-1", "beleg.jpg", b"one")
            second = storage.save_receipt("trip-1", "beleg.jpg", b"two")

            self.assertNotEqual(first, second)
            self.assertEqual(first.read_bytes(), b"one")
            self.assertTrue(first.name.endswith("-beleg.jpg"))

            deleted = storage.delete_trip_receipts("trip-1")
            self.assertEqual({path.name for path in deleted}, {first.name, second.name})
            self.assertFalse(first.parent.exists())
            self.assertEqual(storage.delete_trip_receipts("trip-1"), [])


class ReportHtmlTestCase(unittest.TestCase):
    def test_report_lists_trips_and_escapes_text(self):
        start, end = datetime(2024, 3, 1, 9, 0), datetime(2024, 3, 1, 19, 0)
        trip = Trip(
            trip_id="trip-1",
            name="Workshop <Berlin>",
            start_datetime=start,
            end_datetime=end,
            meal_allowances=calculate_meal_allowances(start, end),
        )
        expense = Expense(
            expense_id="exp-1",
            trip_id="trip-1",
            category=ExpenseCategory.KILOMETER,
            spent_on=date(2024, 3, 1),
            gross_amount=Decimal("11.22"),
            net_amount=Decimal("11.22"),
            vat_amount=Decimal("0.00"),
            vat_rate_id="vat_0",
            description="Fahrt zum Kunden",
            distance_km=Decimal("37.4"),
            license_plate="B-XY 42",
        )
        report = build_report([trip], [expense])

        html = render_report_html(
            report, UserProfile(name="Erika Musterfrau"), date(2024, 3, 1), date(2024, 3, 31)
        )

        self.assertIn("Reisekostenabrechnung", html)
        self.assertIn("Workshop &lt;Berlin&gt;", html)
        self.assertIn("(37.4 km)", html)
        self.assertIn("[B-XY 42]", html)
        self.assertIn("Zeitraum: 01.03.2024", html)
        self.assertIn("25,22 €", html)
        self.assertNotIn("Keine Reisen", html)

    def test_legacy_expense_row_shows_gross_as_net(self):
        start, end = datetime(2024, 3, 1, 9, 0), datetime(2024, 3, 1, 19, 0)
        trip = Trip(trip_id="trip-1", name="Altbestand", start_datetime=start, end_datetime=end)
        legacy = Expense(
            expense_id="exp-1",
            trip_id="trip-1",
            category=ExpenseCategory.SONSTIGES,
            spent_on=date(2024, 3, 1),
            amount=Decimal("15.50"),
        )

        html = render_report_html(build_report([trip], [legacy]))

        self.assertIn(
            '<td class="r">15,50 €</td><td class="r">0,00 €</td><td class="r">15,50 €</td></tr>',
            html,
        )

    def test_empty_report(self):
        html = render_report_html(build_report([], []))
        self.assertIn("Keine Reisen im gewählten Zeitraum.", html)
        self.assertIn("0,00 €", html)


if __name__ == "__main__":
    unittest.main()
