from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from travelcost.models import Expense, ExpenseCategory, Trip, UserProfile

from backend.services.excel_export import ExcelExportService, read_cells
from backend.services.german_travel_rules import calculate_meal_allowances
from backend.services.mileage import quote_mileage
from backend.services.report_aggregator import build_date_range_report
from backend.services.vat_rates import split_gross_amount


def sample_expense(expense_id: str, trip_id: str, category: ExpenseCategory, gross: Decimal, vat_rate_id: str) -> Expense:
    net, vat = split_gross_amount(gross, vat_rate_id)
    return Expense(
        expense_id=expense_id,
        trip_id=trip_id,
        category=category,
        spent_on=date(2026, 2, 2),
        gross_amount=gross,
        net_amount=net,
        vat_amount=vat,
        vat_rate_id=vat_rate_id,
        amount=gross,
        description=category.label,
    )


def main() -> int:
    service = ExcelExportService()
    sheet_name = service.mapping["workbook"]["sheet_name"]

    start = datetime(2026, 2, 1, 7, 30)
    end = datetime(2026, 2, 5, 18, 0)
    trip = Trip(
        trip_id="trip-demo",
        name="Kundentermin München",
        destination="München",
        start_datetime=start,
        end_datetime=end,
        meal_allowances=calculate_meal_allowances(start, end),
    )
    mileage = quote_mileage(Decimal("584.2"), one_way_minutes=330)
    expenses = [
        sample_expense("exp-1", trip.trip_id, ExpenseCategory.UEBERNACHTUNG, Decimal("560.00"), "vat_7"),
        sample_expense("exp-2", trip.trip_id, ExpenseCategory.FAHRT, Decimal("120.00"), "vat_7"),
        sample_expense("exp-3", trip.trip_id, ExpenseCategory.KILOMETER, mileage.amount, "vat_0"),
    ]

    report = build_date_range_report([trip], expenses, date(2026, 2, 1), date(2026, 2, 28))
    profile = UserProfile(name="Max Mustermann", personnel_number="4711")

    output_path = Path("artifacts/sample_travel_cost_export.xlsx")
    service.export_report(report, output_path, profile, date(2026, 2, 1), date(2026, 2, 28))

    mandatory_cells = service.get_mandatory_cells()
    values = read_cells(output_path, mandatory_cells, sheet_name)
    missing = [cell for cell, value in values.items() if value in (None, "")]

    if missing:
        print("Verification failed. Missing mandatory values in:", ", ".join(missing))
        return 1

    print(f"Verification passed. Export generated at {output_path} (grand total {report.grand_total})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
