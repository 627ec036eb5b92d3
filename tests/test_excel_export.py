from datetime import date, datetime
from decimal import Decimal

import pytest

from travelcost.models import Expense, ExpenseCategory, Trip, UserProfile
from backend.services.excel_export import ExcelExportService, read_cells
from backend.services.german_travel_rules import calculate_meal_allowances
from backend.services.report_aggregator import build_report


@pytest.fixture
def report():
    start, end = datetime(2024, 3, 1, 9, 0), datetime(2024, 3, 3, 17, 0)
    trip = Trip(
        trip_id="trip-1",
        name="Messe Hannover",
        start_datetime=start,
        end_datetime=end,
        meal_allowances=calculate_meal_allowances(start, end),
    )
    hotel = Expense(
        expense_id="exp-1",
        trip_id="trip-1",
        category=ExpenseCategory.UEBERNACHTUNG,
        spent_on=date(2024, 3, 1),
        gross_amount=Decimal("107.00"),
        net_amount=Decimal("100.00"),
        vat_amount=Decimal("7.00"),
        vat_rate_id="vat_7",
        description="Hotel am Bahnhof",
    )
    return build_report([trip], [hotel])


@pytest.fixture
def profile():
    return UserProfile(name="Erika Musterfrau", personnel_number="4711", cost_center="KST-100")


def test_export_fills_default_workbook(tmp_path, report, profile):
    service = ExcelExportService(template_path=tmp_path / "missing.xlsx")
    output = service.export_report(
        report, tmp_path / "exports" / "report.xlsx", profile, date(2024, 3, 1), date(2024, 3, 31)
    )

    assert output.exists()
    main = read_cells(output, ["A1", "B3", "B4", "B7", "D9", "B10", "D10", "E10", "H10"], "Reisekosten")
    assert main["A1"] == "Reisekostenabrechnung"
    assert main["B3"] == "Erika Musterfrau"
    assert main["B4"] == "4711"
    assert main["B7"] == "01.03.2024 - 31.03.2024"
    assert main["D9"] == "Beschreibung"
    assert main["B10"] == "Messe Hannover"
    assert main["D10"] == "Hotel am Bahnhof"
    assert main["E10"] == 7
    assert main["H10"] == pytest.approx(107.0)

    meals = read_cells(output, ["C2", "D3", "C4"], "Verpflegung")
    assert meals == {"C2": "Anreisetag", "D3": pytest.approx(28.0), "C4": "Abreisetag"}

    totals = read_cells(output, ["C4", "D4", "B8", "B9", "B13", "B14"], "Zusammenfassung")
    assert totals["C4"] == pytest.approx(7.0)
    assert totals["D4"] == pytest.approx(107.0)
    assert totals["B8"] == 1
    assert totals["B9"] == 1
    assert totals["B13"] == pytest.approx(56.0)
    assert totals["B14"] == pytest.approx(163.0)


def test_existing_template_is_used(tmp_path, report):
    service = ExcelExportService(template_path=tmp_path / "template.xlsx")
    template = service.create_default_workbook()
    template["Reisekosten"]["J1"] = "Firmenvorlage"
    template.save(tmp_path / "template.xlsx")

    output = service.export_report(report, tmp_path / "report.xlsx")

    cells = read_cells(output, ["J1", "B3", "B7"], "Reisekosten")
    assert cells["J1"] == "Firmenvorlage"
    assert cells["B7"] in ("", None)


def test_mandatory_cells(tmp_path):
    service = ExcelExportService(template_path=tmp_path / "missing.xlsx")
    assert service.get_mandatory_cells() == ["B3", "B7"]


def test_mapping_must_be_a_dictionary(tmp_path):
    mapping = tmp_path / "mapping.yaml"
    mapping.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        ExcelExportService(mapping_path=mapping)


def test_legacy_expense_exports_gross_as_net(tmp_path):
    start, end = datetime(2024, 3, 1, 9, 0), datetime(2024, 3, 1, 19, 0)
    trip = Trip(trip_id="trip-1", name="Altbestand", start_datetime=start, end_datetime=end)
    legacy = Expense(
        expense_id="exp-1",
        trip_id="trip-1",
        category=ExpenseCategory.SONSTIGES,
        spent_on=date(2024, 3, 1),
        amount=Decimal("15.50"),
    )
    service = ExcelExportService(template_path=tmp_path / "missing.xlsx")

    output = service.export_report(build_report([trip], [legacy]), tmp_path / "report.xlsx")

    cells = read_cells(output, ["E10", "F10", "G10", "H10"], "Reisekosten")
    assert cells["E10"] == 19
    assert cells["F10"] == pytest.approx(15.5)
    assert cells["G10"] == pytest.approx(0.0)
    assert cells["H10"] == pytest.approx(15.5)
