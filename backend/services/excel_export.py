from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Optional

import yaml
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.worksheet.worksheet import Worksheet

from travelcost.models import ReportSummary, UserProfile

from backend.services.vat_rates import get_vat_rate


logger = logging.getLogger(__name__)

DEFAULT_MAPPING_PATH = Path(__file__).resolve().parent.parent / "config" / "excel_mapping.yaml"

EXPENSE_HEADERS = {
    "date": "Datum",
    "trip": "Reise",
    "category": "Kategorie",
    "description": "Beschreibung",
    "vat_percent": "USt %",
    "net": "Netto",
    "vat": "USt",
    "gross": "Brutto",
}
META_LABELS = {
    "employee_name": "Mitarbeiter",
    "personnel_number": "Personalnummer",
    "department": "Abteilung",
    "cost_center": "Kostenstelle",
    "period": "Zeitraum",
}
MEAL_HEADERS = {"date": "Datum", "trip": "Reise", "kind": "Art", "amount": "Betrag"}
TOTAL_LABELS = {
    "trip_count": "Reisen",
    "position_count": "Positionen",
    "total_net": "Summe netto",
    "total_vat": "Summe USt",
    "total_gross": "Summe brutto",
    "total_meal_allowances": "Verpflegungspauschalen",
    "grand_total": "Gesamtbetrag",
}


def _amount(value: Any) -> float:
    return round(float(value or 0), 2)


@dataclass
class ExcelExportService:
    """Export a travel cost report into a pre-formatted workbook template."""

    template_path: Path = Path("templates/Reisekostenabrechnung.xlsx")
    mapping_path: Path = DEFAULT_MAPPING_PATH

    def __post_init__(self) -> None:
        self.template_path = Path(self.template_path)
        self.mapping = self._load_mapping(Path(self.mapping_path))

    @staticmethod
    def _load_mapping(mapping_path: Path) -> dict[str, Any]:
        with mapping_path.open("r", encoding="utf-8") as mapping_file:
            loaded = yaml.safe_load(mapping_file)

        if not isinstance(loaded, dict):
            msg = f"Mapping file must contain a dictionary at root: {mapping_path}"
            raise ValueError(msg)

        return loaded

    @staticmethod
    def build_payload(
        report: ReportSummary,
        profile: Optional[UserProfile] = None,
        range_start: Optional[date] = None,
        range_end: Optional[date] = None,
    ) -> dict[str, Any]:
        """Flatten a report into the plain structure the workbook mapping expects."""
        profile = profile or UserProfile()
        period = ""
        if range_start and range_end:
            period = f"{range_start:%d.%m.%Y} - {range_end:%d.%m.%Y}"

        expenses = []
        meal_allowances = []
        for trip_report in report.trip_reports:
            for expense in trip_report.expenses:
                expenses.append(
                    {
                        "date": expense.spent_on,
                        "trip": trip_report.trip.name,
                        "category": expense.category.label,
                        "description": expense.description,
                        "vat_percent": get_vat_rate(expense.vat_rate_id).rate_percent,
                        "net": _amount(expense.effective_net),
                        "vat": _amount(expense.effective_vat),
                        "gross": _amount(expense.effective_gross),
                    }
                )
            if trip_report.trip.meal_allowances is not None:
                for day in trip_report.trip.meal_allowances.breakdown:
                    meal_allowances.append(
                        {
                            "date": day.date,
                            "trip": trip_report.trip.name,
                            "kind": day.label,
                            "amount": _amount(day.amount),
                        }
                    )

        return {
            "meta": {
                "employee_name": profile.name,
                "personnel_number": profile.personnel_number,
                "department": profile.department,
                "cost_center": profile.cost_center,
                "period": period,
            },
            "expenses": expenses,
            "meal_allowances": meal_allowances,
            "vat_summary": {
                rate_id.value: {
                    "net": _amount(bucket.net),
                    "vat": _amount(bucket.vat),
                    "gross": _amount(bucket.gross),
                }
                for rate_id, bucket in report.vat_summary.items()
            },
            "final_totals": {
                "trip_count": report.trip_count,
                "position_count": report.position_count,
                "total_net": _amount(report.total_net),
                "total_vat": _amount(report.total_vat),
                "total_gross": _amount(report.total_gross),
                "total_meal_allowances": _amount(report.total_meal_allowances),
                "grand_total": _amount(report.grand_total),
            },
        }

    def generate_export(self, payload: dict[str, Any], output_path: Path | str) -> Path:
        """Fill template cells based on YAML mapping and save result to output_path."""
        workbook = self._open_template()
        worksheet = workbook[self.mapping["workbook"]["sheet_name"]]

        self._map_meta(worksheet, payload.get("meta", {}))
        self._map_expenses(worksheet, payload.get("expenses", []))
        self._map_meal_allowances(workbook, payload.get("meal_allowances", []))
        self._map_vat_summary(workbook, payload.get("vat_summary", {}))
        self._map_final_totals(workbook, payload.get("final_totals", {}))

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(output_path)
        logger.info("Wrote workbook export to %s", output_path)

        return output_path

    def export_report(
        self,
        report: ReportSummary,
        output_path: Path | str,
        profile: Optional[UserProfile] = None,
        range_start: Optional[date] = None,
        range_end: Optional[date] = None,
    ) -> Path:
        payload = self.build_payload(report, profile, range_start, range_end)
        return self.generate_export(payload, output_path)

    def _open_template(self) -> Workbook:
        if self.template_path.exists():
            return load_workbook(self.template_path)
        logger.info("Template %s not found, using default layout", self.template_path)
        return self.create_default_workbook()

    def create_default_workbook(self) -> Workbook:
        """Blank workbook with the sheets, labels and headers the mapping refers to."""
        workbook = Workbook()
        main = workbook.active
        main.title = self.mapping["workbook"]["sheet_name"]
        main[self.mapping["workbook"]["title_cell"]] = self.mapping["workbook"]["title"]
        main[self.mapping["workbook"]["title_cell"]].font = Font(bold=True, size=14)

        for field, cell in self.mapping["meta"].items():
            label_cell = main[cell].offset(column=-1)
            label_cell.value = META_LABELS.get(field, field)

        expenses = self.mapping["expenses"]
        for key, column in expenses["columns"].items():
            header = main[f"{column}{expenses['header_row']}"]
            header.value = EXPENSE_HEADERS.get(key, key)
            header.font = Font(bold=True)

        meals = self.mapping["meal_allowances"]
        meal_sheet = self._sheet(workbook, meals["sheet_name"])
        for key, column in meals["columns"].items():
            header = meal_sheet[f"{column}{meals['header_row']}"]
            header.value = MEAL_HEADERS.get(key, key)
            header.font = Font(bold=True)

        vat_sheet = self._sheet(workbook, self.mapping["vat_summary"]["sheet_name"])
        for rate_id, cells in self.mapping["vat_summary"]["rates"].items():
            vat_sheet[cells["net"]].offset(column=-1).value = f"{get_vat_rate(rate_id).rate_percent}%"

        totals_sheet = self._sheet(workbook, self.mapping["final_totals"]["sheet_name"])
        for field, cell in self.mapping["final_totals"]["cells"].items():
            totals_sheet[cell].offset(column=-1).value = TOTAL_LABELS.get(field, field)

        return workbook

    @staticmethod
    def _sheet(workbook: Workbook, name: str) -> Worksheet:
        if name in workbook.sheetnames:
            return workbook[name]
        return workbook.create_sheet(name)

    def _map_meta(self, sheet: Worksheet, values: dict[str, Any]) -> None:
        for field, cell in self.mapping["meta"].items():
            sheet[cell] = values.get(field)

    def _map_expenses(self, sheet: Worksheet, values: list[dict[str, Any]]) -> None:
        section = self.mapping["expenses"]
        start_row = int(section["start_row"])
        columns = section["columns"]

        for offset, expense in enumerate(values):
            row = start_row + offset
            for key, column in columns.items():
                sheet[f"{column}{row}"] = expense.get(key)

    def _map_meal_allowances(self, workbook: Workbook, values: list[dict[str, Any]]) -> None:
        section = self.mapping["meal_allowances"]
        sheet = self._sheet(workbook, section["sheet_name"])
        start_row = int(section["start_row"])
        for offset, day in enumerate(values):
            for key, column in section["columns"].items():
                sheet[f"{column}{start_row + offset}"] = day.get(key)

    def _map_vat_summary(self, workbook: Workbook, values: dict[str, Any]) -> None:
        section = self.mapping["vat_summary"]
        sheet = self._sheet(workbook, section["sheet_name"])
        for rate_id, cells in section["rates"].items():
            bucket = values.get(rate_id, {})
            for key, cell in cells.items():
                sheet[cell] = bucket.get(key, 0.0)

    def _map_final_totals(self, workbook: Workbook, values: dict[str, Any]) -> None:
        section = self.mapping["final_totals"]
        sheet = self._sheet(workbook, section["sheet_name"])
        for field, cell in section["cells"].items():
            sheet[cell] = values.get(field)

    def get_mandatory_cells(self) -> list[str]:
        verification = self.mapping.get("verification", {})
        mandatory_cells = verification.get("mandatory_cells", [])
        if not isinstance(mandatory_cells, list):
            msg = "verification.mandatory_cells must be a list of cell references"
            raise ValueError(msg)
        return mandatory_cells


def read_cells(path: Path | str, cells: list[str], sheet_name: str) -> dict[str, Any]:
    """Utility for validation/testing: read exact cell values from an exported workbook."""
    workbook: Workbook = load_workbook(path, data_only=False)
    sheet = workbook[sheet_name]
    return {cell: sheet[cell].value for cell in cells}
