from __future__ import annotations

from datetime import date
from html import escape
from typing import Optional

from .models import ExpenseCategory, ReportSummary, TripReport, UserProfile, VatRateId
from .money import format_currency

REPORT_STYLE = (
    "body{font-family:Helvetica,Arial,sans-serif;font-size:11px;color:#212121}"
    "table{width:100%;border-collapse:collapse;margin:6px 0}"
    "th,td{border-bottom:1px solid #e0e0e0;padding:4px;text-align:left}"
    ".r{text-align:right}.sub td{background:#f5f5f5}.muted{color:#757575}"
    ".trip{margin-bottom:18px}.trip-total{text-align:right;font-size:12px}"
)


def _date(value: date) -> str:
    return value.strftime("%d.%m.%Y")


def render_trip_section(index: int, report: TripReport) -> str:
    trip = report.trip
    meta = f"{escape(trip.destination)} &middot; " if trip.destination else ""
    meta += (
        f"{trip.start_datetime.strftime('%d.%m.%Y %H:%M')} &ndash; "
        f"{trip.end_datetime.strftime('%d.%m.%Y %H:%M')}"
    )

    if report.expenses:
        rows = []
        for expense in report.expenses:
            description = escape(expense.description) or "&ndash;"
            if expense.category == ExpenseCategory.KILOMETER and expense.distance_km:
                description += f" ({expense.distance_km} km)"
            if expense.license_plate:
                description += f" [{escape(expense.license_plate)}]"
            rows.append(
                "<tr>"
                f"<td>{_date(expense.spent_on)}</td>"
                f"<td>{escape(expense.category.label)}</td>"
                f"<td>{description}</td>"
                f'<td style="text-align:center">{VatRateId.resolve(expense.vat_rate_id).rate_percent}%</td>'
                f'<td class="r">{format_currency(expense.effective_net)}</td>'
                f'<td class="r">{format_currency(expense.effective_vat)}</td>'
                f'<td class="r">{format_currency(expense.effective_gross)}</td>'
                "</tr>"
            )
        expense_table = (
            "<table><thead><tr><th>Datum</th><th>Kategorie</th><th>Beschreibung</th>"
            '<th>USt</th><th class="r">Netto</th><th class="r">USt-Betrag</th>'
            '<th class="r">Brutto</th></tr></thead><tbody>'
            + "".join(rows)
            + '<tr class="sub"><td colspan="4"><strong>Zwischensumme Ausgaben</strong></td>'
            f'<td class="r"><strong>{format_currency(report.net)}</strong></td>'
            f'<td class="r"><strong>{format_currency(report.vat)}</strong></td>'
            f'<td class="r"><strong>{format_currency(report.gross)}</strong></td></tr>'
            "</tbody></table>"
        )
    else:
        expense_table = '<p class="muted">Keine Ausgaben erfasst.</p>'

    meal_table = ""
    if trip.meal_allowances and trip.meal_allowances.breakdown:
        meal_rows = "".join(
            f"<tr><td>{_date(day.date)}</td><td>{escape(day.label)}</td>"
            f'<td class="r">{format_currency(day.amount)}</td></tr>'
            for day in trip.meal_allowances.breakdown
        )
        meal_table = (
            "<h4>Verpflegungspauschalen</h4>"
            '<table><thead><tr><th>Datum</th><th>Art</th><th class="r">Betrag</th></tr></thead>'
            f"<tbody>{meal_rows}"
            '<tr class="sub"><td colspan="2"><strong>Summe Pauschalen</strong></td>'
            f'<td class="r"><strong>{format_currency(report.meal_allowance_total)}</strong></td></tr>'
            "</tbody></table>"
        )

    return (
        '<section class="trip">'
        f"<h3>{index}. {escape(trip.name)}</h3>"
        f'<p class="muted">{meta}</p>'
        f"{expense_table}{meal_table}"
        f'<p class="trip-total">Gesamtbetrag dieser Reise: <strong>{format_currency(report.total)}</strong></p>'
        "</section>"
    )


def render_vat_summary(report: ReportSummary) -> str:
    rows = "".join(
        f"<tr><td>{rate_id.rate_percent}%</td>"
        f'<td class="r">{format_currency(bucket.net)}</td>'
        f'<td class="r">{format_currency(bucket.vat)}</td>'
        f'<td class="r">{format_currency(bucket.gross)}</td></tr>'
        for rate_id, bucket in report.vat_summary.items()
        if bucket.gross
    )
    return (
        "<h3>Umsatzsteuer-Übersicht</h3>"
        '<table><thead><tr><th>Satz</th><th class="r">Netto</th><th class="r">USt</th>'
        f'<th class="r">Brutto</th></tr></thead><tbody>{rows}</tbody></table>'
    )


def render_report_html(
    report: ReportSummary,
    profile: Optional[UserProfile] = None,
    range_start: Optional[date] = None,
    range_end: Optional[date] = None,
) -> str:
    profile = profile or UserProfile()
    period = ""
    if range_start and range_end:
        period = f"<p>Zeitraum: {_date(range_start)} &ndash; {_date(range_end)}</p>"

    header = (
        "<header><h1>Reisekostenabrechnung</h1>"
        f"<p>{escape(profile.name)}"
        + (f" &middot; Personalnr. {escape(profile.personnel_number)}" if profile.personnel_number else "")
        + (f" &middot; {escape(profile.department)}" if profile.department else "")
        + (f" &middot; Kostenstelle {escape(profile.cost_center)}" if profile.cost_center else "")
        + f"</p>{period}</header>"
    )

    if report.trip_reports:
        trips = "".join(
            render_trip_section(index, trip_report)
            for index, trip_report in enumerate(report.trip_reports, start=1)
        )
    else:
        trips = '<p class="muted">Keine Reisen im gewählten Zeitraum.</p>'

    totals = (
        '<section class="totals"><h3>Zusammenfassung</h3><table><tbody>'
        f'<tr><td>Reisen</td><td class="r">{report.trip_count}</td></tr>'
        f'<tr><td>Positionen</td><td class="r">{report.position_count}</td></tr>'
        f'<tr><td>Ausgaben (brutto)</td><td class="r">{format_currency(report.total_gross)}</td></tr>'
        f'<tr><td>Verpflegungspauschalen</td><td class="r">{format_currency(report.total_meal_allowances)}</td></tr>'
        f'<tr class="sub"><td><strong>Gesamtbetrag</strong></td>'
        f'<td class="r"><strong>{format_currency(report.grand_total)}</strong></td></tr>'
        "</tbody></table></section>"
    )

    return (
        '<!DOCTYPE html><html lang="de"><head><meta charset="utf-8">'
        f"<title>Reisekostenabrechnung</title><style>{REPORT_STYLE}</style></head>"
        f"<body>{header}{trips}{render_vat_summary(report)}{totals}</body></html>"
    )
