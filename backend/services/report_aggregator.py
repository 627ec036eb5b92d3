"""Fold stored trips and expenses into report totals.

Stored ``net_amount``/``vat_amount`` values are authoritative: missing values on
legacy records fall back to the gross amount (net) or zero (VAT) and are never
recomputed here.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Tuple

from travelcost.models import (
    Expense,
    ReportSummary,
    Trip,
    TripReport,
    VatBucket,
    VatRateId,
    to_local_naive,
)

from backend.services.vat_rates import resolve_vat_rate_id


ZERO = Decimal("0")


def expense_gross(expense: Expense) -> Decimal:
    return expense.effective_gross


def expense_net(expense: Expense) -> Decimal:
    return expense.effective_net


def expense_vat(expense: Expense) -> Decimal:
    return expense.effective_vat


def summarize_expenses(expenses: Iterable[Expense]) -> Tuple[Decimal, Decimal, Decimal]:
    gross = net = vat = ZERO
    for expense in expenses:
        gross += expense_gross(expense)
        net += expense_net(expense)
        vat += expense_vat(expense)
    return gross, net, vat


def empty_vat_summary() -> Dict[VatRateId, VatBucket]:
    return {rate_id: VatBucket() for rate_id in VatRateId}


def vat_breakdown(expenses: Iterable[Expense]) -> Dict[VatRateId, VatBucket]:
    summary = empty_vat_summary()
    add_to_vat_summary(summary, expenses)
    return summary


def add_to_vat_summary(summary: Dict[VatRateId, VatBucket], expenses: Iterable[Expense]) -> None:
    for expense in expenses:
        bucket = summary[resolve_vat_rate_id(expense.vat_rate_id)]
        bucket.gross += expense_gross(expense)
        bucket.net += expense_net(expense)
        bucket.vat += expense_vat(expense)


def range_bounds(range_start: date, range_end: date) -> Tuple[datetime, datetime]:
    """Start of the first day and the last instant of the end day."""
    return datetime.combine(range_start, time.min), datetime.combine(range_end, time.max)


def trip_in_range(trip: Trip, range_start: date, range_end: date) -> bool:
    """Overlap test, inclusive on both ends; partially covered trips count."""
    lower, upper = range_bounds(range_start, range_end)
    return to_local_naive(trip.start_datetime) <= upper and to_local_naive(trip.end_datetime) >= lower


def filter_trips_in_range(trips: Iterable[Trip], range_start: date, range_end: date) -> List[Trip]:
    selected = [trip for trip in trips if trip_in_range(trip, range_start, range_end)]
    return sorted(selected, key=lambda trip: to_local_naive(trip.start_datetime))


def build_trip_report(trip: Trip, expenses: Iterable[Expense]) -> TripReport:
    trip_expenses = sorted(
        (expense for expense in expenses if expense.trip_id == trip.trip_id),
        key=lambda expense: expense.spent_on,
    )
    gross, net, vat = summarize_expenses(trip_expenses)
    return TripReport(
        trip=trip,
        expenses=tuple(trip_expenses),
        gross=gross,
        net=net,
        vat=vat,
        meal_allowance_total=trip.meal_allowance_total,
    )


def build_report(trips: Sequence[Trip], expenses: Iterable[Expense]) -> ReportSummary:
    all_expenses = list(expenses)
    vat_summary = empty_vat_summary()
    trip_reports: List[TripReport] = []
    total_gross = total_net = total_vat = total_meal = ZERO

    for trip in trips:
        report = build_trip_report(trip, all_expenses)
        add_to_vat_summary(vat_summary, report.expenses)
        total_gross += report.gross
        total_net += report.net
        total_vat += report.vat
        total_meal += report.meal_allowance_total
        trip_reports.append(report)

    return ReportSummary(
        trip_reports=tuple(trip_reports),
        vat_summary=vat_summary,
        total_gross=total_gross,
        total_net=total_net,
        total_vat=total_vat,
        total_meal_allowances=total_meal,
    )


def build_date_range_report(
    trips: Iterable[Trip],
    expenses: Iterable[Expense],
    range_start: date,
    range_end: date,
) -> ReportSummary:
    return build_report(filter_trips_in_range(trips, range_start, range_end), expenses)


__all__ = [
    "expense_gross",
    "expense_net",
    "expense_vat",
    "summarize_expenses",
    "vat_breakdown",
    "trip_in_range",
    "filter_trips_in_range",
    "build_trip_report",
    "build_report",
    "build_date_range_report",
]
