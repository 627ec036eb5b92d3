"""German domestic meal allowances (Verpflegungspauschalen, § 9 Abs. 4a EStG)."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple

from travelcost.models import DayKind, MealAllowanceDay, MealAllowanceSummary, to_local_naive


RULE_VERSION = "DE_TRAVEL_RULES_2025_01"

FULL_DAY = Decimal("28")
PARTIAL_DAY = Decimal("14")
ARRIVAL_DAY = Decimal("14")
DEPARTURE_DAY = Decimal("14")
NO_ALLOWANCE = Decimal("0")

MINIMUM_ABSENCE_HOURS = 8
FULL_DAY_HOURS = 24

DAY_AMOUNTS: Dict[DayKind, Decimal] = {
    DayKind.NONE: NO_ALLOWANCE,
    DayKind.PARTIAL: PARTIAL_DAY,
    DayKind.FULL: FULL_DAY,
    DayKind.ARRIVAL: ARRIVAL_DAY,
    DayKind.DEPARTURE: DEPARTURE_DAY,
}


class TripValidationError(ValueError):
    """Raised when a trip's time span cannot be used for allowance calculation."""


def validate_trip_range(
    start: Optional[datetime], end: Optional[datetime]
) -> Tuple[datetime, datetime]:
    """Reject ranges the calculator must never see.

    ``calculate_meal_allowances`` does not validate its input, so every caller
    runs this first and continues with the returned pair, both converted to
    naive local time.
    """
    if start is None or end is None:
        raise TripValidationError("start and end are required")
    start, end = to_local_naive(start), to_local_naive(end)
    if end <= start:
        raise TripValidationError("end must be after start")
    return start, end


def calculate_absence_hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def count_calendar_days(start: datetime, end: datetime) -> int:
    """Distinct local calendar dates spanned, inclusive."""
    return (end.date() - start.date()).days + 1


def single_day_kind(hours: float) -> DayKind:
    # 8.0h exactly earns nothing, 24.0h exactly earns the full day.
    if hours >= FULL_DAY_HOURS:
        return DayKind.FULL
    if hours > MINIMUM_ABSENCE_HOURS:
        return DayKind.PARTIAL
    return DayKind.NONE


def single_day_amount(hours: float) -> Decimal:
    return DAY_AMOUNTS[single_day_kind(hours)]


def multi_day_kind(day_index: int, calendar_days: int) -> DayKind:
    if day_index == 0:
        return DayKind.ARRIVAL
    if day_index == calendar_days - 1:
        return DayKind.DEPARTURE
    return DayKind.FULL


def round_hours(hours: float) -> float:
    """One decimal, half up (8.25 h -> 8.3 h)."""
    return float(Decimal(str(hours)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def calculate_meal_allowances(
    start: datetime, end: datetime, rule_version: str = RULE_VERSION
) -> MealAllowanceSummary:
    """Split a trip into calendar days and assign the statutory amount per day.

    The range must already be validated with ``validate_trip_range``.
    """
    total_hours = calculate_absence_hours(start, end)
    calendar_days = count_calendar_days(start, end)

    breakdown: List[MealAllowanceDay] = []
    if calendar_days <= 1:
        kind = single_day_kind(total_hours)
        breakdown.append(MealAllowanceDay(date=start.date(), kind=kind, amount=DAY_AMOUNTS[kind]))
    else:
        first_day = start.date()
        for day_index in range(calendar_days):
            kind = multi_day_kind(day_index, calendar_days)
            breakdown.append(
                MealAllowanceDay(
                    date=first_day + timedelta(days=day_index),
                    kind=kind,
                    amount=DAY_AMOUNTS[kind],
                )
            )

    return MealAllowanceSummary(
        total_hours=round_hours(total_hours),
        calendar_days=calendar_days,
        breakdown=tuple(breakdown),
        total_amount=sum((day.amount for day in breakdown), Decimal("0")),
        rule_version=rule_version,
    )


def format_absence_duration(hours: float) -> str:
    full_hours = int(hours)
    minutes = round((hours - full_hours) * 60)
    if minutes == 60:
        full_hours, minutes = full_hours + 1, 0
    if full_hours == 0:
        return f"{minutes} Min."
    if minutes == 0:
        return f"{full_hours} Std."
    return f"{full_hours} Std. {minutes} Min."


class MealAllowanceCalculator:
    """Allowance calculation pinned to one rule version.

    The version is stored with every summary so trips keep the rules they were
    calculated under.
    """

    rule_version = RULE_VERSION

    def calculate(self, start: datetime, end: datetime) -> MealAllowanceSummary:
        return calculate_meal_allowances(start, end, rule_version=self.rule_version)


__all__ = [
    "RULE_VERSION",
    "FULL_DAY",
    "PARTIAL_DAY",
    "ARRIVAL_DAY",
    "DEPARTURE_DAY",
    "TripValidationError",
    "validate_trip_range",
    "calculate_absence_hours",
    "count_calendar_days",
    "single_day_amount",
    "calculate_meal_allowances",
    "format_absence_duration",
    "MealAllowanceCalculator",
]
