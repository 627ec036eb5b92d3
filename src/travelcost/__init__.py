from .models import (
    DayKind,
    Expense,
    ExpenseCategory,
    MealAllowanceDay,
    MealAllowanceSummary,
    ReportSummary,
    Trip,
    TripDirection,
    TripReport,
    TripStatus,
    UserProfile,
    VatBucket,
    VatRate,
    VatRateId,
)
from .money import format_currency, round_currency, to_decimal
from .ui import render_report_html

__all__ = [
    "DayKind",
    "Expense",
    "ExpenseCategory",
    "MealAllowanceDay",
    "MealAllowanceSummary",
    "ReportSummary",
    "Trip",
    "TripDirection",
    "TripReport",
    "TripStatus",
    "UserProfile",
    "VatBucket",
    "VatRate",
    "VatRateId",
    "format_currency",
    "round_currency",
    "to_decimal",
    "render_report_html",
]
