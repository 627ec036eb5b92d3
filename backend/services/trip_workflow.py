"""Application services for trips, expenses and reports.

These are the callers that validate raw input, run the calculators, round
the results once and persist them.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import uuid4

from travelcost.models import (
    Expense,
    ExpenseCategory,
    ReportSummary,
    Trip,
    TripDirection,
    TripStatus,
)
from travelcost.money import round_currency, to_decimal
from travelcost.repositories import ExpenseRepository, TripRepository

from backend.services.distance_service import RouteResult
from backend.services.german_travel_rules import (
    MealAllowanceCalculator,
    TripValidationError,
    validate_trip_range,
)
from backend.services.mileage import quote_mileage
from backend.services.report_aggregator import build_date_range_report, build_report
from backend.services.vat_rates import resolve_vat_rate_id, split_gross_amount


logger = logging.getLogger(__name__)


class ExpenseValidationError(ValueError):
    """Raised when an expense cannot be saved."""


class TripNotFoundError(LookupError):
    """Raised when a referenced trip does not exist."""


class TripService:
    """Creates and edits trips; meal allowances are recomputed on every date change."""

    def __init__(self, conn: sqlite3.Connection, calculator: Optional[MealAllowanceCalculator] = None):
        self.conn = conn
        self.trips = TripRepository(conn)
        self.expenses = ExpenseRepository(conn)
        self.calculator = calculator or MealAllowanceCalculator()

    def create_trip(
        self,
        name: str,
        start_datetime: datetime,
        end_datetime: datetime,
        destination: str = "",
        purpose: str = "",
    ) -> Trip:
        start_datetime, end_datetime = validate_trip_range(start_datetime, end_datetime)
        if not name or not name.strip():
            raise TripValidationError("trip name is required")
        trip = Trip(
            trip_id=str(uuid4()),
            name=name.strip(),
            destination=destination.strip(),
            purpose=purpose.strip(),
            start_datetime=start_datetime,
            end_datetime=end_datetime,
            status=TripStatus.DRAFT,
            meal_allowances=self.calculator.calculate(start_datetime, end_datetime),
            created_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )
        with self.conn:
            self.trips.save(trip)
        logger.info(
            "Created trip %s (%s days, meal allowances %s)",
            trip.trip_id,
            trip.meal_allowances.calendar_days,
            trip.meal_allowances.total_amount,
        )
        return trip

    def update_trip(self, trip_id: str, **changes: Any) -> Trip:
        trip = self.get_trip(trip_id)
        allowed = {"name", "destination", "purpose", "start_datetime", "end_datetime"}
        invalid = set(changes) - allowed
        if invalid:
            raise ValueError(f"Invalid trip fields: {sorted(invalid)}")

        updated = replace(trip, **changes)
        if updated.start_datetime != trip.start_datetime or updated.end_datetime != trip.end_datetime:
            start, end = validate_trip_range(updated.start_datetime, updated.end_datetime)
            updated = replace(
                updated,
                start_datetime=start,
                end_datetime=end,
                meal_allowances=self.calculator.calculate(start, end),
            )
            logger.info("Recomputed meal allowances for trip %s", trip_id)

        with self.conn:
            self.trips.save(updated)
        return updated

    def set_status(self, trip_id: str, status: TripStatus) -> Trip:
        trip = self.get_trip(trip_id)
        with self.conn:
            self.trips.set_status(trip_id, status)
        logger.info("Trip %s status %s -> %s", trip_id, trip.status.value, status.value)
        return replace(trip, status=status)

    def delete_trip(self, trip_id: str) -> int:
        """Delete the trip together with its expenses; returns the removed expense count."""
        self.get_trip(trip_id)
        with self.conn:
            removed = self.expenses.delete_by_trip(trip_id)
            self.trips.delete(trip_id)
        logger.info("Deleted trip %s and %d expense(s)", trip_id, removed)
        return removed

    def get_trip(self, trip_id: str) -> Trip:
        trip = self.trips.get(trip_id)
        if trip is None:
            raise TripNotFoundError(f"Trip {trip_id} not found")
        return trip


class ExpenseService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.trips = TripRepository(conn)
        self.expenses = ExpenseRepository(conn)

    def create_expense(
        self,
        trip_id: Optional[str],
        category: ExpenseCategory,
        spent_on: date,
        gross_amount: Any = None,
        vat_rate_id: Optional[str] = None,
        description: str = "",
        receipt_paths: Sequence[str] = (),
        route: Optional[RouteResult] = None,
        manual_distance_km: Any = None,
        trip_direction: TripDirection = TripDirection.ONEWAY,
        start_address: Optional[str] = None,
        end_address: Optional[str] = None,
        license_plate: Optional[str] = None,
    ) -> Expense:
        trip = self._require_draft_trip(trip_id)
        rate_id = resolve_vat_rate_id(vat_rate_id or category.default_vat_rate_id)

        expense = Expense(
            expense_id=str(uuid4()),
            trip_id=trip.trip_id,
            category=category,
            spent_on=spent_on,
            vat_rate_id=rate_id.value,
            description=description.strip(),
            receipt_paths=tuple(receipt_paths),
            created_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )

        if category == ExpenseCategory.KILOMETER:
            expense = self._apply_mileage(
                expense,
                route=route,
                manual_distance_km=manual_distance_km,
                trip_direction=trip_direction,
                start_address=start_address,
                end_address=end_address,
                license_plate=license_plate,
            )
            gross = expense.gross_amount
        else:
            gross = to_decimal(gross_amount)
            if gross is None or gross <= 0:
                raise ExpenseValidationError("a positive gross amount is required")
            gross = round_currency(gross)

        net, vat = split_gross_amount(gross, rate_id)
        expense = replace(expense, gross_amount=gross, net_amount=net, vat_amount=vat, amount=gross)

        with self.conn:
            self.expenses.save(expense)
        logger.info(
            "Saved %s expense %s on trip %s: gross %s (net %s, VAT %s)",
            category.value,
            expense.expense_id,
            trip.trip_id,
            gross,
            net,
            vat,
        )
        return expense

    def delete_expense(self, expense_id: str) -> bool:
        with self.conn:
            deleted = self.expenses.delete(expense_id)
        if deleted:
            logger.info("Deleted expense %s", expense_id)
        return deleted

    def _require_draft_trip(self, trip_id: Optional[str]) -> Trip:
        if not trip_id:
            raise ExpenseValidationError("an expense must belong to a trip")
        trip = self.trips.get(trip_id)
        if trip is None:
            raise TripNotFoundError(f"Trip {trip_id} not found")
        if trip.status != TripStatus.DRAFT:
            raise ExpenseValidationError(
                f"expenses can only be added to draft trips (trip is {trip.status.label})"
            )
        return trip

    @staticmethod
    def _apply_mileage(
        expense: Expense,
        route: Optional[RouteResult],
        manual_distance_km: Any,
        trip_direction: TripDirection,
        start_address: Optional[str],
        end_address: Optional[str],
        license_plate: Optional[str],
    ) -> Expense:
        manual = manual_distance_km not in (None, "")
        if manual:
            one_way_km = to_decimal(manual_distance_km)
            one_way_minutes = None
        elif route is not None and route.success:
            one_way_km = route.distance_km
            one_way_minutes = route.duration_minutes
        elif route is not None:
            raise ExpenseValidationError(route.error or "distance lookup failed")
        else:
            raise ExpenseValidationError("a routed or manually entered distance is required")

        if one_way_km is None or one_way_km <= 0:
            raise ExpenseValidationError("distance must be positive")

        quote = quote_mileage(one_way_km, trip_direction, one_way_minutes)
        return replace(
            expense,
            gross_amount=quote.amount,
            distance_km=quote.distance_km,
            duration_minutes=quote.duration_minutes,
            trip_direction=quote.direction,
            manual_distance=manual,
            start_address=(start_address or "").strip() or None,
            end_address=(end_address or "").strip() or None,
            license_plate=(license_plate or "").strip().upper() or None,
        )


class ReportService:
    def __init__(self, conn: sqlite3.Connection):
        self.trips = TripRepository(conn)
        self.expenses = ExpenseRepository(conn)

    def date_range_report(self, range_start: date, range_end: date) -> ReportSummary:
        if range_end < range_start:
            raise ValueError("report end date must not be before start date")
        return build_date_range_report(
            self.trips.list(), self.expenses.list(), range_start, range_end
        )

    def trip_report(self, trip_id: str) -> ReportSummary:
        trip = self.trips.get(trip_id)
        if trip is None:
            raise TripNotFoundError(f"Trip {trip_id} not found")
        return build_report([trip], self.expenses.list_by_trip(trip_id))

    def totals(self) -> dict[str, Decimal]:
        report = build_report(self.trips.list(), self.expenses.list())
        return {
            "total_gross": report.total_gross,
            "total_meal_allowances": report.total_meal_allowances,
            "grand_total": report.grand_total,
        }
