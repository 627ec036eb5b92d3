from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from travelcost.models import (
    Expense,
    ExpenseCategory,
    MealAllowanceSummary,
    Trip,
    TripDirection,
    TripStatus,
    UserProfile,
    to_local_naive,
)


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


class TripRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def save(self, trip: Trip) -> str:
        """Insert or replace the trip row, including its embedded meal allowances."""
        meal_allowances = (
            json.dumps(trip.meal_allowances.to_dict()) if trip.meal_allowances is not None else None
        )
        self.conn.execute(
            """
            INSERT INTO trip(id, name, destination, purpose, start_datetime, end_datetime, status,
                             meal_allowances, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                destination = excluded.destination,
                purpose = excluded.purpose,
                start_datetime = excluded.start_datetime,
                end_datetime = excluded.end_datetime,
                status = excluded.status,
                meal_allowances = excluded.meal_allowances
            """,
            (
                trip.trip_id,
                trip.name,
                trip.destination,
                trip.purpose,
                _normalize_value(trip.start_datetime),
                _normalize_value(trip.end_datetime),
                _normalize_value(trip.status),
                meal_allowances,
                _normalize_value(trip.created_at),
            ),
        )
        return trip.trip_id

    def get(self, trip_id: str) -> Optional[Trip]:
        row = self.conn.execute("SELECT * FROM trip WHERE id = ?", (trip_id,)).fetchone()
        return self._from_row(row) if row else None

    def list(self) -> list[Trip]:
        rows = self.conn.execute("SELECT * FROM trip ORDER BY start_datetime DESC").fetchall()
        return [self._from_row(row) for row in rows]

    def list_by_status(self, status: TripStatus) -> list[Trip]:
        rows = self.conn.execute(
            "SELECT * FROM trip WHERE status = ? ORDER BY start_datetime DESC",
            (status.value,),
        ).fetchall()
        return [self._from_row(row) for row in rows]

    def set_status(self, trip_id: str, status: TripStatus) -> bool:
        cursor = self.conn.execute("UPDATE trip SET status = ? WHERE id = ?", (status.value, trip_id))
        return cursor.rowcount > 0

    def delete(self, trip_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM trip WHERE id = ?", (trip_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Trip:
        raw_allowances = row["meal_allowances"]
        return Trip(
            trip_id=row["id"],
            name=row["name"],
            destination=row["destination"],
            purpose=row["purpose"],
            start_datetime=to_local_naive(datetime.fromisoformat(row["start_datetime"])),
            end_datetime=to_local_naive(datetime.fromisoformat(row["end_datetime"])),
            status=TripStatus(row["status"]),
            meal_allowances=(
                MealAllowanceSummary.from_dict(json.loads(raw_allowances)) if raw_allowances else None
            ),
            created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        )


class ExpenseRepository:
    COLUMNS = (
        "id",
        "trip_id",
        "category",
        "spent_on",
        "gross_amount",
        "net_amount",
        "vat_amount",
        "vat_rate_id",
        "amount",
        "description",
        "currency",
        "receipt_paths",
        "distance_km",
        "duration_minutes",
        "trip_direction",
        "manual_distance",
        "start_address",
        "end_address",
        "license_plate",
    )

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def save(self, expense: Expense) -> str:
        placeholders = ", ".join("?" for _ in self.COLUMNS)
        assignments = ", ".join(f"{column} = excluded.{column}" for column in self.COLUMNS[1:])
        self.conn.execute(
            f"""
            INSERT INTO expense({", ".join(self.COLUMNS)}, created_at)
            VALUES ({placeholders}, COALESCE(?, CURRENT_TIMESTAMP))
            ON CONFLICT(id) DO UPDATE SET {assignments}
            """,
            (*self._to_values(expense), _normalize_value(expense.created_at)),
        )
        return expense.expense_id

    def get(self, expense_id: str) -> Optional[Expense]:
        row = self.conn.execute("SELECT * FROM expense WHERE id = ?", (expense_id,)).fetchone()
        return self._from_row(row) if row else None

    def list(self) -> list[Expense]:
        rows = self.conn.execute("SELECT * FROM expense ORDER BY spent_on DESC, created_at DESC").fetchall()
        return [self._from_row(row) for row in rows]

    def list_by_trip(self, trip_id: str) -> list[Expense]:
        rows = self.conn.execute(
            "SELECT * FROM expense WHERE trip_id = ? ORDER BY spent_on ASC, created_at ASC",
            (trip_id,),
        ).fetchall()
        return [self._from_row(row) for row in rows]

    def delete(self, expense_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM expense WHERE id = ?", (expense_id,))
        return cursor.rowcount > 0

    def delete_by_trip(self, trip_id: str) -> int:
        cursor = self.conn.execute("DELETE FROM expense WHERE trip_id = ?", (trip_id,))
        return cursor.rowcount

    @staticmethod
    def _to_values(expense: Expense) -> tuple[Any, ...]:
        return (
            expense.expense_id,
            expense.trip_id,
            _normalize_value(expense.category),
            _normalize_value(expense.spent_on),
            _normalize_value(expense.gross_amount),
            _normalize_value(expense.net_amount),
            _normalize_value(expense.vat_amount),
            _normalize_value(expense.vat_rate_id),
            _normalize_value(expense.amount),
            expense.description,
            expense.currency,
            json.dumps(list(expense.receipt_paths)),
            _normalize_value(expense.distance_km),
            expense.duration_minutes,
            _normalize_value(expense.trip_direction),
            int(expense.manual_distance),
            expense.start_address,
            expense.end_address,
            expense.license_plate,
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Expense:
        return Expense(
            expense_id=row["id"],
            trip_id=row["trip_id"],
            category=ExpenseCategory.resolve(row["category"]),
            spent_on=date.fromisoformat(row["spent_on"][:10]),
            gross_amount=_decimal_or_none(row["gross_amount"]),
            net_amount=_decimal_or_none(row["net_amount"]),
            vat_amount=_decimal_or_none(row["vat_amount"]),
            vat_rate_id=row["vat_rate_id"],
            amount=_decimal_or_none(row["amount"]),
            description=row["description"],
            currency=row["currency"],
            receipt_paths=tuple(json.loads(row["receipt_paths"] or "[]")),
            distance_km=_decimal_or_none(row["distance_km"]),
            duration_minutes=row["duration_minutes"],
            trip_direction=TripDirection(row["trip_direction"]) if row["trip_direction"] else None,
            manual_distance=bool(row["manual_distance"]),
            start_address=row["start_address"],
            end_address=row["end_address"],
            license_plate=row["license_plate"],
            created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        )


class ProfileRepository:
    FIELDS = ("name", "personnel_number", "department", "cost_center", "address")

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def load(self) -> UserProfile:
        row = self.conn.execute("SELECT * FROM user_profile WHERE id = 1").fetchone()
        if row is None:
            return UserProfile()
        return UserProfile(**{field: row[field] for field in self.FIELDS})

    def save(self, profile: UserProfile) -> None:
        self.conn.execute(
            """
            INSERT INTO user_profile(id, name, personnel_number, department, cost_center, address)
            VALUES (1, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                personnel_number = excluded.personnel_number,
                department = excluded.department,
                cost_center = excluded.cost_center,
                address = excluded.address
            """,
            tuple(getattr(profile, field) for field in self.FIELDS),
        )
