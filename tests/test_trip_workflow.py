from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from travelcost.db import apply_sqlite_migration, connect_sqlite
from travelcost.models import (
    ExpenseCategory,
    MealAllowanceSummary,
    TripDirection,
    TripStatus,
    UserProfile,
)
from travelcost.repositories import ExpenseRepository, ProfileRepository, TripRepository
from backend.services.distance_service import RouteResult
from backend.services.german_travel_rules import TripValidationError
from backend.services.trip_workflow import (
    ExpenseService,
    ExpenseValidationError,
    ReportService,
    TripNotFoundError,
    TripService,
)


@pytest.fixture
def conn():
    conn = connect_sqlite()
    apply_sqlite_migration(conn)
    yield conn
    conn.close()


@pytest.fixture
def trip(conn):
    return TripService(conn).create_trip(
        name="  Messe Hannover ",
        start_datetime=datetime(2024, 3, 1, 9, 0),
        end_datetime=datetime(2024, 3, 3, 17, 0),
        destination="Hannover",
    )


def test_create_trip_embeds_meal_allowances(conn, trip):
    assert trip.name == "Messe Hannover"
    assert trip.status == TripStatus.DRAFT
    assert trip.meal_allowances.total_amount == Decimal("56")

    stored = TripRepository(conn).get(trip.trip_id)
    assert stored.meal_allowances == trip.meal_allowances
    assert stored.start_datetime == datetime(2024, 3, 1, 9, 0)


def test_create_trip_rejects_invalid_range_and_name(conn):
    service = TripService(conn)
    start = datetime(2024, 3, 1, 9, 0)
    with pytest.raises(TripValidationError):
        service.create_trip("Leer", start, start)
    with pytest.raises(TripValidationError):
        service.create_trip("   ", start, datetime(2024, 3, 1, 18, 0))
    assert TripRepository(conn).list() == []


def test_mixed_utc_offsets_are_stored_as_local_time(conn):
    service = TripService(conn)
    created = service.create_trip(
        "Offset",
        datetime(2024, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=2))),
        datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
    )

    stored = TripRepository(conn).get(created.trip_id)
    assert stored.start_datetime.tzinfo is None
    assert stored.end_datetime - stored.start_datetime == timedelta(hours=1, minutes=30)
    assert stored.meal_allowances.total_hours == 1.5


def test_naive_start_with_aware_end_is_validated(conn):
    service = TripService(conn)
    start = datetime(2024, 3, 1, 9, 0)
    with pytest.raises(TripValidationError):
        service.create_trip("Vertauscht", start, datetime(2024, 2, 20, 9, 0, tzinfo=timezone.utc))

    created = service.create_trip("Gemischt", start, datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc))
    assert created.end_datetime.tzinfo is None


def test_report_over_naive_and_utc_trips(conn, trip):
    TripService(conn).create_trip(
        "UTC",
        datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc),
        datetime(2024, 3, 16, 18, 0, tzinfo=timezone.utc),
    )

    march = ReportService(conn).date_range_report(date(2024, 3, 1), date(2024, 3, 31))

    assert march.trip_count == 2
    assert [report.trip.name for report in march.trip_reports] == ["Messe Hannover", "UTC"]


def test_update_dates_recomputes_meal_allowances(conn, trip):
    updated = TripService(conn).update_trip(trip.trip_id, end_datetime=datetime(2024, 3, 1, 20, 0))

    assert updated.meal_allowances.calendar_days == 1
    assert updated.meal_allowances.total_amount == Decimal("14")
    assert TripRepository(conn).get(trip.trip_id).meal_allowances.total_amount == Decimal("14")


def test_update_rejects_unknown_fields_and_invalid_dates(conn, trip):
    service = TripService(conn)
    with pytest.raises(ValueError):
        service.update_trip(trip.trip_id, status=TripStatus.APPROVED)
    with pytest.raises(TripValidationError):
        service.update_trip(trip.trip_id, end_datetime=datetime(2024, 2, 1, 9, 0))


def test_stored_allowances_are_read_back_verbatim(conn, trip):
    repo = TripRepository(conn)
    frozen = MealAllowanceSummary(
        total_hours=56.0,
        calendar_days=3,
        breakdown=(),
        total_amount=Decimal("48"),
        rule_version="DE_TRAVEL_RULES_2019",
    )
    with conn:
        repo.save(replace(trip, meal_allowances=frozen))

    renamed = TripService(conn).update_trip(trip.trip_id, name="Messe Hannover 2024")
    assert renamed.meal_allowances == frozen
    assert repo.get(trip.trip_id).meal_allowances.total_amount == Decimal("48")
    assert ReportService(conn).totals()["total_meal_allowances"] == Decimal("48")


def test_expense_amounts_are_split_and_rounded(conn, trip):
    expense = ExpenseService(conn).create_expense(
        trip_id=trip.trip_id,
        category=ExpenseCategory.VERPFLEGUNG,
        spent_on=date(2024, 3, 2),
        gross_amount="119,00",
        description="Abendessen",
    )

    assert expense.vat_rate_id == "vat_19"
    assert expense.gross_amount == Decimal("119.00")
    assert expense.net_amount == Decimal("100.00")
    assert expense.vat_amount == Decimal("19.00")
    assert expense.amount == expense.gross_amount

    stored = ExpenseRepository(conn).get(expense.expense_id)
    assert stored.net_amount == Decimal("100.00")
    assert stored.category == ExpenseCategory.VERPFLEGUNG


def test_category_default_vat_rate_is_applied(conn, trip):
    expense = ExpenseService(conn).create_expense(
        trip_id=trip.trip_id,
        category=ExpenseCategory.UEBERNACHTUNG,
        spent_on=date(2024, 3, 1),
        gross_amount=Decimal("107.00"),
    )
    assert expense.vat_rate_id == "vat_7"
    assert expense.net_amount == Decimal("100.00")


@pytest.mark.parametrize("gross_amount", [None, "", "0", Decimal("-5")])
def test_expense_requires_positive_gross(conn, trip, gross_amount):
    with pytest.raises(ExpenseValidationError):
        ExpenseService(conn).create_expense(
            trip_id=trip.trip_id,
            category=ExpenseCategory.SONSTIGES,
            spent_on=date(2024, 3, 1),
            gross_amount=gross_amount,
        )


def test_expense_requires_existing_draft_trip(conn, trip):
    service = ExpenseService(conn)
    with pytest.raises(ExpenseValidationError):
        service.create_expense(None, ExpenseCategory.SONSTIGES, date(2024, 3, 1), gross_amount="5")
    with pytest.raises(TripNotFoundError):
        service.create_expense("missing", ExpenseCategory.SONSTIGES, date(2024, 3, 1), gross_amount="5")

    TripService(conn).set_status(trip.trip_id, TripStatus.SUBMITTED)
    with pytest.raises(ExpenseValidationError, match="Eingereicht"):
        service.create_expense(trip.trip_id, ExpenseCategory.SONSTIGES, date(2024, 3, 1), gross_amount="5")


def test_manual_round_trip_mileage(conn, trip):
    expense = ExpenseService(conn).create_expense(
        trip_id=trip.trip_id,
        category=ExpenseCategory.KILOMETER,
        spent_on=date(2024, 3, 1),
        manual_distance_km="20",
        trip_direction=TripDirection.ROUNDTRIP,
        license_plate=" h-ab 123 ",
    )

    assert expense.manual_distance is True
    assert expense.distance_km == Decimal("40")
    assert expense.gross_amount == Decimal("12.00")
    assert expense.vat_rate_id == "vat_0"
    assert expense.net_amount == Decimal("12.00")
    assert expense.vat_amount == Decimal("0.00")
    assert expense.license_plate == "H-AB 123"


def test_routed_mileage_uses_lookup_result(conn, trip):
    route = RouteResult(success=True, distance_km=Decimal("37.4"), duration_minutes=45)
    expense = ExpenseService(conn).create_expense(
        trip_id=trip.trip_id,
        category=ExpenseCategory.KILOMETER,
        spent_on=date(2024, 3, 1),
        route=route,
        start_address="Berlin",
        end_address="Potsdam",
    )

    assert expense.manual_distance is False
    assert expense.distance_km == Decimal("37.4")
    assert expense.duration_minutes == 45
    assert expense.gross_amount == Decimal("11.22")
    assert expense.trip_direction == TripDirection.ONEWAY
    assert ExpenseRepository(conn).get(expense.expense_id).start_address == "Berlin"


def test_failed_route_is_not_saved(conn, trip):
    service = ExpenseService(conn)
    failed = RouteResult(success=False, error="Keine Route gefunden")
    with pytest.raises(ExpenseValidationError, match="Keine Route gefunden"):
        service.create_expense(trip.trip_id, ExpenseCategory.KILOMETER, date(2024, 3, 1), route=failed)
    with pytest.raises(ExpenseValidationError):
        service.create_expense(trip.trip_id, ExpenseCategory.KILOMETER, date(2024, 3, 1))
    with pytest.raises(ExpenseValidationError):
        service.create_expense(
            trip.trip_id, ExpenseCategory.KILOMETER, date(2024, 3, 1), manual_distance_km="0"
        )
    assert ExpenseRepository(conn).list() == []


def test_delete_trip_removes_its_expenses(conn, trip):
    expenses = ExpenseService(conn)
    for gross in ("10", "20"):
        expenses.create_expense(trip.trip_id, ExpenseCategory.SONSTIGES, date(2024, 3, 1), gross_amount=gross)

    removed = TripService(conn).delete_trip(trip.trip_id)

    assert removed == 2
    assert TripRepository(conn).get(trip.trip_id) is None
    assert ExpenseRepository(conn).list() == []
    with pytest.raises(TripNotFoundError):
        TripService(conn).delete_trip(trip.trip_id)


def test_delete_expense(conn, trip):
    service = ExpenseService(conn)
    expense = service.create_expense(trip.trip_id, ExpenseCategory.SONSTIGES, date(2024, 3, 1), gross_amount="4")
    assert service.delete_expense(expense.expense_id) is True
    assert service.delete_expense(expense.expense_id) is False


def test_reports(conn, trip):
    ExpenseService(conn).create_expense(
        trip.trip_id, ExpenseCategory.FAHRT, date(2024, 3, 1), gross_amount="53.50"
    )
    reports = ReportService(conn)

    march = reports.date_range_report(date(2024, 3, 1), date(2024, 3, 31))
    assert march.total_gross == Decimal("53.50")
    assert march.grand_total == Decimal("109.50")
    assert reports.date_range_report(date(2024, 4, 1), date(2024, 4, 30)).trip_count == 0
    assert reports.trip_report(trip.trip_id).position_count == 1
    with pytest.raises(ValueError):
        reports.date_range_report(date(2024, 3, 31), date(2024, 3, 1))


def test_profile_defaults_and_update(conn):
    repo = ProfileRepository(conn)
    assert repo.load() == UserProfile()

    profile = UserProfile(name="Erika Musterfrau", personnel_number="4711", cost_center="KST-100")
    with conn:
        repo.save(profile)
    assert repo.load() == profile
