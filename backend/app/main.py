"""HTTP API. Served through the app factory:

    uvicorn --factory backend.app.main:create_app
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Iterator, Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from travelcost.config import Settings, configure_logging, load_settings
from travelcost.db import apply_sqlite_migration, connect_sqlite
from travelcost.models import (
    CATEGORY_DESCRIPTIONS,
    EXPENSE_PRESETS,
    Expense,
    ExpenseCategory,
    ReportSummary,
    Trip,
    TripDirection,
    TripStatus,
    UserProfile,
    VatRateId,
)
from travelcost.repositories import ExpenseRepository, ProfileRepository
from travelcost.storage import ReceiptStorage
from travelcost.ui import render_report_html

from backend.services.distance_service import (
    DistanceServiceConfigError,
    GoogleMapsRoutingProvider,
    RouteResult,
    RoutingProvider,
    calculate_distance_between_addresses,
)
from backend.services.excel_export import DEFAULT_MAPPING_PATH, ExcelExportService
from backend.services.german_travel_rules import format_absence_duration
from backend.services.mileage import quote_mileage
from backend.services.trip_workflow import (
    ExpenseService,
    ReportService,
    TripNotFoundError,
    TripService,
)
from backend.services.vat_rates import list_vat_rates


logger = logging.getLogger(__name__)

router = APIRouter()


def get_connection(request: Request) -> Iterator[sqlite3.Connection]:
    """One SQLite connection per request, so transactions never interleave."""
    conn = connect_sqlite(request.app.state.settings.database_path)
    try:
        yield conn
    finally:
        conn.close()


Connection = Annotated[sqlite3.Connection, Depends(get_connection)]


class TripCreate(BaseModel):
    name: str
    start: datetime
    end: datetime
    destination: str = ""
    purpose: str = ""


class TripUpdate(BaseModel):
    name: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    destination: Optional[str] = None
    purpose: Optional[str] = None


class TripStatusUpdate(BaseModel):
    status: TripStatus


class ExpenseCreate(BaseModel):
    trip_id: str
    category: ExpenseCategory
    spent_on: date
    gross_amount: Optional[Decimal] = None
    vat_rate_id: Optional[VatRateId] = None
    description: str = ""
    receipt_paths: list[str] = Field(default_factory=list)
    # Kilometer expenses: one-way distance from a previous lookup or typed in by hand.
    distance_km: Optional[Decimal] = None
    duration_minutes: Optional[int] = None
    manual_distance: bool = False
    trip_direction: TripDirection = TripDirection.ONEWAY
    start_address: Optional[str] = None
    end_address: Optional[str] = None
    license_plate: Optional[str] = None


class DistanceRequest(BaseModel):
    start_address: str
    end_address: str
    trip_direction: TripDirection = TripDirection.ONEWAY


class ProfilePayload(BaseModel):
    name: str = ""
    personnel_number: str = ""
    department: str = ""
    cost_center: str = ""
    address: str = ""


def create_app(
    settings: Optional[Settings] = None,
    routing_provider: Optional[RoutingProvider] = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="TravelCost Assist API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    conn = connect_sqlite(settings.database_path)
    try:
        apply_sqlite_migration(conn)
    finally:
        conn.close()

    app.state.settings = settings
    app.state.receipts = ReceiptStorage(base_dir=settings.upload_dir)
    app.state.routing_provider = routing_provider or GoogleMapsRoutingProvider(
        api_key=settings.maps.api_key,
        base_url=settings.maps.base_url,
        timeout_seconds=settings.maps.timeout_seconds,
    )
    app.state.exporter = ExcelExportService(
        template_path=settings.excel_template_path,
        mapping_path=settings.excel_mapping_path or DEFAULT_MAPPING_PATH,
    )

    app.add_exception_handler(TripNotFoundError, _not_found_handler)
    # TripValidationError and ExpenseValidationError are ValueErrors too.
    app.add_exception_handler(ValueError, _validation_handler)
    app.include_router(router)

    logger.info("TravelCost Assist API started with database %s", settings.database_path)
    return app


async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _validation_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# -----------------------------
# Serialization
# -----------------------------


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def trip_to_dict(trip: Trip) -> dict[str, Any]:
    allowances = trip.meal_allowances
    return {
        "id": trip.trip_id,
        "name": trip.name,
        "destination": trip.destination,
        "purpose": trip.purpose,
        "start": trip.start_datetime.isoformat(),
        "end": trip.end_datetime.isoformat(),
        "status": trip.status.value,
        "status_label": trip.status.label,
        "meal_allowances": allowances.to_dict() if allowances else None,
        "absence": format_absence_duration(allowances.total_hours) if allowances else None,
    }


def expense_to_dict(expense: Expense) -> dict[str, Any]:
    return {
        "id": expense.expense_id,
        "trip_id": expense.trip_id,
        "category": expense.category.value,
        "category_label": expense.category.label,
        "spent_on": expense.spent_on.isoformat(),
        "gross_amount": _money(expense.gross_amount),
        "net_amount": _money(expense.net_amount),
        "vat_amount": _money(expense.vat_amount),
        "vat_rate_id": expense.vat_rate_id,
        "amount": _money(expense.amount),
        "description": expense.description,
        "currency": expense.currency,
        "receipt_paths": list(expense.receipt_paths),
        "distance_km": _money(expense.distance_km),
        "duration_minutes": expense.duration_minutes,
        "trip_direction": expense.trip_direction.value if expense.trip_direction else None,
        "manual_distance": expense.manual_distance,
        "start_address": expense.start_address,
        "end_address": expense.end_address,
        "license_plate": expense.license_plate,
    }


def report_to_dict(report: ReportSummary) -> dict[str, Any]:
    return {
        "trip_count": report.trip_count,
        "position_count": report.position_count,
        "total_gross": str(report.total_gross),
        "total_net": str(report.total_net),
        "total_vat": str(report.total_vat),
        "total_meal_allowances": str(report.total_meal_allowances),
        "grand_total": str(report.grand_total),
        "vat_summary": {
            rate_id.value: {"gross": str(b.gross), "net": str(b.net), "vat": str(b.vat)}
            for rate_id, b in report.vat_summary.items()
        },
        "trips": [
            {
                "trip": trip_to_dict(tr.trip),
                "expenses": [expense_to_dict(e) for e in tr.expenses],
                "gross": str(tr.gross),
                "net": str(tr.net),
                "vat": str(tr.vat),
                "meal_allowance_total": str(tr.meal_allowance_total),
                "total": str(tr.total),
            }
            for tr in report.trip_reports
        ],
    }


# -----------------------------
# Trips
# -----------------------------


@router.post("/trips")
def create_trip(payload: TripCreate, conn: Connection):
    service = TripService(conn)
    trip = service.create_trip(
        name=payload.name,
        start_datetime=payload.start,
        end_datetime=payload.end,
        destination=payload.destination,
        purpose=payload.purpose,
    )
    return trip_to_dict(trip)


@router.get("/trips")
def list_trips(conn: Connection, status: Optional[TripStatus] = None):
    trips = TripService(conn).trips
    found = trips.list_by_status(status) if status else trips.list()
    return [trip_to_dict(trip) for trip in found]


@router.get("/trips/{trip_id}")
def get_trip(trip_id: str, conn: Connection):
    return trip_to_dict(TripService(conn).get_trip(trip_id))


@router.put("/trips/{trip_id}")
def update_trip(trip_id: str, payload: TripUpdate, conn: Connection):
    changes = {
        "name": payload.name,
        "destination": payload.destination,
        "purpose": payload.purpose,
        "start_datetime": payload.start,
        "end_datetime": payload.end,
    }
    changes = {key: value for key, value in changes.items() if value is not None}
    trip = TripService(conn).update_trip(trip_id, **changes)
    return trip_to_dict(trip)


@router.post("/trips/{trip_id}/status")
def set_trip_status(trip_id: str, payload: TripStatusUpdate, conn: Connection):
    trip = TripService(conn).set_status(trip_id, payload.status)
    return trip_to_dict(trip)


@router.delete("/trips/{trip_id}")
def delete_trip(trip_id: str, request: Request, conn: Connection):
    removed = TripService(conn).delete_trip(trip_id)
    request.app.state.receipts.delete_trip_receipts(trip_id)
    return {"id": trip_id, "deleted_expenses": removed}


@router.get("/trips/{trip_id}/summary")
def trip_summary(trip_id: str, conn: Connection):
    report = ReportService(conn).trip_report(trip_id)
    trip_report = report.trip_reports[0]
    return {
        "trip_id": trip_id,
        "expense_count": len(trip_report.expenses),
        "total_gross": str(trip_report.gross),
        "total_net": str(trip_report.net),
        "total_vat": str(trip_report.vat),
        "meal_allowance_total": str(trip_report.meal_allowance_total),
        "grand_total": str(trip_report.total),
    }


@router.post("/trips/{trip_id}/receipts")
async def upload_receipts(
    trip_id: str,
    request: Request,
    conn: Connection,
    files: list[UploadFile] = File(...),
):
    TripService(conn).get_trip(trip_id)
    storage: ReceiptStorage = request.app.state.receipts

    uploaded = []
    for file in files:
        content = await file.read()
        destination = storage.save_receipt(trip_id, file.filename or "beleg.jpg", content)
        uploaded.append(
            {
                "name": file.filename,
                "path": str(destination),
                "content_type": file.content_type,
                "size": len(content),
            }
        )

    return {"trip_id": trip_id, "uploaded": uploaded}


# -----------------------------
# Expenses
# -----------------------------


@router.post("/expenses")
async def create_expense(payload: ExpenseCreate, request: Request, conn: Connection):
    route: Optional[RouteResult] = None
    manual_distance_km = None
    if payload.category == ExpenseCategory.KILOMETER:
        if payload.manual_distance:
            manual_distance_km = payload.distance_km
        elif payload.distance_km is not None:
            route = RouteResult(
                success=True,
                distance_km=payload.distance_km,
                duration_minutes=payload.duration_minutes,
            )
        elif payload.start_address and payload.end_address:
            route = await _lookup_route(request, payload.start_address, payload.end_address)

    expense = ExpenseService(conn).create_expense(
        trip_id=payload.trip_id,
        category=payload.category,
        spent_on=payload.spent_on,
        gross_amount=payload.gross_amount,
        vat_rate_id=payload.vat_rate_id.value if payload.vat_rate_id else None,
        description=payload.description,
        receipt_paths=payload.receipt_paths,
        route=route,
        manual_distance_km=manual_distance_km,
        trip_direction=payload.trip_direction,
        start_address=payload.start_address,
        end_address=payload.end_address,
        license_plate=payload.license_plate,
    )
    return expense_to_dict(expense)


@router.get("/expenses")
def list_expenses(conn: Connection, trip_id: Optional[str] = None):
    expenses = ExpenseRepository(conn)
    found = expenses.list_by_trip(trip_id) if trip_id else expenses.list()
    return [expense_to_dict(expense) for expense in found]


@router.get("/expenses/{expense_id}")
def get_expense(expense_id: str, conn: Connection):
    expense = ExpenseRepository(conn).get(expense_id)
    if expense is None:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense_to_dict(expense)


@router.delete("/expenses/{expense_id}")
def delete_expense(expense_id: str, conn: Connection):
    if not ExpenseService(conn).delete_expense(expense_id):
        raise HTTPException(status_code=404, detail="Expense not found")
    return {"id": expense_id, "deleted": True}


# -----------------------------
# Distance lookup
# -----------------------------


async def _lookup_route(request: Request, start_address: str, end_address: str) -> RouteResult:
    provider: RoutingProvider = request.app.state.routing_provider
    try:
        route = await calculate_distance_between_addresses(
            provider, start_address.strip(), end_address.strip()
        )
    except DistanceServiceConfigError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not route.success:
        raise HTTPException(status_code=502, detail=route.error)
    return route


@router.post("/distance")
async def calculate_distance(payload: DistanceRequest, request: Request):
    if not payload.start_address.strip() or not payload.end_address.strip():
        raise HTTPException(status_code=422, detail="start and end address are required")
    route = await _lookup_route(request, payload.start_address, payload.end_address)
    quote = quote_mileage(route.distance_km, payload.trip_direction, route.duration_minutes)
    return {
        "start": route.start.display_name if route.start else None,
        "end": route.end.display_name if route.end else None,
        "one_way_km": str(quote.one_way_km),
        "distance_km": str(quote.distance_km),
        "duration_minutes": quote.duration_minutes,
        "trip_direction": quote.direction.value,
        "rate": str(quote.rate),
        "amount": str(quote.amount),
    }


# -----------------------------
# Reports
# -----------------------------


def _report(conn: sqlite3.Connection, start: date, end: date) -> ReportSummary:
    try:
        return ReportService(conn).date_range_report(start, end)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/reports")
def report(start: date, end: date, conn: Connection):
    return report_to_dict(_report(conn, start, end))


@router.get("/reports/totals")
def report_totals(conn: Connection):
    totals = ReportService(conn).totals()
    return {key: str(value) for key, value in totals.items()}


@router.get("/reports/html", response_class=HTMLResponse)
def report_html(start: date, end: date, conn: Connection):
    profile = ProfileRepository(conn).load()
    return render_report_html(_report(conn, start, end), profile, start, end)


@router.get("/reports/export.xlsx")
def export_report(start: date, end: date, request: Request, conn: Connection):
    settings: Settings = request.app.state.settings
    exporter: ExcelExportService = request.app.state.exporter
    profile = ProfileRepository(conn).load()

    filename = f"reisekosten-{start.isoformat()}-{end.isoformat()}.xlsx"
    export_path = exporter.export_report(
        _report(conn, start, end), settings.export_dir / filename, profile, start, end
    )
    return FileResponse(
        export_path,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=filename,
    )


# -----------------------------
# Profile and reference data
# -----------------------------


@router.get("/profile")
def get_profile(conn: Connection):
    return vars(ProfileRepository(conn).load())


@router.put("/profile")
def update_profile(payload: ProfilePayload, conn: Connection):
    profile = UserProfile(**payload.model_dump())
    with conn:
        ProfileRepository(conn).save(profile)
    return vars(profile)


@router.get("/vat-rates")
def vat_rates():
    return [
        {"id": rate.id.value, "rate": rate.rate_percent, "label": rate.label, "description": rate.description}
        for rate in list_vat_rates()
    ]


@router.get("/categories")
def categories():
    return [
        {
            "id": category.value,
            "label": category.label,
            "description": CATEGORY_DESCRIPTIONS[category],
            "default_vat": category.default_vat_rate_id.value,
            "presets": [
                {"id": preset.preset_id, "label": preset.label, "vat_rate_id": preset.vat_rate_id.value}
                for preset in EXPENSE_PRESETS[category]
            ],
        }
        for category in ExpenseCategory
    ]


@router.get("/health")
def health():
    return {"status": "ok"}

