from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class VatRateId(str, Enum):
    VAT_0 = "vat_0"
    VAT_7 = "vat_7"
    VAT_19 = "vat_19"

    @property
    def rate_percent(self) -> int:
        return VAT_RATE_PERCENT[self]

    @classmethod
    def resolve(cls, value: Any) -> "VatRateId":
        """Resolve a stored VAT id; unknown, empty or legacy ids fall back to 19 %."""
        try:
            return cls(value)
        except ValueError:
            return DEFAULT_VAT_RATE_ID


VAT_RATE_PERCENT = {VatRateId.VAT_0: 0, VatRateId.VAT_7: 7, VatRateId.VAT_19: 19}
# Fallback for unknown or legacy ids; a corrupted record still renders.
DEFAULT_VAT_RATE_ID = VatRateId.VAT_19


class ExpenseCategory(str, Enum):
    KILOMETER = "kilometer"
    FAHRT = "fahrt"
    UEBERNACHTUNG = "uebernachtung"
    VERPFLEGUNG = "verpflegung"
    SONSTIGES = "sonstiges"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]

    @property
    def default_vat_rate_id(self) -> VatRateId:
        return CATEGORY_DEFAULT_VAT[self]

    @classmethod
    def resolve(cls, value: Any) -> "ExpenseCategory":
        """Resolve a stored category id; unknown ids fall back to ``sonstiges``."""
        try:
            return cls(value)
        except ValueError:
            return cls.SONSTIGES


CATEGORY_LABELS = {
    ExpenseCategory.KILOMETER: "Kilometer",
    ExpenseCategory.FAHRT: "Fahrt",
    ExpenseCategory.UEBERNACHTUNG: "Übernachtung",
    ExpenseCategory.VERPFLEGUNG: "Verpflegung",
    ExpenseCategory.SONSTIGES: "Sonstiges",
}

CATEGORY_DESCRIPTIONS = {
    ExpenseCategory.KILOMETER: "Gefahrene Kilometer mit eigenem PKW",
    ExpenseCategory.FAHRT: "Taxi, Mietwagen, ÖPNV, Bahn, Flug",
    ExpenseCategory.UEBERNACHTUNG: "Hotel, Pension, Ferienwohnung",
    ExpenseCategory.VERPFLEGUNG: "Frühstück, Mittag, Abendessen, Snacks",
    ExpenseCategory.SONSTIGES: "Parkgebühren, Telefon, Material, etc.",
}

CATEGORY_DEFAULT_VAT = {
    ExpenseCategory.KILOMETER: VatRateId.VAT_0,
    ExpenseCategory.FAHRT: VatRateId.VAT_7,
    ExpenseCategory.UEBERNACHTUNG: VatRateId.VAT_7,
    ExpenseCategory.VERPFLEGUNG: VatRateId.VAT_19,
    ExpenseCategory.SONSTIGES: VatRateId.VAT_19,
}


@dataclass(frozen=True)
class ExpensePreset:
    preset_id: str
    label: str
    vat_rate_id: VatRateId


# Common German travel cost items with their statutory VAT rate.
EXPENSE_PRESETS: Dict[ExpenseCategory, Tuple[ExpensePreset, ...]] = {
    ExpenseCategory.KILOMETER: (
        ExpensePreset("km_eigener_pkw", "Kilometerpauschale eigener PKW", VatRateId.VAT_0),
        ExpensePreset("km_dienstwagen", "Dienstwagen (ohne Pauschale)", VatRateId.VAT_0),
    ),
    ExpenseCategory.FAHRT: (
        ExpensePreset("bahn_fern", "Bahnticket (Fernverkehr)", VatRateId.VAT_7),
        ExpensePreset("bahn_nah", "ÖPNV / Nahverkehr", VatRateId.VAT_7),
        ExpensePreset("taxi", "Taxi", VatRateId.VAT_7),
        ExpensePreset("mietwagen", "Mietwagen", VatRateId.VAT_19),
        ExpensePreset("flug_inland", "Flug (Inland)", VatRateId.VAT_19),
        ExpensePreset("flug_ausland", "Flug (International)", VatRateId.VAT_0),
        ExpensePreset("carsharing", "Carsharing", VatRateId.VAT_19),
        ExpensePreset("fahrt_sonstige", "Sonstige Fahrtkosten", VatRateId.VAT_19),
    ),
    ExpenseCategory.UEBERNACHTUNG: (
        ExpensePreset("hotel", "Hotelübernachtung", VatRateId.VAT_7),
        ExpensePreset("hotel_fruehstueck", "Hotelfrühstück", VatRateId.VAT_19),
        ExpensePreset("pension", "Pension / Gästehaus", VatRateId.VAT_7),
        ExpensePreset("ferienwohnung", "Ferienwohnung", VatRateId.VAT_7),
        ExpensePreset("uebernachtung_sonstige", "Sonstige Übernachtung", VatRateId.VAT_7),
    ),
    ExpenseCategory.VERPFLEGUNG: (
        ExpensePreset("geschaeftsessen", "Geschäftsessen / Bewirtung", VatRateId.VAT_19),
        ExpensePreset("mittagessen", "Mittagessen", VatRateId.VAT_19),
        ExpensePreset("abendessen", "Abendessen", VatRateId.VAT_19),
        ExpensePreset("getraenke", "Getränke", VatRateId.VAT_19),
        ExpensePreset("snacks", "Snacks / Kleinigkeiten", VatRateId.VAT_19),
    ),
    ExpenseCategory.SONSTIGES: (
        ExpensePreset("parkgebuehr", "Parkgebühren", VatRateId.VAT_19),
        ExpensePreset("telefon", "Telefon / Internet", VatRateId.VAT_19),
        ExpensePreset("bueromaterial", "Büromaterial", VatRateId.VAT_19),
        ExpensePreset("porto", "Porto / Versand", VatRateId.VAT_19),
        ExpensePreset("kopien", "Kopien / Druckkosten", VatRateId.VAT_19),
        ExpensePreset("trinkgeld", "Trinkgeld", VatRateId.VAT_0),
        ExpensePreset("gepaeck", "Gepäckaufbewahrung", VatRateId.VAT_19),
        ExpensePreset("eintritt", "Eintritt / Konferenzgebühr", VatRateId.VAT_19),
        ExpensePreset("sonstiges_andere", "Sonstige Kosten", VatRateId.VAT_19),
    ),
}


class TripDirection(str, Enum):
    ONEWAY = "oneway"
    ROUNDTRIP = "roundtrip"


class TripStatus(str, Enum):
    DRAFT = "entwurf"
    COMPLETED = "abgeschlossen"
    SUBMITTED = "eingereicht"
    APPROVED = "genehmigt"
    REJECTED = "abgelehnt"

    @property
    def label(self) -> str:
        return {
            TripStatus.DRAFT: "Entwurf",
            TripStatus.COMPLETED: "Abgeschlossen",
            TripStatus.SUBMITTED: "Eingereicht",
            TripStatus.APPROVED: "Genehmigt",
            TripStatus.REJECTED: "Abgelehnt",
        }[self]


class DayKind(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"
    ARRIVAL = "arrival"
    DEPARTURE = "departure"

    @property
    def label(self) -> str:
        return {
            DayKind.NONE: "Unter 8 Stunden",
            DayKind.PARTIAL: "Mehr als 8 Stunden",
            DayKind.FULL: "Ganzer Tag",
            DayKind.ARRIVAL: "Anreisetag",
            DayKind.DEPARTURE: "Abreisetag",
        }[self]


@dataclass(frozen=True)
class VatRate:
    id: VatRateId
    rate_percent: int
    label: str
    description: str


@dataclass(frozen=True)
class MealAllowanceDay:
    date: date
    kind: DayKind
    amount: Decimal

    @property
    def label(self) -> str:
        return self.kind.label


@dataclass(frozen=True)
class MealAllowanceSummary:
    """Per-diem result embedded in a trip.

    Computed when the trip's start/end are written and read back verbatim
    afterwards; later changes to statutory rates do not alter stored trips.
    """

    total_hours: float
    calendar_days: int
    breakdown: Tuple[MealAllowanceDay, ...]
    total_amount: Decimal
    rule_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_hours": self.total_hours,
            "calendar_days": self.calendar_days,
            "breakdown": [
                {"date": day.date.isoformat(), "kind": day.kind.value, "amount": str(day.amount)}
                for day in self.breakdown
            ],
            "total_amount": str(self.total_amount),
            "rule_version": self.rule_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MealAllowanceSummary":
        return cls(
            total_hours=float(data["total_hours"]),
            calendar_days=int(data["calendar_days"]),
            breakdown=tuple(
                MealAllowanceDay(
                    date=date.fromisoformat(day["date"]),
                    kind=DayKind(day["kind"]),
                    amount=Decimal(str(day["amount"])),
                )
                for day in data.get("breakdown", [])
            ),
            total_amount=Decimal(str(data["total_amount"])),
            rule_version=data.get("rule_version", ""),
        )


def to_local_naive(value: datetime) -> datetime:
    """Trip timestamps are kept as naive local wall-clock time.

    Aware values are converted to the local time zone before the offset is
    dropped, so naive and aware input can be compared and sorted together.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


@dataclass
class Trip:
    trip_id: str
    name: str
    start_datetime: datetime
    end_datetime: datetime
    destination: str = ""
    purpose: str = ""
    status: TripStatus = TripStatus.DRAFT
    meal_allowances: Optional[MealAllowanceSummary] = None
    created_at: Optional[datetime] = None

    @property
    def meal_allowance_total(self) -> Decimal:
        if self.meal_allowances is None:
            return Decimal("0")
        return self.meal_allowances.total_amount


@dataclass
class Expense:
    expense_id: str
    trip_id: str
    category: ExpenseCategory
    spent_on: date
    gross_amount: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    vat_amount: Optional[Decimal] = None
    vat_rate_id: Optional[str] = None
    # Legacy undifferentiated amount written by older records.
    amount: Optional[Decimal] = None
    description: str = ""
    currency: str = "EUR"
    receipt_paths: Tuple[str, ...] = field(default_factory=tuple)
    distance_km: Optional[Decimal] = None
    duration_minutes: Optional[int] = None
    trip_direction: Optional[TripDirection] = None
    manual_distance: bool = False
    start_address: Optional[str] = None
    end_address: Optional[str] = None
    license_plate: Optional[str] = None
    created_at: Optional[datetime] = None

    # Legacy records may lack the split amounts; stored values win when present.
    @property
    def effective_gross(self) -> Decimal:
        return self.gross_amount or self.amount or Decimal("0")

    @property
    def effective_net(self) -> Decimal:
        return self.net_amount or self.effective_gross

    @property
    def effective_vat(self) -> Decimal:
        return self.vat_amount or Decimal("0")


@dataclass
class UserProfile:
    name: str = ""
    personnel_number: str = ""
    department: str = ""
    cost_center: str = ""
    address: str = ""


@dataclass
class VatBucket:
    gross: Decimal = Decimal("0")
    net: Decimal = Decimal("0")
    vat: Decimal = Decimal("0")


@dataclass(frozen=True)
class TripReport:
    trip: Trip
    expenses: Tuple[Expense, ...]
    gross: Decimal
    net: Decimal
    vat: Decimal
    meal_allowance_total: Decimal

    @property
    def total(self) -> Decimal:
        return self.gross + self.meal_allowance_total


@dataclass(frozen=True)
class ReportSummary:
    trip_reports: Tuple[TripReport, ...]
    vat_summary: Dict[VatRateId, VatBucket]
    total_gross: Decimal
    total_net: Decimal
    total_vat: Decimal
    total_meal_allowances: Decimal

    @property
    def grand_total(self) -> Decimal:
        return self.total_gross + self.total_meal_allowances

    @property
    def trip_count(self) -> int:
        return len(self.trip_reports)

    @property
    def position_count(self) -> int:
        return sum(len(report.expenses) for report in self.trip_reports)
