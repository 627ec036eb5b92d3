"""Kilometer allowance for trips with a private car."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Tuple

from travelcost.models import TripDirection
from travelcost.money import round_currency, to_decimal


KILOMETER_RATE = Decimal("0.30")


@dataclass(frozen=True)
class MileageQuote:
    one_way_km: Decimal
    distance_km: Decimal
    duration_minutes: Optional[int]
    direction: TripDirection
    rate: Decimal
    amount: Decimal


def calculate_mileage_cost(distance_km: Any, rate: Decimal = KILOMETER_RATE) -> Decimal:
    distance = to_decimal(distance_km)
    if distance is None:
        raise ValueError("distance_km is required")
    return round_currency(distance * Decimal(rate))


def direction_multiplier(direction: Optional[TripDirection]) -> int:
    return 2 if direction == TripDirection.ROUNDTRIP else 1


def apply_direction(
    one_way_km: Decimal,
    one_way_minutes: Optional[int],
    direction: Optional[TripDirection],
) -> Tuple[Decimal, Optional[int]]:
    """Scale a one-way distance and duration to the chosen direction.

    This is the only place where round trips are doubled; callers keep the
    one-way figures and re-apply the direction when it is toggled.
    """
    multiplier = direction_multiplier(direction)
    minutes = one_way_minutes * multiplier if one_way_minutes is not None else None
    return Decimal(one_way_km) * multiplier, minutes


def quote_mileage(
    one_way_km: Any,
    direction: Optional[TripDirection] = TripDirection.ONEWAY,
    one_way_minutes: Optional[int] = None,
    rate: Decimal = KILOMETER_RATE,
) -> MileageQuote:
    one_way = to_decimal(one_way_km)
    if one_way is None:
        raise ValueError("distance_km is required")
    direction = direction or TripDirection.ONEWAY
    distance_km, minutes = apply_direction(one_way, one_way_minutes, direction)
    return MileageQuote(
        one_way_km=one_way,
        distance_km=distance_km,
        duration_minutes=minutes,
        direction=direction,
        rate=Decimal(rate),
        amount=calculate_mileage_cost(distance_km, rate),
    )


__all__ = [
    "KILOMETER_RATE",
    "MileageQuote",
    "calculate_mileage_cost",
    "direction_multiplier",
    "apply_direction",
    "quote_mileage",
]
