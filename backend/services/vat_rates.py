"""German VAT rates and gross/net decomposition."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Tuple

from travelcost.models import DEFAULT_VAT_RATE_ID, VatRate, VatRateId
from travelcost.money import round_currency


VAT_RATE_TEXT = {
    VatRateId.VAT_0: ("0% (steuerfrei)", "Steuerfreie Leistungen"),
    VatRateId.VAT_7: ("7% (ermäßigt)", "Ermäßigter Steuersatz (z.B. ÖPNV, Bücher)"),
    VatRateId.VAT_19: ("19% (regulär)", "Regulärer Steuersatz"),
}

VAT_RATES: Dict[VatRateId, VatRate] = {
    rate_id: VatRate(rate_id, rate_id.rate_percent, label, description)
    for rate_id, (label, description) in VAT_RATE_TEXT.items()
}


def resolve_vat_rate_id(vat_rate_id: Any) -> VatRateId:
    return VatRateId.resolve(vat_rate_id)


def get_vat_rate(vat_rate_id: Any) -> VatRate:
    return VAT_RATES[resolve_vat_rate_id(vat_rate_id)]


def list_vat_rates() -> list[VatRate]:
    return sorted(VAT_RATES.values(), key=lambda rate: rate.rate_percent)


def calculate_net_amount(gross_amount: Decimal, vat_rate_id: Any) -> Decimal:
    """Net amount contained in ``gross_amount``. Not rounded."""
    rate = get_vat_rate(vat_rate_id)
    return Decimal(gross_amount) / (1 + Decimal(rate.rate_percent) / 100)


def calculate_vat_amount(gross_amount: Decimal, vat_rate_id: Any) -> Decimal:
    """VAT contained in ``gross_amount``. Not rounded."""
    return Decimal(gross_amount) - calculate_net_amount(gross_amount, vat_rate_id)


def split_gross_amount(gross_amount: Decimal, vat_rate_id: Any) -> Tuple[Decimal, Decimal]:
    """Rounded ``(net, vat)`` pair as stored on an expense at save time."""
    net = round_currency(calculate_net_amount(gross_amount, vat_rate_id))
    vat = round_currency(calculate_vat_amount(gross_amount, vat_rate_id))
    return net, vat


__all__ = [
    "VAT_RATES",
    "DEFAULT_VAT_RATE_ID",
    "resolve_vat_rate_id",
    "get_vat_rate",
    "list_vat_rates",
    "calculate_net_amount",
    "calculate_vat_amount",
    "split_gross_amount",
]
