"""
Quote ledger.

Owns the quotes attached to a project:
- one quote per installer; a revision replaces field values in place (same id,
  same position in the project's list)
- the cost breakdown is always derived from the total price with a fixed split
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

from .errors import NotEligible, ValidationFailed
from .models import Quote, money, utcnow
from .utils import parse_decimal, parse_optional_int, require_positive_decimal, require_positive_money

EQUIPMENT_SHARE = Decimal("0.65")
LABOR_SHARE = Decimal("0.30")
PERMITS_SHARE = Decimal("0.05")


def derive_cost_breakdown(total_price) -> dict:
    """
    Split a total price into equipment / labor / permits (65 / 30 / 5).

    Permits take the rounding remainder so the three parts always sum to the
    quantized total exactly.
    """
    total = money(total_price)
    equipment = (total * EQUIPMENT_SHARE).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    labor = (total * LABOR_SHARE).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    permits = total - equipment - labor
    return {"equipment": equipment, "labor": labor, "permits": permits}


@dataclass(frozen=True)
class QuoteTerms:
    """Installer-editable fields of a quote."""

    price: Decimal
    system_size_kw: Decimal
    panel_model_id: int
    inverter_model_id: int
    warranty: str = ""
    estimated_annual_production: Optional[int] = None
    price_without_battery: Optional[Decimal] = None
    battery_model_id: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Mapping) -> "QuoteTerms":
        price = require_positive_money(data.get("price"), "price")
        system_size_kw = require_positive_decimal(data.get("system_size_kw"), "system_size_kw")

        panel_model_id = parse_optional_int(data.get("panel_model_id"))
        inverter_model_id = parse_optional_int(data.get("inverter_model_id"))
        if panel_model_id is None or inverter_model_id is None:
            raise ValidationFailed("panel_model_id and inverter_model_id are required")

        price_without_battery = None
        if data.get("price_without_battery") not in (None, ""):
            price_without_battery = require_positive_money(
                data.get("price_without_battery"), "price_without_battery"
            )

        production = data.get("estimated_annual_production")
        estimated_annual_production = None
        if production not in (None, ""):
            parsed = parse_decimal(production)
            if parsed is None or parsed < 0:
                raise ValidationFailed("estimated_annual_production must be a non-negative number")
            estimated_annual_production = int(parsed)

        return cls(
            price=price,
            system_size_kw=system_size_kw,
            panel_model_id=panel_model_id,
            inverter_model_id=inverter_model_id,
            warranty=(data.get("warranty") or "").strip(),
            estimated_annual_production=estimated_annual_production,
            price_without_battery=price_without_battery,
            battery_model_id=parse_optional_int(data.get("battery_model_id")),
        )


def _apply_terms(quote: Quote, terms: QuoteTerms) -> None:
    breakdown = derive_cost_breakdown(terms.price)

    quote.price = terms.price
    quote.price_without_battery = terms.price_without_battery
    quote.system_size_kw = terms.system_size_kw
    quote.panel_model_id = terms.panel_model_id
    quote.inverter_model_id = terms.inverter_model_id
    quote.battery_model_id = terms.battery_model_id
    quote.warranty = terms.warranty or None
    quote.estimated_annual_production = terms.estimated_annual_production

    quote.equipment_cost = breakdown["equipment"]
    quote.labor_cost = breakdown["labor"]
    quote.permits_cost = breakdown["permits"]


def upsert_quote(project, installer_id: int, terms: QuoteTerms, quote_id: int | None = None):
    """
    Add the installer's quote, or revise their existing one in place.

    Returns (quote, created). A `quote_id` that does not belong to this installer
    on this project is rejected with NotEligible.
    """
    existing = project.quote_by_installer(installer_id)

    if quote_id is not None:
        target = project.quote_by_id(quote_id)
        if target is None or target.installer_id != installer_id:
            raise NotEligible(f"quote {quote_id} is not yours to revise")
        existing = target

    if existing is not None:
        _apply_terms(existing, terms)
        existing.revision = (existing.revision or 0) + 1
        existing.updated_at = utcnow()
        return existing, False

    next_position = max((q.position for q in project.quotes), default=-1) + 1
    quote = Quote(installer_id=installer_id, position=next_position, revision=0)
    _apply_terms(quote, terms)
    project.quotes.append(quote)
    return quote, True
