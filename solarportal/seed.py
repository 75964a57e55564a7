"""
solarportal/seed.py

Seed the reference catalogs and the default commission rate.

Rules:
- Safe to run multiple times (idempotent).
- Catalog rows are matched by name (models by brand + name); existing rows are
  kept and their technical values synced.
- The commission rate is only written when no admin value is stored yet.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from .extensions import db
from .finance import COMMISSION_RATE_KEY, set_commission_rate
from .models import (
    BatteryModel,
    EquipmentBrand,
    EquipmentType,
    InverterModel,
    PanelModel,
    PlatformSetting,
    RoofType,
)


DEFAULT_ROOF_TYPES = ["Asphalt Shingle", "Tile", "Metal", "Flat"]

DEFAULT_BRANDS = [
    ("Canadian Solar", EquipmentType.PANEL),
    ("Fronius", EquipmentType.INVERTER),
    ("Tesla", EquipmentType.BATTERY),
]

DEFAULT_PANEL_MODELS = [
    # brand, name, wattage, efficiency %
    ("Canadian Solar", "HiKu6", 455, Decimal("21.20")),
]

DEFAULT_INVERTER_MODELS = [
    # brand, name, efficiency %
    ("Fronius", "Primo GEN24", Decimal("97.60")),
]

DEFAULT_BATTERY_MODELS = [
    # brand, name, capacity kWh, efficiency %
    ("Tesla", "Powerwall 2", Decimal("13.50"), Decimal("90.00")),
]


def _brand(name: str, type_: EquipmentType) -> EquipmentBrand:
    brand = EquipmentBrand.query.filter_by(name=name, type=type_).first()
    if not brand:
        brand = EquipmentBrand(name=name, type=type_)
        db.session.add(brand)
        db.session.flush()
    return brand


def seed_catalog() -> None:
    """Create default roof types, equipment and commission rate if missing."""
    for name in DEFAULT_ROOF_TYPES:
        if not RoofType.query.filter_by(name=name).first():
            db.session.add(RoofType(name=name))

    for name, type_ in DEFAULT_BRANDS:
        _brand(name, type_)

    for brand_name, name, wattage, efficiency in DEFAULT_PANEL_MODELS:
        brand = _brand(brand_name, EquipmentType.PANEL)
        exists = PanelModel.query.filter_by(brand_id=brand.id, name=name).first()
        if exists:
            exists.wattage = wattage
            exists.efficiency = efficiency
            continue
        db.session.add(PanelModel(brand_id=brand.id, name=name, wattage=wattage, efficiency=efficiency))

    for brand_name, name, efficiency in DEFAULT_INVERTER_MODELS:
        brand = _brand(brand_name, EquipmentType.INVERTER)
        exists = InverterModel.query.filter_by(brand_id=brand.id, name=name).first()
        if exists:
            exists.efficiency = efficiency
            continue
        db.session.add(InverterModel(brand_id=brand.id, name=name, efficiency=efficiency))

    for brand_name, name, capacity, efficiency in DEFAULT_BATTERY_MODELS:
        brand = _brand(brand_name, EquipmentType.BATTERY)
        exists = BatteryModel.query.filter_by(brand_id=brand.id, name=name).first()
        if exists:
            exists.capacity_kwh = capacity
            exists.efficiency = efficiency
            continue
        db.session.add(
            BatteryModel(brand_id=brand.id, name=name, capacity_kwh=capacity, efficiency=efficiency)
        )

    db.session.flush()

    if not PlatformSetting.query.filter_by(key=COMMISSION_RATE_KEY).first():
        set_commission_rate(current_app.config.get("COMMISSION_RATE", Decimal("0.10")))

    db.session.commit()
