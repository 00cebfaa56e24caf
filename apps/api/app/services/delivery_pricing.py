import math
from decimal import ROUND_HALF_UP, Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.delivery import DeliveryZone

_CENTS = Decimal("0.01")
_EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    lat1_rad, lng1_rad, lat2_rad, lng2_rad = map(math.radians, [lat1, lng1, lat2, lng2])
    dlat = lat2_rad - lat1_rad
    dlng = lng2_rad - lng1_rad
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    return _EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def to_money(value: float | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def resolve_zone(db: Session, zone_id=None) -> DeliveryZone | None:
    """Zone to price with: the requested one, else the oldest active zone, else None."""
    if zone_id is not None:
        zone = db.get(DeliveryZone, zone_id)
        if zone is None or not zone.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown delivery zone"
            )
        return zone
    return db.scalar(
        select(DeliveryZone)
        .where(DeliveryZone.is_active.is_(True))
        .order_by(DeliveryZone.created_at.asc())
        .limit(1)
    )


def quote_delivery_fee(zone: DeliveryZone | None, distance: Decimal) -> Decimal:
    if zone is None:
        base_fee = to_money(settings.default_delivery_base_fee)
        per_km_rate = to_money(settings.default_delivery_per_km_rate)
    else:
        base_fee = to_money(zone.base_fee)
        per_km_rate = to_money(zone.per_km_rate)
    return to_money(base_fee + per_km_rate * distance)
