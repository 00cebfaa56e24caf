from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.models.delivery import DeliveryZone
from app.services.delivery_pricing import distance_km, quote_delivery_fee, resolve_zone, to_money


def test_distance_between_identical_points_is_zero():
    assert distance_km(45.5, -73.5, 45.5, -73.5) == 0


def test_distance_matches_known_city_pair():
    # Montreal to Toronto, roughly 504 km great-circle
    assert distance_km(45.5017, -73.5673, 43.6532, -79.3832) == pytest.approx(504, abs=3)


def test_to_money_rounds_half_up_to_cents():
    assert to_money(2.345) == Decimal("2.35")
    assert to_money(Decimal("10")) == Decimal("10.00")


def test_default_pricing_applies_without_zones(db_session):
    zone = resolve_zone(db_session)

    assert zone is None
    assert quote_delivery_fee(zone, Decimal("4.00")) == Decimal("15.00")


def test_zone_rates_override_defaults(db_session):
    zone = DeliveryZone(
        name="Downtown",
        coordinates=[],
        base_fee=Decimal("3.00"),
        per_km_rate=Decimal("1.25"),
    )
    db_session.add(zone)
    db_session.commit()

    resolved = resolve_zone(db_session)

    assert resolved.id == zone.id
    assert quote_delivery_fee(resolved, Decimal("2.00")) == Decimal("5.50")


def test_unknown_or_inactive_zone_is_rejected(db_session):
    import uuid

    with pytest.raises(HTTPException) as exc:
        resolve_zone(db_session, uuid.uuid4())
    assert exc.value.status_code == 400

    zone = DeliveryZone(name="Closed", coordinates=[], is_active=False)
    db_session.add(zone)
    db_session.commit()

    with pytest.raises(HTTPException):
        resolve_zone(db_session, zone.id)
    assert resolve_zone(db_session) is None
