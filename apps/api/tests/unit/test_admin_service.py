from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.models.catalog import Category
from app.models.profile import UserRole
from app.schemas.delivery import DeliveryZoneCreate
from app.services.admin_service import (
    analytics,
    create_zone,
    growth_buckets,
    list_admin_actions,
    list_users,
    list_zones,
    set_user_active,
    set_user_role,
)


def test_month_buckets_are_seven_calendar_months_oldest_first():
    now = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)

    buckets = growth_buckets("month", now)

    assert len(buckets) == 7
    assert buckets[0][0] == datetime(2025, 9, 1, tzinfo=timezone.utc)
    assert buckets[-1] == (
        datetime(2026, 3, 1, tzinfo=timezone.utc),
        datetime(2026, 4, 1, tzinfo=timezone.utc),
    )
    for (_, end), (start, _) in zip(buckets, buckets[1:]):
        assert end == start


def test_week_buckets_are_rolling_windows_ending_now():
    now = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)

    buckets = growth_buckets("week", now)

    assert len(buckets) == 7
    assert buckets[-1][1] == now
    assert (buckets[-1][1] - buckets[0][0]).days == 49


def test_role_and_active_changes_are_audited(db_session, people, auth_for):
    admin = auth_for(people["admin"])

    promoted = set_user_role(db_session, admin, people["client"].id, UserRole.MERCHANT)
    deactivated = set_user_active(db_session, admin, people["driver"].id, False)

    assert promoted.role == UserRole.MERCHANT
    assert deactivated.is_active is False
    actions = list_admin_actions(db_session)
    assert {a.action_type for a in actions} == {"user_role_changed", "user_deactivated"}
    assert all(a.admin_id == people["admin"].id for a in actions)


def test_admins_cannot_change_their_own_account(db_session, people, auth_for):
    with pytest.raises(HTTPException) as exc:
        set_user_role(db_session, auth_for(people["admin"]), people["admin"].id, UserRole.CLIENT)
    assert exc.value.status_code == 400
    assert list_admin_actions(db_session) == []


def test_missing_user_is_not_found(db_session, people, auth_for):
    import uuid

    with pytest.raises(HTTPException) as exc:
        set_user_active(db_session, auth_for(people["admin"]), uuid.uuid4(), False)
    assert exc.value.status_code == 404


def test_user_search_and_role_filter(db_session, people):
    merchants = list_users(db_session, role=UserRole.MERCHANT)
    assert {p.username for p in merchants} == {"merchant_a", "merchant_b"}

    found = list_users(db_session, search="driver_b")
    assert [p.username for p in found] == ["driver_b"]

    assert len(list_users(db_session, limit=2)) == 2


def test_zone_creation_is_audited(db_session, people, auth_for):
    zone = create_zone(
        db_session,
        auth_for(people["admin"]),
        DeliveryZoneCreate(name="Plateau", coordinates=[], base_fee=4, per_km_rate=1.5),
    )

    assert zone.base_fee == Decimal("4.00")
    assert [z.id for z in list_zones(db_session)] == [zone.id]
    [action] = list_admin_actions(db_session)
    assert action.target_id == zone.id


def test_analytics_summarises_categories_and_top_services(
    db_session, people, make_service, make_request
):
    errands = Category(name="Errands")
    db_session.add(errands)
    db_session.commit()

    busy = make_service(
        people["merchant"], requires_delivery=False, price="20.00", title="Busy", category_id=errands.id
    )
    quiet = make_service(people["other_merchant"], requires_delivery=False, price="50.00", title="Quiet")
    make_service(people["merchant"], requires_delivery=False, title="Hidden", is_active=False)
    for _ in range(3):
        make_request(people["client"], busy, False)
    make_request(people["client"], quiet, False)

    report = analytics(db_session, "month")

    assert report["period"] == "month"
    assert [s["title"] for s in report["top_services"]] == ["Busy", "Quiet"]
    assert report["top_services"][0]["bookings"] == 3
    assert report["top_services"][0]["revenue"] == 60.0
    assert report["service_metrics"] == [
        {"category": "Errands", "count": 1, "revenue": 60.0},
        {"category": "Uncategorized", "count": 1, "revenue": 50.0},
    ]
    assert len(report["user_growth"]) == 7
    assert report["user_growth"][-1]["count"] == 7
