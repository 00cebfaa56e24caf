import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.db.base import as_utc, utcnow
from app.models.admin_action import AdminAction
from app.models.catalog import Category, Service
from app.models.delivery import DeliveryZone
from app.models.profile import Profile, UserRole
from app.models.service_request import ServiceRequest
from app.observability import log_event, metrics_store
from app.schemas.delivery import DeliveryZoneCreate

GROWTH_BUCKETS = 7
TOP_SERVICES_LIMIT = 5
UNCATEGORIZED = "Uncategorized"


def _record_action(
    db: Session,
    auth: AuthContext,
    action_type: str,
    description: str,
    target_type: str | None = None,
    target_id: uuid.UUID | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AdminAction(
            admin_id=auth.user_id,
            action_type=action_type,
            target_type=target_type,
            target_id=target_id,
            description=description,
            metadata_=metadata or {},
        )
    )


def list_users(
    db: Session,
    *,
    search: str | None = None,
    role: UserRole | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Profile]:
    query = select(Profile)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(Profile.username.ilike(pattern), Profile.full_name.ilike(pattern)))
    if role is not None:
        query = query.where(Profile.role == role)
    return list(db.scalars(query.order_by(Profile.created_at.desc()).limit(limit).offset(offset)))


def _get_target(db: Session, auth: AuthContext, user_id: uuid.UUID) -> Profile:
    if user_id == auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot change their own account",
        )
    profile = db.get(Profile, user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile


def set_user_role(db: Session, auth: AuthContext, user_id: uuid.UUID, role: UserRole) -> Profile:
    profile = _get_target(db, auth, user_id)
    previous = profile.role
    profile.role = role
    _record_action(
        db,
        auth,
        "user_role_changed",
        f"Changed role of {profile.username} from {previous.value} to {role.value}",
        target_type="profile",
        target_id=profile.id,
        metadata={"from": previous.value, "to": role.value},
    )
    db.commit()
    db.refresh(profile)

    metrics_store.increment("admin_actions_total")
    log_event("admin_user_role_changed", user_id=str(auth.user_id))
    return profile


def set_user_active(
    db: Session, auth: AuthContext, user_id: uuid.UUID, is_active: bool
) -> Profile:
    profile = _get_target(db, auth, user_id)
    profile.is_active = is_active
    verb = "Activated" if is_active else "Deactivated"
    _record_action(
        db,
        auth,
        "user_activated" if is_active else "user_deactivated",
        f"{verb} {profile.username}",
        target_type="profile",
        target_id=profile.id,
    )
    db.commit()
    db.refresh(profile)

    metrics_store.increment("admin_actions_total")
    log_event("admin_user_active_changed", user_id=str(auth.user_id))
    return profile


def list_admin_actions(db: Session, limit: int = 100) -> list[AdminAction]:
    return list(
        db.scalars(select(AdminAction).order_by(AdminAction.created_at.desc()).limit(limit))
    )


def create_zone(db: Session, auth: AuthContext, payload: DeliveryZoneCreate) -> DeliveryZone:
    zone = DeliveryZone(
        name=payload.name,
        coordinates=payload.coordinates,
        base_fee=Decimal(str(payload.base_fee)),
        per_km_rate=Decimal(str(payload.per_km_rate)),
    )
    db.add(zone)
    db.flush()
    _record_action(
        db,
        auth,
        "delivery_zone_created",
        f"Created delivery zone {zone.name}",
        target_type="delivery_zone",
        target_id=zone.id,
    )
    db.commit()
    db.refresh(zone)
    return zone


def list_zones(db: Session) -> list[DeliveryZone]:
    return list(db.scalars(select(DeliveryZone).order_by(DeliveryZone.created_at.asc())))


def _month_start(value: datetime, months_back: int) -> datetime:
    month_index = value.year * 12 + (value.month - 1) - months_back
    return value.replace(
        year=month_index // 12,
        month=month_index % 12 + 1,
        day=1,
        hour=0,
        minute=0,
        second=0,
        microsecond=0,
    )


def growth_buckets(period: str, now: datetime | None = None) -> list[tuple[datetime, datetime]]:
    """Seven consecutive [start, end) windows, oldest first.

    Weeks are rolling seven-day windows ending now; months are calendar
    months ending with the current one.
    """
    now = now or utcnow()
    buckets: list[tuple[datetime, datetime]] = []
    for i in range(GROWTH_BUCKETS - 1, -1, -1):
        if period == "week":
            end = now - timedelta(days=7 * i)
            buckets.append((end - timedelta(days=7), end))
        else:
            buckets.append((_month_start(now, i), _month_start(now, i - 1)))
    return buckets


def _user_growth(db: Session, period: str, now: datetime) -> list[dict[str, Any]]:
    buckets = growth_buckets(period, now)
    earliest = buckets[0][0]
    created = [
        as_utc(value)
        for value in db.scalars(select(Profile.created_at).where(Profile.created_at >= earliest))
    ]
    return [
        {
            "period_start": start,
            "count": sum(1 for value in created if start <= value < end),
        }
        for start, end in buckets
    ]


def analytics(db: Session, period: str, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    rows = db.execute(
        select(
            Service.id,
            Service.title,
            Category.name,
            func.count(ServiceRequest.id),
            func.coalesce(func.sum(ServiceRequest.price_quoted), 0),
        )
        .outerjoin(Category, Category.id == Service.category_id)
        .outerjoin(ServiceRequest, ServiceRequest.service_id == Service.id)
        .where(Service.is_active.is_(True))
        .group_by(Service.id, Service.title, Category.name)
    ).all()

    by_category: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "revenue": 0.0})
    services: list[dict[str, Any]] = []
    for service_id, title, category_name, bookings, revenue in rows:
        bucket = by_category[category_name or UNCATEGORIZED]
        bucket["count"] += 1
        bucket["revenue"] += float(revenue)
        services.append(
            {
                "service_id": service_id,
                "title": title,
                "bookings": int(bookings),
                "revenue": float(revenue),
            }
        )

    services.sort(key=lambda item: item["bookings"], reverse=True)
    return {
        "period": period,
        "user_growth": _user_growth(db, period, now),
        "service_metrics": [
            {"category": name, "count": data["count"], "revenue": round(data["revenue"], 2)}
            for name, data in sorted(by_category.items())
        ],
        "top_services": services[:TOP_SERVICES_LIMIT],
    }
