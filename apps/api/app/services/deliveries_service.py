import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.auth.policy import can_view_delivery, ensure_can_view_delivery, is_request_participant
from app.db.base import utcnow
from app.models.delivery import Delivery, DeliveryStatus
from app.models.delivery_event import DeliveryEvent
from app.models.profile import UserRole
from app.models.service_request import ServiceRequest
from app.observability import log_event, metrics_store
from app.services.delivery_pricing import distance_km, quote_delivery_fee, resolve_zone, to_money
from app.services.drivers_service import is_driver_available
from app.services.state_machine import (
    DELIVERY_TERMINAL_STATES,
    ensure_valid_delivery_transition,
    next_delivery_status,
)

ACTION_ACCEPT = "accept"
ACTION_CANCEL = "cancel"


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Delivery not found")


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def _append_event(
    db: Session,
    delivery: Delivery,
    previous: DeliveryStatus | None,
    actor_id: uuid.UUID | None,
    message: str,
    payload: dict | None = None,
) -> None:
    db.add(
        DeliveryEvent(
            delivery_id=delivery.id,
            actor_id=actor_id,
            type=delivery.status,
            message=message,
            payload={
                "from_status": previous.value if previous else None,
                "to_status": delivery.status.value,
                **(payload or {}),
            },
        )
    )


def _guarded_update(
    db: Session,
    delivery: Delivery,
    *criteria,
    **values: Any,
) -> None:
    """Write ``values`` only if the row still matches ``criteria``.

    Two drivers racing on the same row cannot both win: the loser's WHERE
    clause no longer matches and it gets a 409.
    """
    result = db.execute(
        update(Delivery)
        .where(Delivery.id == delivery.id, *criteria)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        metrics_store.increment("delivery_transition_conflicts_total")
        raise _conflict("Delivery was changed by another user, reload and retry")
    db.flush()
    db.refresh(delivery)


def get_delivery_row(db: Session, delivery_id: uuid.UUID) -> Delivery:
    delivery = db.get(Delivery, delivery_id)
    if delivery is None:
        raise _not_found()
    return delivery


def _service_request_for(db: Session, delivery: Delivery) -> ServiceRequest:
    service_request = db.get(ServiceRequest, delivery.service_request_id)
    if service_request is None:
        raise _not_found()
    return service_request


def can_cancel_delivery(
    auth: AuthContext, delivery: Delivery, service_request: ServiceRequest
) -> bool:
    if delivery.status in DELIVERY_TERMINAL_STATES:
        return False
    return (
        auth.is_admin
        or delivery.driver_id == auth.user_id
        or is_request_participant(auth, service_request)
    )


def available_actions(
    auth: AuthContext,
    delivery: Delivery,
    service_request: ServiceRequest,
    driver_available: bool,
) -> list[str]:
    """Actions the caller may take on the delivery right now."""
    if delivery.status in DELIVERY_TERMINAL_STATES:
        return []

    actions: list[str] = []
    if (
        auth.role == UserRole.DRIVER
        and driver_available
        and delivery.driver_id is None
        and delivery.status == DeliveryStatus.PENDING
    ):
        actions.append(ACTION_ACCEPT)

    if delivery.driver_id == auth.user_id and delivery.status != DeliveryStatus.PENDING:
        successor = next_delivery_status(delivery.status)
        if successor is not None:
            actions.append(f"advance:{successor.value}")

    if can_cancel_delivery(auth, delivery, service_request):
        actions.append(ACTION_CANCEL)
    return actions


def delivery_to_dict(delivery: Delivery, actions: list[str]) -> dict[str, Any]:
    return {
        "id": delivery.id,
        "service_request_id": delivery.service_request_id,
        "driver_id": delivery.driver_id,
        "pickup_location": delivery.pickup_location,
        "delivery_location": delivery.delivery_location,
        "status": delivery.status,
        "estimated_delivery_time": delivery.estimated_delivery_time,
        "actual_delivery_time": delivery.actual_delivery_time,
        "delivery_fee": delivery.delivery_fee,
        "distance_km": delivery.distance_km,
        "driver_notes": delivery.driver_notes,
        "available_actions": actions,
        "created_at": delivery.created_at,
        "updated_at": delivery.updated_at,
    }


def describe_delivery(db: Session, auth: AuthContext, delivery: Delivery) -> dict[str, Any]:
    service_request = _service_request_for(db, delivery)
    driver_available = auth.role == UserRole.DRIVER and is_driver_available(db, auth.user_id)
    return delivery_to_dict(
        delivery, available_actions(auth, delivery, service_request, driver_available)
    )


def build_delivery_for_request(
    db: Session,
    service_request: ServiceRequest,
    pickup_location: dict,
    delivery_location: dict,
    zone_id: uuid.UUID | None = None,
) -> Delivery:
    """Stage a pending delivery for a new service request; the caller commits."""
    distance = to_money(
        distance_km(
            pickup_location["latitude"],
            pickup_location["longitude"],
            delivery_location["latitude"],
            delivery_location["longitude"],
        )
    )
    zone = resolve_zone(db, zone_id)
    delivery = Delivery(
        service_request_id=service_request.id,
        pickup_location=pickup_location,
        delivery_location=delivery_location,
        status=DeliveryStatus.PENDING,
        distance_km=distance,
        delivery_fee=quote_delivery_fee(zone, distance),
    )
    db.add(delivery)
    db.flush()
    _append_event(db, delivery, None, service_request.client_id, "Delivery created")
    return delivery


def get_delivery(db: Session, auth: AuthContext, delivery_id: uuid.UUID) -> dict[str, Any]:
    delivery = get_delivery_row(db, delivery_id)
    ensure_can_view_delivery(auth, delivery, _service_request_for(db, delivery))
    return describe_delivery(db, auth, delivery)


def list_deliveries(
    db: Session,
    auth: AuthContext,
    status_filter: DeliveryStatus | None = None,
) -> list[dict[str, Any]]:
    query = select(Delivery, ServiceRequest).join(
        ServiceRequest, ServiceRequest.id == Delivery.service_request_id
    )
    if auth.role == UserRole.DRIVER:
        query = query.where(
            or_(
                Delivery.driver_id == auth.user_id,
                and_(Delivery.driver_id.is_(None), Delivery.status == DeliveryStatus.PENDING),
            )
        )
    elif auth.role == UserRole.CLIENT:
        query = query.where(ServiceRequest.client_id == auth.user_id)
    elif auth.role == UserRole.MERCHANT:
        query = query.where(ServiceRequest.merchant_id == auth.user_id)

    if status_filter is not None:
        query = query.where(Delivery.status == status_filter)

    rows = db.execute(query.order_by(Delivery.created_at.desc())).all()
    driver_available = auth.role == UserRole.DRIVER and is_driver_available(db, auth.user_id)
    return [
        delivery_to_dict(
            delivery, available_actions(auth, delivery, service_request, driver_available)
        )
        for delivery, service_request in rows
        if can_view_delivery(auth, delivery, service_request)
    ]


def list_delivery_events(
    db: Session, auth: AuthContext, delivery_id: uuid.UUID
) -> list[DeliveryEvent]:
    delivery = get_delivery_row(db, delivery_id)
    ensure_can_view_delivery(auth, delivery, _service_request_for(db, delivery))
    return list(
        db.scalars(
            select(DeliveryEvent)
            .where(DeliveryEvent.delivery_id == delivery_id)
            .order_by(DeliveryEvent.created_at.asc())
        )
    )


def accept_delivery(db: Session, delivery_id: uuid.UUID, driver_id: uuid.UUID) -> Delivery:
    delivery = get_delivery_row(db, delivery_id)

    if not is_driver_available(db, driver_id):
        raise _conflict("Driver must be available to accept deliveries")
    if delivery.driver_id is not None or delivery.status != DeliveryStatus.PENDING:
        raise _conflict("Delivery is no longer available")

    _guarded_update(
        db,
        delivery,
        Delivery.driver_id.is_(None),
        Delivery.status == DeliveryStatus.PENDING,
        driver_id=driver_id,
        status=DeliveryStatus.ASSIGNED,
    )
    _append_event(
        db,
        delivery,
        DeliveryStatus.PENDING,
        driver_id,
        "Delivery accepted",
        {"driver_id": str(driver_id)},
    )
    db.commit()

    metrics_store.increment("deliveries_accepted_total")
    log_event("delivery_accepted", user_id=str(driver_id), delivery_id=str(delivery.id))
    return delivery


def advance_status(
    db: Session,
    delivery_id: uuid.UUID,
    next_status: DeliveryStatus,
    driver_id: uuid.UUID,
    driver_notes: str | None = None,
) -> Delivery:
    delivery = get_delivery_row(db, delivery_id)
    if delivery.driver_id is None or delivery.driver_id != driver_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the assigned driver can update this delivery",
        )

    current = delivery.status
    if next_status != next_delivery_status(current):
        raise _conflict(f"Invalid state transition: {current.value} -> {next_status.value}")
    ensure_valid_delivery_transition(current, next_status)

    values: dict[str, Any] = {"status": next_status}
    if next_status == DeliveryStatus.DELIVERED:
        values["actual_delivery_time"] = utcnow()
    if driver_notes is not None:
        values["driver_notes"] = driver_notes

    _guarded_update(
        db,
        delivery,
        Delivery.status == current,
        Delivery.driver_id == driver_id,
        **values,
    )
    _append_event(db, delivery, current, driver_id, f"Delivery {next_status.value}")
    db.commit()

    metrics_store.increment(f"deliveries_{next_status.value}_total")
    log_event(
        "delivery_status_advanced",
        user_id=str(driver_id),
        delivery_id=str(delivery.id),
    )
    return delivery


def cancel_delivery(
    db: Session,
    auth: AuthContext,
    delivery_id: uuid.UUID,
    reason: str | None = None,
) -> Delivery:
    delivery = get_delivery_row(db, delivery_id)
    service_request = _service_request_for(db, delivery)
    ensure_can_view_delivery(auth, delivery, service_request)

    current = delivery.status
    if current in DELIVERY_TERMINAL_STATES:
        raise _conflict(f"Invalid state transition: {current.value} -> cancelled")
    if not can_cancel_delivery(auth, delivery, service_request):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to cancel this delivery",
        )

    _guarded_update(db, delivery, Delivery.status == current, status=DeliveryStatus.CANCELLED)
    _append_event(
        db,
        delivery,
        current,
        auth.user_id,
        "Delivery cancelled",
        {"reason": reason} if reason else None,
    )
    db.commit()

    metrics_store.increment("deliveries_cancelled_total")
    log_event("delivery_cancelled", user_id=str(auth.user_id), delivery_id=str(delivery.id))
    return delivery


def _open_deliveries(db: Session, service_request_id: uuid.UUID) -> list[Delivery]:
    return list(
        db.scalars(
            select(Delivery).where(
                Delivery.service_request_id == service_request_id,
                Delivery.status.not_in(list(DELIVERY_TERMINAL_STATES)),
            )
        )
    )


def cancel_open_deliveries_for_request(
    db: Session, service_request: ServiceRequest, actor_id: uuid.UUID
) -> int:
    """Stage cancellation of every non-terminal delivery of a request; the caller commits.

    Each row is cancelled only if it still has the status that was read, so a
    driver finishing the delivery meanwhile turns the whole cancel into a 409.
    """
    cancelled = 0
    for delivery in _open_deliveries(db, service_request.id):
        previous = delivery.status
        _guarded_update(
            db,
            delivery,
            Delivery.status == previous,
            status=DeliveryStatus.CANCELLED,
        )
        _append_event(
            db,
            delivery,
            previous,
            actor_id,
            "Delivery cancelled with its service request",
        )
        cancelled += 1
    return cancelled
