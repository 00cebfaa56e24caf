import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.auth.policy import ensure_can_view_request
from app.models.catalog import Service
from app.models.profile import UserRole
from app.models.service_request import ServiceRequest, ServiceRequestStatus
from app.observability import log_event, metrics_store
from app.schemas.service_request import ServiceRequestCreate
from app.services.deliveries_service import (
    build_delivery_for_request,
    cancel_open_deliveries_for_request,
)
from app.services.state_machine import ensure_valid_request_transition

# Transitions each participant may trigger on a request they belong to
_MERCHANT_TARGETS = frozenset(
    {
        ServiceRequestStatus.ACCEPTED,
        ServiceRequestStatus.IN_PROGRESS,
        ServiceRequestStatus.COMPLETED,
        ServiceRequestStatus.CANCELLED,
    }
)
_CLIENT_TARGETS = frozenset({ServiceRequestStatus.COMPLETED, ServiceRequestStatus.CANCELLED})


def get_service_request_row(db: Session, request_id: uuid.UUID) -> ServiceRequest:
    service_request = db.get(ServiceRequest, request_id)
    if service_request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Service request not found"
        )
    return service_request


def get_service_request(
    db: Session, auth: AuthContext, request_id: uuid.UUID
) -> ServiceRequest:
    service_request = get_service_request_row(db, request_id)
    ensure_can_view_request(auth, service_request)
    return service_request


def create_service_request(
    db: Session, auth: AuthContext, payload: ServiceRequestCreate
) -> ServiceRequest:
    if auth.role != UserRole.CLIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Only clients can book services"
        )

    service = db.get(Service, payload.service_id)
    if service is None or not service.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")

    if service.requires_delivery and payload.delivery is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Delivery details are required for this service",
        )
    if not service.requires_delivery and payload.delivery is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This service does not include delivery",
        )

    service_request = ServiceRequest(
        client_id=auth.user_id,
        merchant_id=service.merchant_id,
        service_id=service.id,
        status=ServiceRequestStatus.PENDING,
        description=payload.description or f"Request for: {service.title}",
        scheduled_date=payload.scheduled_date,
        location=payload.location.model_dump() if payload.location else None,
        price_quoted=service.price,
    )
    db.add(service_request)
    db.flush()

    if payload.delivery is not None:
        build_delivery_for_request(
            db,
            service_request,
            pickup_location=payload.delivery.pickup_location.model_dump(),
            delivery_location=payload.delivery.delivery_location.model_dump(),
            zone_id=payload.delivery.zone_id,
        )

    db.commit()
    db.refresh(service_request)

    metrics_store.increment("service_requests_created_total")
    log_event(
        "service_request_created",
        user_id=str(auth.user_id),
        service_request_id=str(service_request.id),
    )
    return service_request


def list_service_requests(
    db: Session,
    auth: AuthContext,
    status_filter: ServiceRequestStatus | None = None,
) -> list[ServiceRequest]:
    query = select(ServiceRequest)
    if auth.role == UserRole.CLIENT:
        query = query.where(ServiceRequest.client_id == auth.user_id)
    elif auth.role == UserRole.MERCHANT:
        query = query.where(ServiceRequest.merchant_id == auth.user_id)
    elif not auth.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")

    if status_filter is not None:
        query = query.where(ServiceRequest.status == status_filter)
    return list(db.scalars(query.order_by(ServiceRequest.created_at.desc())))


def _ensure_actor_may_set(
    auth: AuthContext,
    service_request: ServiceRequest,
    next_status: ServiceRequestStatus,
) -> None:
    if auth.is_admin:
        return
    if auth.user_id == service_request.merchant_id and next_status in _MERCHANT_TARGETS:
        return
    if auth.user_id == service_request.client_id and next_status in _CLIENT_TARGETS:
        # Clients may withdraw a request only before the merchant picks it up
        if (
            next_status == ServiceRequestStatus.CANCELLED
            and service_request.status != ServiceRequestStatus.PENDING
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Accepted requests can only be cancelled by the merchant",
            )
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f"Not allowed to mark this request {next_status.value}",
    )


def transition_service_request(
    db: Session,
    auth: AuthContext,
    request_id: uuid.UUID,
    next_status: ServiceRequestStatus,
) -> ServiceRequest:
    service_request = get_service_request(db, auth, request_id)
    ensure_valid_request_transition(service_request.status, next_status)
    _ensure_actor_may_set(auth, service_request, next_status)

    previous = service_request.status
    service_request.status = next_status
    if next_status == ServiceRequestStatus.CANCELLED:
        cancel_open_deliveries_for_request(db, service_request, auth.user_id)

    db.commit()
    db.refresh(service_request)

    metrics_store.increment(f"service_requests_{next_status.value}_total")
    log_event(
        f"service_request_{previous.value}_to_{next_status.value}",
        user_id=str(auth.user_id),
        service_request_id=str(service_request.id),
    )
    return service_request
