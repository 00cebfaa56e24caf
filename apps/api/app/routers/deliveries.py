import uuid

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_auth_context, require_driver
from app.db.session import get_db
from app.models.delivery import DeliveryStatus
from app.observability import observe_timing
from app.schemas.delivery import (
    DeliveryAdvanceRequest,
    DeliveryCancelRequest,
    DeliveryEventListResponse,
    DeliveryEventResponse,
    DeliveryListResponse,
    DeliveryResponse,
)
from app.services.deliveries_service import (
    accept_delivery,
    advance_status,
    cancel_delivery,
    describe_delivery,
    get_delivery,
    list_deliveries,
    list_delivery_events,
)

router = APIRouter(prefix="/api/v1/deliveries", tags=["deliveries"])


@router.get("", response_model=DeliveryListResponse, summary="List visible deliveries")
def list_deliveries_endpoint(
    db: Session = Depends(get_db),
    status_filter: DeliveryStatus | None = Query(default=None, alias="status"),
    auth: AuthContext = Depends(get_auth_context),
) -> DeliveryListResponse:
    items = list_deliveries(db, auth, status_filter)
    return DeliveryListResponse(items=[DeliveryResponse.model_validate(item) for item in items])


@router.get("/{delivery_id}", response_model=DeliveryResponse, summary="Get delivery")
def get_delivery_endpoint(
    delivery_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> DeliveryResponse:
    return DeliveryResponse.model_validate(get_delivery(db, auth, delivery_id))


@router.post(
    "/{delivery_id}/accept",
    response_model=DeliveryResponse,
    summary="Claim an open delivery",
)
def accept_delivery_endpoint(
    delivery_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_driver),
) -> DeliveryResponse:
    with observe_timing("delivery_accept_seconds"):
        delivery = accept_delivery(db, delivery_id, auth.user_id)
    return DeliveryResponse.model_validate(describe_delivery(db, auth, delivery))


@router.post(
    "/{delivery_id}/status",
    response_model=DeliveryResponse,
    summary="Advance delivery to its next status",
)
def advance_delivery_endpoint(
    delivery_id: uuid.UUID,
    payload: DeliveryAdvanceRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_driver),
) -> DeliveryResponse:
    delivery = advance_status(
        db,
        delivery_id,
        payload.status,
        auth.user_id,
        driver_notes=payload.driver_notes,
    )
    return DeliveryResponse.model_validate(describe_delivery(db, auth, delivery))


@router.post("/{delivery_id}/cancel", response_model=DeliveryResponse, summary="Cancel delivery")
def cancel_delivery_endpoint(
    delivery_id: uuid.UUID,
    payload: DeliveryCancelRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> DeliveryResponse:
    reason = payload.reason if payload else None
    delivery = cancel_delivery(db, auth, delivery_id, reason)
    return DeliveryResponse.model_validate(describe_delivery(db, auth, delivery))


@router.get(
    "/{delivery_id}/events",
    response_model=DeliveryEventListResponse,
    summary="Delivery timeline",
)
def list_delivery_events_endpoint(
    delivery_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> DeliveryEventListResponse:
    events = list_delivery_events(db, auth, delivery_id)
    return DeliveryEventListResponse(
        items=[DeliveryEventResponse.model_validate(event) for event in events]
    )
