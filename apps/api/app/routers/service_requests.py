import uuid

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_auth_context
from app.db.session import get_db
from app.models.service_request import ServiceRequestStatus
from app.schemas.service_request import (
    ServiceRequestCreate,
    ServiceRequestListResponse,
    ServiceRequestResponse,
    ServiceRequestStatusUpdate,
)
from app.services.idempotency_service import (
    build_scope,
    check_idempotency,
    save_idempotency_result,
    validate_idempotency_key,
)
from app.services.requests_service import (
    create_service_request,
    get_service_request,
    list_service_requests,
    transition_service_request,
)

router = APIRouter(prefix="/api/v1/service-requests", tags=["service-requests"])


@router.post(
    "",
    response_model=ServiceRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a service",
)
def create_service_request_endpoint(
    payload: ServiceRequestCreate,
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    auth: AuthContext = Depends(get_auth_context),
) -> ServiceRequestResponse:
    idempotency_key = validate_idempotency_key(idempotency_key)
    request_payload = payload.model_dump(mode="json")
    route_scope = build_scope("POST:/api/v1/service-requests")

    if idempotency_key:
        idem = check_idempotency(
            db=db,
            user_id=auth.user_id,
            route=route_scope,
            idempotency_key=idempotency_key,
            request_payload=request_payload,
        )
        if idem.replay and idem.response_payload:
            return ServiceRequestResponse.model_validate(idem.response_payload)

    service_request = create_service_request(db, auth, payload)
    response_payload = ServiceRequestResponse.model_validate(service_request).model_dump(
        mode="json"
    )

    if idempotency_key:
        save_idempotency_result(
            db=db,
            user_id=auth.user_id,
            route=route_scope,
            idempotency_key=idempotency_key,
            request_payload=request_payload,
            response_payload=response_payload,
        )

    return ServiceRequestResponse.model_validate(response_payload)


@router.get("", response_model=ServiceRequestListResponse, summary="List own service requests")
def list_service_requests_endpoint(
    db: Session = Depends(get_db),
    status_filter: ServiceRequestStatus | None = Query(default=None, alias="status"),
    auth: AuthContext = Depends(get_auth_context),
) -> ServiceRequestListResponse:
    items = list_service_requests(db, auth, status_filter)
    return ServiceRequestListResponse(
        items=[ServiceRequestResponse.model_validate(item) for item in items]
    )


@router.get(
    "/{request_id}", response_model=ServiceRequestResponse, summary="Get service request"
)
def get_service_request_endpoint(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ServiceRequestResponse:
    return ServiceRequestResponse.model_validate(get_service_request(db, auth, request_id))


@router.post(
    "/{request_id}/status",
    response_model=ServiceRequestResponse,
    summary="Move a service request to its next status",
)
def transition_service_request_endpoint(
    request_id: uuid.UUID,
    payload: ServiceRequestStatusUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ServiceRequestResponse:
    service_request = transition_service_request(db, auth, request_id, payload.status)
    return ServiceRequestResponse.model_validate(service_request)
