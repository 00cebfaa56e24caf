import uuid

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_auth_context, require_roles
from app.db.session import get_db
from app.integrations.errors import IntegrationDeclinedError, IntegrationError
from app.integrations.payment_gateway_client import PaymentGatewayProtocol, get_payment_gateway
from app.models.profile import UserRole
from app.observability import observe_timing
from app.schemas.payment import (
    MerchantEarningListResponse,
    MerchantEarningResponse,
    PaymentCreate,
    PaymentMethodCreate,
    PaymentMethodListResponse,
    PaymentMethodResponse,
    TransactionListResponse,
    TransactionResponse,
)
from app.services.idempotency_service import (
    build_scope,
    check_idempotency,
    save_idempotency_result,
    validate_idempotency_key,
)
from app.services.payments_service import (
    add_payment_method,
    list_merchant_earnings,
    list_payment_methods,
    list_transactions,
    process_payment,
    remove_payment_method,
    set_default_payment_method,
)

router = APIRouter(prefix="/api/v1", tags=["payments"])


def _translate_integration_error(err: IntegrationError) -> HTTPException:
    detail = {"service": err.service, "code": err.code, "message": err.message}
    if isinstance(err, IntegrationDeclinedError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)
    if err.retryable:
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


@router.get(
    "/payment-methods",
    response_model=PaymentMethodListResponse,
    summary="List own payment methods",
)
def list_payment_methods_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> PaymentMethodListResponse:
    return PaymentMethodListResponse(
        items=[PaymentMethodResponse.model_validate(m) for m in list_payment_methods(db, auth)]
    )


@router.post(
    "/payment-methods",
    response_model=PaymentMethodResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add payment method",
)
def add_payment_method_endpoint(
    payload: PaymentMethodCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> PaymentMethodResponse:
    return PaymentMethodResponse.model_validate(add_payment_method(db, auth, payload))


@router.delete(
    "/payment-methods/{method_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove payment method",
)
def remove_payment_method_endpoint(
    method_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> Response:
    remove_payment_method(db, auth, method_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/payment-methods/{method_id}/default",
    response_model=PaymentMethodResponse,
    summary="Make payment method the default",
)
def set_default_payment_method_endpoint(
    method_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> PaymentMethodResponse:
    return PaymentMethodResponse.model_validate(set_default_payment_method(db, auth, method_id))


@router.post(
    "/payments",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pay for a service request",
)
def process_payment_endpoint(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    gateway: PaymentGatewayProtocol = Depends(get_payment_gateway),
    auth: AuthContext = Depends(get_auth_context),
) -> TransactionResponse:
    idempotency_key = validate_idempotency_key(idempotency_key)
    request_payload = payload.model_dump(mode="json")
    route_scope = build_scope("POST:/api/v1/payments")

    if idempotency_key:
        idem = check_idempotency(
            db=db,
            user_id=auth.user_id,
            route=route_scope,
            idempotency_key=idempotency_key,
            request_payload=request_payload,
        )
        if idem.replay and idem.response_payload:
            return TransactionResponse.model_validate(idem.response_payload)

    try:
        with observe_timing("payment_gateway_seconds"):
            transaction = process_payment(db, auth, payload, gateway, idempotency_key)
    except IntegrationError as err:
        raise _translate_integration_error(err) from err

    response_payload = TransactionResponse.model_validate(transaction).model_dump(mode="json")
    if idempotency_key:
        save_idempotency_result(
            db=db,
            user_id=auth.user_id,
            route=route_scope,
            idempotency_key=idempotency_key,
            request_payload=request_payload,
            response_payload=response_payload,
        )
    return TransactionResponse.model_validate(response_payload)


@router.get("/transactions", response_model=TransactionListResponse, summary="Own transactions")
def list_transactions_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> TransactionListResponse:
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in list_transactions(db, auth)]
    )


@router.get(
    "/earnings",
    response_model=MerchantEarningListResponse,
    summary="Merchant earnings",
)
def list_earnings_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles(UserRole.MERCHANT)),
) -> MerchantEarningListResponse:
    earnings = list_merchant_earnings(db, auth)
    return MerchantEarningListResponse(
        items=[MerchantEarningResponse.model_validate(e) for e in earnings],
        total_net=float(sum(e.net_amount for e in earnings)),
    )
