import uuid
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.config import settings
from app.db.base import utcnow
from app.integrations.errors import IntegrationDeclinedError
from app.integrations.payment_gateway_client import PaymentGatewayProtocol
from app.models.payment import (
    MerchantEarning,
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from app.models.service_request import ServiceRequest, ServiceRequestStatus
from app.observability import log_event, metrics_store
from app.schemas.payment import PaymentCreate, PaymentMethodCreate
from app.services.delivery_pricing import to_money


def list_payment_methods(db: Session, auth: AuthContext) -> list[PaymentMethod]:
    return list(
        db.scalars(
            select(PaymentMethod)
            .where(PaymentMethod.user_id == auth.user_id, PaymentMethod.is_active.is_(True))
            .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc())
        )
    )


def _get_own_method(db: Session, auth: AuthContext, method_id: uuid.UUID) -> PaymentMethod:
    method = db.get(PaymentMethod, method_id)
    if method is None or not method.is_active or method.user_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment method not found")
    return method


def add_payment_method(
    db: Session, auth: AuthContext, payload: PaymentMethodCreate
) -> PaymentMethod:
    has_active = db.scalar(
        select(PaymentMethod.id)
        .where(PaymentMethod.user_id == auth.user_id, PaymentMethod.is_active.is_(True))
        .limit(1)
    )
    method = PaymentMethod(
        user_id=auth.user_id,
        processor_payment_method_id=payload.processor_payment_method_id,
        type=payload.type,
        last_four=payload.last_four,
        brand=payload.brand,
        is_default=has_active is None,
        metadata_=payload.metadata,
    )
    db.add(method)
    db.commit()
    db.refresh(method)
    log_event("payment_method_added", user_id=str(auth.user_id))
    return method


def remove_payment_method(db: Session, auth: AuthContext, method_id: uuid.UUID) -> None:
    method = _get_own_method(db, auth, method_id)
    method.is_active = False
    method.is_default = False
    db.commit()
    log_event("payment_method_removed", user_id=str(auth.user_id))


def set_default_payment_method(
    db: Session, auth: AuthContext, method_id: uuid.UUID
) -> PaymentMethod:
    method = _get_own_method(db, auth, method_id)
    db.execute(
        update(PaymentMethod)
        .where(PaymentMethod.user_id == auth.user_id, PaymentMethod.id != method.id)
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )
    method.is_default = True
    db.commit()
    db.refresh(method)
    return method


def _default_method(db: Session, auth: AuthContext) -> PaymentMethod | None:
    return db.scalar(
        select(PaymentMethod).where(
            PaymentMethod.user_id == auth.user_id,
            PaymentMethod.is_active.is_(True),
            PaymentMethod.is_default.is_(True),
        )
    )


def process_payment(
    db: Session,
    auth: AuthContext,
    payload: PaymentCreate,
    gateway: PaymentGatewayProtocol,
    idempotency_key: str | None = None,
) -> Transaction:
    service_request = db.get(ServiceRequest, payload.service_request_id)
    if service_request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Service request not found"
        )
    if service_request.client_id != auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the client of the request can pay for it",
        )
    if service_request.status == ServiceRequestStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Cannot pay for a cancelled request"
        )
    # Failed attempts may be retried; anything else counts as paid
    already_paid = db.scalar(
        select(Transaction.id)
        .where(
            Transaction.service_request_id == service_request.id,
            Transaction.type == TransactionType.PAYMENT,
            Transaction.status.in_([TransactionStatus.PROCESSING, TransactionStatus.COMPLETED]),
        )
        .limit(1)
    )
    if already_paid is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Service request is already paid"
        )

    if payload.payment_method_id is not None:
        method = _get_own_method(db, auth, payload.payment_method_id)
    else:
        method = _default_method(db, auth)

    amount = to_money(payload.amount)
    currency = settings.payment_currency
    description = f"Payment for service request {service_request.id}"

    transaction = Transaction(
        user_id=auth.user_id,
        service_request_id=service_request.id,
        type=TransactionType.PAYMENT,
        status=TransactionStatus.PENDING,
        amount=amount,
        currency=currency,
        payment_method_id=method.id if method else None,
        description=description,
    )

    try:
        intent = gateway.create_payment_intent(
            amount=amount,
            currency=currency,
            payment_method_ref=method.processor_payment_method_id if method else None,
            idempotency_key=idempotency_key or str(uuid.uuid4()),
            description=description,
        )
    except IntegrationDeclinedError as err:
        transaction.status = TransactionStatus.FAILED
        transaction.metadata_ = {"decline_reason": err.message}
        db.add(transaction)
        db.commit()
        metrics_store.increment("payments_declined_total")
        log_event(
            "payment_declined",
            user_id=str(auth.user_id),
            service_request_id=str(service_request.id),
        )
        raise

    transaction.payment_intent_id = intent.id
    if intent.status == "succeeded":
        transaction.status = TransactionStatus.COMPLETED
        transaction.processed_at = utcnow()
    else:
        transaction.status = TransactionStatus.PROCESSING
    db.add(transaction)
    db.flush()

    if transaction.status == TransactionStatus.COMPLETED:
        platform_fee = to_money(amount * Decimal(str(settings.platform_fee_rate)))
        db.add(
            MerchantEarning(
                merchant_id=service_request.merchant_id,
                transaction_id=transaction.id,
                gross_amount=amount,
                platform_fee=platform_fee,
                net_amount=amount - platform_fee,
            )
        )

    db.commit()
    db.refresh(transaction)

    metrics_store.increment("payments_processed_total")
    log_event(
        "payment_processed",
        user_id=str(auth.user_id),
        service_request_id=str(service_request.id),
    )
    return transaction


def list_transactions(db: Session, auth: AuthContext) -> list[Transaction]:
    return list(
        db.scalars(
            select(Transaction)
            .where(Transaction.user_id == auth.user_id)
            .order_by(Transaction.created_at.desc())
            .limit(settings.transactions_page_limit)
        )
    )


def list_merchant_earnings(db: Session, auth: AuthContext) -> list[MerchantEarning]:
    return list(
        db.scalars(
            select(MerchantEarning)
            .where(MerchantEarning.merchant_id == auth.user_id)
            .order_by(MerchantEarning.created_at.desc())
        )
    )
