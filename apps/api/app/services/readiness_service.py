import logging
from collections.abc import Callable
from typing import Literal

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.integrations.errors import IntegrationError
from app.integrations.payment_gateway_client import PaymentGatewayProtocol
from app.observability import log_event, metrics_store

ReadinessStatus = Literal["ok", "error"]


def safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    metrics_store.increment("readiness_dependency_checked_total")
    try:
        result = checker()
    except Exception as exc:  # readiness fails closed to degraded
        metrics_store.increment("readiness_dependency_error_total")
        log_event(
            f"readiness_dependency_check_failed:{dependency_name}:{type(exc).__name__}",
            level=logging.WARNING,
        )
        return "error"

    if result != "ok":
        metrics_store.increment("readiness_dependency_error_total")
        return "error"
    return "ok"


def database_dependency_status(session_factory: Callable[[], Session]) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "error"
    return "ok"


def payment_gateway_dependency_status(gateway: PaymentGatewayProtocol) -> ReadinessStatus:
    try:
        gateway.ping()
    except IntegrationError:
        return "error"
    return "ok"
