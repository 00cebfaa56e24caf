from fastapi import APIRouter, Depends, Response, status

from app.config import settings
from app.db.session import SessionLocal
from app.integrations.payment_gateway_client import (
    PaymentGatewayProtocol,
    get_payment_gateway,
    payment_gateway_configured,
)
from app.schemas.health import HealthResponse, ReadinessDependency, ReadinessResponse
from app.services.readiness_service import (
    database_dependency_status,
    payment_gateway_dependency_status,
    safe_dependency_status,
)

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", service=settings.app_name)


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(
    response: Response,
    gateway: PaymentGatewayProtocol = Depends(get_payment_gateway),
) -> ReadinessResponse:
    dependencies = [
        ReadinessDependency(
            name="database",
            status=safe_dependency_status(
                "database", lambda: database_dependency_status(SessionLocal)
            ),
        )
    ]

    if payment_gateway_configured():
        dependencies.append(
            ReadinessDependency(
                name="payment_gateway",
                status=safe_dependency_status(
                    "payment_gateway", lambda: payment_gateway_dependency_status(gateway)
                ),
            )
        )

    readiness_status = "ok" if all(dep.status == "ok" for dep in dependencies) else "degraded"
    if readiness_status != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status=readiness_status, dependencies=dependencies)
