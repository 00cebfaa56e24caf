import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, require_admin
from app.db.session import get_db
from app.models.profile import UserRole
from app.schemas.admin import (
    ActiveUpdateRequest,
    AdminActionListResponse,
    AdminActionResponse,
    AnalyticsPeriod,
    AnalyticsResponse,
    RoleUpdateRequest,
)
from app.schemas.delivery import (
    DeliveryZoneCreate,
    DeliveryZoneListResponse,
    DeliveryZoneResponse,
)
from app.schemas.profile import ProfileListResponse, ProfileResponse
from app.services.admin_service import (
    analytics,
    create_zone,
    list_admin_actions,
    list_users,
    list_zones,
    set_user_active,
    set_user_role,
)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/users", response_model=ProfileListResponse, summary="Search users")
def list_users_endpoint(
    db: Session = Depends(get_db),
    search: str | None = Query(default=None, max_length=100),
    role: UserRole | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _auth: AuthContext = Depends(require_admin),
) -> ProfileListResponse:
    users = list_users(db, search=search, role=role, limit=limit, offset=offset)
    return ProfileListResponse(items=[ProfileResponse.model_validate(user) for user in users])


@router.patch("/users/{user_id}/role", response_model=ProfileResponse, summary="Change role")
def change_role_endpoint(
    user_id: uuid.UUID,
    payload: RoleUpdateRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ProfileResponse:
    return ProfileResponse.model_validate(set_user_role(db, auth, user_id, payload.role))


@router.patch(
    "/users/{user_id}/active",
    response_model=ProfileResponse,
    summary="Activate or deactivate a user",
)
def change_active_endpoint(
    user_id: uuid.UUID,
    payload: ActiveUpdateRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ProfileResponse:
    return ProfileResponse.model_validate(set_user_active(db, auth, user_id, payload.is_active))


@router.get("/actions", response_model=AdminActionListResponse, summary="Admin audit log")
def list_actions_endpoint(
    db: Session = Depends(get_db),
    limit: int = Query(default=100, ge=1, le=500),
    _auth: AuthContext = Depends(require_admin),
) -> AdminActionListResponse:
    return AdminActionListResponse(
        items=[AdminActionResponse.model_validate(a) for a in list_admin_actions(db, limit)]
    )


@router.get("/analytics", response_model=AnalyticsResponse, summary="Marketplace analytics")
def analytics_endpoint(
    db: Session = Depends(get_db),
    period: AnalyticsPeriod = Query(default="month"),
    _auth: AuthContext = Depends(require_admin),
) -> AnalyticsResponse:
    return AnalyticsResponse.model_validate(analytics(db, period))


@router.get("/zones", response_model=DeliveryZoneListResponse, summary="List delivery zones")
def list_zones_endpoint(
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> DeliveryZoneListResponse:
    return DeliveryZoneListResponse(
        items=[DeliveryZoneResponse.model_validate(zone) for zone in list_zones(db)]
    )


@router.post(
    "/zones",
    response_model=DeliveryZoneResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create delivery zone",
)
def create_zone_endpoint(
    payload: DeliveryZoneCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> DeliveryZoneResponse:
    return DeliveryZoneResponse.model_validate(create_zone(db, auth, payload))
