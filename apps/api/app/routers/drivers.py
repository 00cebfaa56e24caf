from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, require_driver, require_roles
from app.db.session import get_db
from app.models.profile import UserRole
from app.schemas.delivery import (
    DriverAvailabilityUpdate,
    DriverStatusListResponse,
    DriverStatusResponse,
)
from app.services.drivers_service import (
    get_driver_location,
    list_available_drivers,
    update_availability,
)

router = APIRouter(prefix="/api/v1/drivers", tags=["drivers"])


@router.get("/me/status", response_model=DriverStatusResponse, summary="Own driver status")
def get_own_status_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_driver),
) -> DriverStatusResponse:
    location = get_driver_location(db, auth.user_id)
    if location is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No availability recorded yet"
        )
    return DriverStatusResponse.model_validate(location)


@router.put(
    "/me/availability",
    response_model=DriverStatusResponse,
    summary="Go online or offline",
)
def update_availability_endpoint(
    payload: DriverAvailabilityUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_driver),
) -> DriverStatusResponse:
    location = update_availability(
        db,
        auth.user_id,
        payload.available,
        latitude=payload.latitude,
        longitude=payload.longitude,
    )
    return DriverStatusResponse.model_validate(location)


@router.get(
    "/available",
    response_model=DriverStatusListResponse,
    summary="List available drivers",
)
def list_available_drivers_endpoint(
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_roles(UserRole.MERCHANT, UserRole.ADMIN)),
) -> DriverStatusListResponse:
    return DriverStatusListResponse(
        items=[DriverStatusResponse.model_validate(row) for row in list_available_drivers(db)]
    )
