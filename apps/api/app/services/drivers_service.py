import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.delivery import DriverLocation
from app.observability import log_event, metrics_store


def get_driver_location(db: Session, driver_id: uuid.UUID) -> DriverLocation | None:
    return db.scalar(select(DriverLocation).where(DriverLocation.driver_id == driver_id))


def is_driver_available(db: Session, driver_id: uuid.UUID) -> bool:
    location = get_driver_location(db, driver_id)
    return location is not None and location.is_available


def update_availability(
    db: Session,
    driver_id: uuid.UUID,
    available: bool,
    latitude: float | None = None,
    longitude: float | None = None,
) -> DriverLocation:
    """Upsert the driver's single status row.

    Going offline keeps the last known coordinates. Going online needs a
    position, either supplied now or already on file.
    """
    if (latitude is None) != (longitude is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="latitude and longitude must be provided together",
        )

    location = get_driver_location(db, driver_id)
    if location is None:
        location = DriverLocation(driver_id=driver_id, is_available=False)
        db.add(location)

    if latitude is not None and longitude is not None:
        location.latitude = latitude
        location.longitude = longitude

    if available and (location.latitude is None or location.longitude is None):
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Location is required to go online",
        )

    location.is_available = available
    location.updated_at = utcnow()
    db.commit()
    db.refresh(location)

    metrics_store.increment("driver_availability_updates_total")
    log_event(
        "driver_online" if available else "driver_offline",
        user_id=str(driver_id),
    )
    return location


def list_available_drivers(db: Session) -> list[DriverLocation]:
    return list(
        db.scalars(
            select(DriverLocation)
            .where(DriverLocation.is_available.is_(True))
            .order_by(DriverLocation.updated_at.desc())
        )
    )
