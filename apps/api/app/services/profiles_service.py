import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.profile import Profile, UserRole
from app.observability import log_event, metrics_store
from app.schemas.profile import ProfileCreate, ProfileUpdate


def get_profile(db: Session, profile_id: uuid.UUID) -> Profile:
    profile = db.get(Profile, profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile


def create_profile(db: Session, subject: uuid.UUID, payload: ProfileCreate) -> Profile:
    """Create the caller's profile; the id is the verified token subject."""
    if db.get(Profile, subject) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Profile already exists")
    if db.scalar(select(Profile.id).where(Profile.username == payload.username)) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken")

    profile = Profile(
        id=subject,
        username=payload.username,
        role=UserRole(payload.role),
        full_name=payload.full_name,
        phone=payload.phone,
        avatar_url=payload.avatar_url,
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Username already taken"
        ) from err
    db.refresh(profile)

    metrics_store.increment("profiles_created_total")
    log_event("profile_created", user_id=str(profile.id))
    return profile


def update_profile(db: Session, profile_id: uuid.UUID, payload: ProfileUpdate) -> Profile:
    profile = get_profile(db, profile_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)
    log_event("profile_updated", user_id=str(profile.id))
    return profile
