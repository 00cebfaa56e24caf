import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_auth_context, get_token_subject
from app.db.session import get_db
from app.schemas.profile import (
    ProfileCreate,
    ProfileResponse,
    ProfileUpdate,
    PublicProfileResponse,
)
from app.services.profiles_service import create_profile, get_profile, update_profile

router = APIRouter(prefix="/api/v1/profiles", tags=["profiles"])


@router.post(
    "",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create own profile",
)
def create_profile_endpoint(
    payload: ProfileCreate,
    subject: uuid.UUID = Depends(get_token_subject),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    return ProfileResponse.model_validate(create_profile(db, subject, payload))


@router.get("/me", response_model=ProfileResponse, summary="Get own profile")
def get_me_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ProfileResponse:
    return ProfileResponse.model_validate(get_profile(db, auth.user_id))


@router.patch("/me", response_model=ProfileResponse, summary="Update own profile")
def update_me_endpoint(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ProfileResponse:
    return ProfileResponse.model_validate(update_profile(db, auth.user_id, payload))


@router.get("/{profile_id}", response_model=PublicProfileResponse, summary="Get public profile")
def get_public_profile_endpoint(
    profile_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> PublicProfileResponse:
    return PublicProfileResponse.model_validate(get_profile(db, profile_id))
