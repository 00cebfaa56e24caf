import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_auth_context
from app.db.session import get_db
from app.schemas.review import ReviewCreate, ReviewListResponse, ReviewResponse
from app.services.profiles_service import get_profile
from app.services.reviews_service import create_review, list_reviews_for_profile

router = APIRouter(prefix="/api/v1", tags=["reviews"])


@router.post(
    "/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review the other party of a completed request",
)
def create_review_endpoint(
    payload: ReviewCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ReviewResponse:
    return ReviewResponse.model_validate(create_review(db, auth, payload))


@router.get(
    "/profiles/{profile_id}/reviews",
    response_model=ReviewListResponse,
    summary="Reviews received by a profile",
)
def list_profile_reviews_endpoint(
    profile_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> ReviewListResponse:
    get_profile(db, profile_id)
    reviews, average = list_reviews_for_profile(db, profile_id)
    return ReviewListResponse(
        items=[ReviewResponse.model_validate(review) for review in reviews],
        average_rating=average,
        total=len(reviews),
    )
