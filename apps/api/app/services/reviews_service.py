import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.auth.policy import is_request_participant
from app.models.review import Review
from app.models.service_request import ServiceRequest, ServiceRequestStatus
from app.observability import log_event, metrics_store
from app.schemas.review import ReviewCreate


def _duplicate_review() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="You have already reviewed this service request",
    )


def create_review(db: Session, auth: AuthContext, payload: ReviewCreate) -> Review:
    service_request = db.get(ServiceRequest, payload.service_request_id)
    if service_request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Service request not found"
        )
    if not is_request_participant(auth, service_request):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only participants of the request can review it",
        )
    if service_request.status != ServiceRequestStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only completed service requests can be reviewed",
        )

    existing = db.scalar(
        select(Review.id).where(
            Review.service_request_id == service_request.id,
            Review.reviewer_id == auth.user_id,
        )
    )
    if existing is not None:
        raise _duplicate_review()

    if auth.user_id == service_request.client_id:
        reviewed_id = service_request.merchant_id
    else:
        reviewed_id = service_request.client_id

    review = Review(
        service_request_id=service_request.id,
        reviewer_id=auth.user_id,
        reviewed_id=reviewed_id,
        rating=payload.rating,
        comment=payload.comment,
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise _duplicate_review() from err
    db.refresh(review)

    metrics_store.increment("reviews_created_total")
    log_event(
        "review_created",
        user_id=str(auth.user_id),
        service_request_id=str(service_request.id),
    )
    return review


def list_reviews_for_profile(
    db: Session, profile_id: uuid.UUID
) -> tuple[list[Review], float | None]:
    reviews = list(
        db.scalars(
            select(Review)
            .where(Review.reviewed_id == profile_id)
            .order_by(Review.created_at.desc())
        )
    )
    average = db.scalar(select(func.avg(Review.rating)).where(Review.reviewed_id == profile_id))
    return reviews, round(float(average), 2) if average is not None else None
