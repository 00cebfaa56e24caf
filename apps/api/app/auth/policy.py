"""Row-level access rules.

Every service call that reads or mutates a participant-owned row runs it
through one of these checks before touching it. Admins pass every check.
"""

import uuid

from fastapi import HTTPException, status

from app.auth.dependencies import AuthContext
from app.models.delivery import Delivery, DeliveryStatus
from app.models.messaging import Conversation
from app.models.profile import UserRole
from app.models.service_request import ServiceRequest


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def ensure_owner(auth: AuthContext, owner_id: uuid.UUID, detail: str = "Access denied") -> None:
    if auth.is_admin or owner_id == auth.user_id:
        return
    raise _forbidden(detail)


def is_request_participant(auth: AuthContext, service_request: ServiceRequest) -> bool:
    return auth.user_id in (service_request.client_id, service_request.merchant_id)


def ensure_can_view_request(auth: AuthContext, service_request: ServiceRequest) -> None:
    if auth.is_admin or is_request_participant(auth, service_request):
        return
    raise _forbidden("Access denied for this service request")


def can_view_delivery(
    auth: AuthContext, delivery: Delivery, service_request: ServiceRequest
) -> bool:
    if auth.is_admin or is_request_participant(auth, service_request):
        return True
    if auth.role != UserRole.DRIVER:
        return False
    if delivery.driver_id == auth.user_id:
        return True
    # Open deliveries are visible to every driver so one of them can claim it
    return delivery.driver_id is None and delivery.status == DeliveryStatus.PENDING


def ensure_can_view_delivery(
    auth: AuthContext, delivery: Delivery, service_request: ServiceRequest
) -> None:
    if not can_view_delivery(auth, delivery, service_request):
        raise _forbidden("Access denied for this delivery")


def ensure_conversation_participant(auth: AuthContext, conversation: Conversation) -> None:
    if auth.is_admin or auth.user_id in (conversation.client_id, conversation.merchant_id):
        return
    raise _forbidden("Access denied for this conversation")
