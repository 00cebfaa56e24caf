import uuid

from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_auth_context
from app.db.session import get_db
from app.schemas.messaging import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    ConversationSummary,
    MarkReadResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
)
from app.services.idempotency_service import (
    build_scope,
    check_idempotency,
    save_idempotency_result,
    validate_idempotency_key,
)
from app.services.messaging_service import (
    get_or_create_conversation,
    list_conversations,
    list_messages,
    mark_conversation_read,
    send_message,
)

router = APIRouter(prefix="/api/v1/conversations", tags=["messaging"])


@router.post(
    "",
    response_model=ConversationResponse,
    responses={status.HTTP_201_CREATED: {"model": ConversationResponse}},
    summary="Open (or reuse) a conversation with a merchant",
)
def open_conversation_endpoint(
    payload: ConversationCreate,
    response: Response,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ConversationResponse:
    conversation, created = get_or_create_conversation(
        db, auth, payload.merchant_id, payload.service_request_id
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return ConversationResponse.model_validate(conversation)


@router.get("", response_model=ConversationListResponse, summary="List own conversations")
def list_conversations_endpoint(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ConversationListResponse:
    return ConversationListResponse(
        items=[ConversationSummary.model_validate(item) for item in list_conversations(db, auth)]
    )


@router.get(
    "/{conversation_id}/messages",
    response_model=MessageListResponse,
    summary="List messages",
)
def list_messages_endpoint(
    conversation_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> MessageListResponse:
    messages = list_messages(db, auth, conversation_id)
    return MessageListResponse(items=[MessageResponse.model_validate(m) for m in messages])


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
def send_message_endpoint(
    conversation_id: uuid.UUID,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    auth: AuthContext = Depends(get_auth_context),
) -> MessageResponse:
    idempotency_key = validate_idempotency_key(idempotency_key)
    request_payload = payload.model_dump(mode="json")
    route_scope = build_scope("POST:/api/v1/conversations/messages", resource_id=conversation_id)

    if idempotency_key:
        idem = check_idempotency(
            db=db,
            user_id=auth.user_id,
            route=route_scope,
            idempotency_key=idempotency_key,
            request_payload=request_payload,
        )
        if idem.replay and idem.response_payload:
            return MessageResponse.model_validate(idem.response_payload)

    message = send_message(db, auth, conversation_id, payload)
    response_payload = MessageResponse.model_validate(message).model_dump(mode="json")

    if idempotency_key:
        save_idempotency_result(
            db=db,
            user_id=auth.user_id,
            route=route_scope,
            idempotency_key=idempotency_key,
            request_payload=request_payload,
            response_payload=response_payload,
        )
    return MessageResponse.model_validate(response_payload)


@router.post(
    "/{conversation_id}/read",
    response_model=MarkReadResponse,
    summary="Mark the other party's messages as read",
)
def mark_read_endpoint(
    conversation_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> MarkReadResponse:
    changed = mark_conversation_read(db, auth, conversation_id)
    return MarkReadResponse(conversation_id=conversation_id, marked_read=changed)
