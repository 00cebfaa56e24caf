import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.auth.policy import ensure_conversation_participant
from app.models.messaging import Conversation, Message
from app.models.profile import Profile, UserRole
from app.models.service_request import ServiceRequest
from app.observability import log_event, metrics_store
from app.schemas.messaging import MessageCreate


def get_conversation_row(db: Session, conversation_id: uuid.UUID) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


def get_or_create_conversation(
    db: Session,
    auth: AuthContext,
    merchant_id: uuid.UUID,
    service_request_id: uuid.UUID | None = None,
) -> tuple[Conversation, bool]:
    """Return the client/merchant thread, creating it on first contact."""
    if auth.role != UserRole.CLIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only clients can start conversations",
        )

    merchant = db.get(Profile, merchant_id)
    if merchant is None or merchant.role != UserRole.MERCHANT or not merchant.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Merchant not found")

    if service_request_id is not None:
        service_request = db.get(ServiceRequest, service_request_id)
        if (
            service_request is None
            or service_request.client_id != auth.user_id
            or service_request.merchant_id != merchant_id
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Service request does not belong to this conversation",
            )

    query = select(Conversation).where(
        Conversation.client_id == auth.user_id,
        Conversation.merchant_id == merchant_id,
    )
    if service_request_id is None:
        query = query.where(Conversation.service_request_id.is_(None))
    else:
        query = query.where(Conversation.service_request_id == service_request_id)

    existing = db.scalar(query)
    if existing is not None:
        return existing, False

    conversation = Conversation(
        client_id=auth.user_id,
        merchant_id=merchant_id,
        service_request_id=service_request_id,
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)

    metrics_store.increment("conversations_created_total")
    log_event(
        "conversation_created",
        user_id=str(auth.user_id),
        conversation_id=str(conversation.id),
    )
    return conversation, True


def list_conversations(db: Session, auth: AuthContext) -> list[dict[str, Any]]:
    conversations = db.scalars(
        select(Conversation)
        .where(
            or_(
                Conversation.client_id == auth.user_id,
                Conversation.merchant_id == auth.user_id,
            )
        )
        .order_by(Conversation.last_message_at.desc())
    ).all()

    summaries: list[dict[str, Any]] = []
    for conversation in conversations:
        last_message = db.scalar(
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at.desc())
            .limit(1)
        )
        unread_count = db.scalar(
            select(func.count(Message.id)).where(
                Message.conversation_id == conversation.id,
                Message.sender_id != auth.user_id,
                Message.is_read.is_(False),
            )
        )
        summaries.append(
            {
                "id": conversation.id,
                "client_id": conversation.client_id,
                "merchant_id": conversation.merchant_id,
                "service_request_id": conversation.service_request_id,
                "last_message_at": conversation.last_message_at,
                "created_at": conversation.created_at,
                "last_message": (
                    {
                        "content": last_message.content,
                        "sender_id": last_message.sender_id,
                        "created_at": last_message.created_at,
                    }
                    if last_message is not None
                    else None
                ),
                "unread_count": unread_count or 0,
            }
        )
    return summaries


def list_messages(db: Session, auth: AuthContext, conversation_id: uuid.UUID) -> list[Message]:
    conversation = get_conversation_row(db, conversation_id)
    ensure_conversation_participant(auth, conversation)
    return list(
        db.scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
        )
    )


def send_message(
    db: Session, auth: AuthContext, conversation_id: uuid.UUID, payload: MessageCreate
) -> Message:
    conversation = get_conversation_row(db, conversation_id)
    if auth.user_id not in (conversation.client_id, conversation.merchant_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only participants can post in this conversation",
        )

    message = Message(
        conversation_id=conversation.id,
        sender_id=auth.user_id,
        content=payload.content,
        message_type=payload.message_type,
        metadata_=payload.metadata,
    )
    db.add(message)
    db.flush()
    conversation.last_message_at = message.created_at
    db.commit()
    db.refresh(message)

    metrics_store.increment("messages_sent_total")
    log_event("message_sent", user_id=str(auth.user_id), conversation_id=str(conversation.id))
    return message


def mark_conversation_read(db: Session, auth: AuthContext, conversation_id: uuid.UUID) -> int:
    """Mark the other party's messages as read; returns how many changed."""
    conversation = get_conversation_row(db, conversation_id)
    if auth.user_id not in (conversation.client_id, conversation.merchant_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only participants can mark messages as read",
        )

    result = db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id != auth.user_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(result.rowcount or 0)
