import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.messaging import MessageType
from app.schemas.validators import sanitize_text


class ConversationCreate(BaseModel):
    merchant_id: uuid.UUID
    service_request_id: uuid.UUID | None = None


class MessageCreate(BaseModel):
    content: str = Field(max_length=4000)
    message_type: MessageType = MessageType.TEXT
    metadata: dict = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def non_blank_content(cls, value: str) -> str:
        cleaned = sanitize_text(value) or ""
        if not cleaned:
            raise ValueError("Message content must not be blank")
        return cleaned


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    message_type: MessageType
    metadata: dict = Field(validation_alias="metadata_")
    is_read: bool
    created_at: datetime


class MessageListResponse(BaseModel):
    items: list[MessageResponse]


class LastMessage(BaseModel):
    content: str
    sender_id: uuid.UUID
    created_at: datetime


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    merchant_id: uuid.UUID
    service_request_id: uuid.UUID | None
    last_message_at: datetime
    created_at: datetime


class ConversationSummary(ConversationResponse):
    last_message: LastMessage | None = None
    unread_count: int = 0


class ConversationListResponse(BaseModel):
    items: list[ConversationSummary]


class MarkReadResponse(BaseModel):
    conversation_id: uuid.UUID
    marked_read: int
