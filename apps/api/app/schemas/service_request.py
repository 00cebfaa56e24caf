import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.service_request import ServiceRequestStatus
from app.schemas.common import LocationPayload
from app.schemas.validators import sanitize_text


class DeliveryDetails(BaseModel):
    pickup_location: LocationPayload
    delivery_location: LocationPayload
    zone_id: uuid.UUID | None = None


class ServiceRequestCreate(BaseModel):
    service_id: uuid.UUID
    description: str | None = Field(default=None, max_length=2000)
    scheduled_date: datetime | None = None
    location: LocationPayload | None = None
    delivery: DeliveryDetails | None = None

    @field_validator("description")
    @classmethod
    def clean_description(cls, value: str | None) -> str | None:
        return sanitize_text(value) or None


class ServiceRequestStatusUpdate(BaseModel):
    status: ServiceRequestStatus


class ServiceRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    merchant_id: uuid.UUID
    service_id: uuid.UUID
    status: ServiceRequestStatus
    description: str | None
    scheduled_date: datetime | None
    location: dict | None
    price_quoted: float | None
    created_at: datetime
    updated_at: datetime


class ServiceRequestListResponse(BaseModel):
    items: list[ServiceRequestResponse]
