import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.delivery import DeliveryStatus
from app.schemas.validators import sanitize_text


class DeliveryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    service_request_id: uuid.UUID
    driver_id: uuid.UUID | None
    pickup_location: dict
    delivery_location: dict
    status: DeliveryStatus
    estimated_delivery_time: datetime | None
    actual_delivery_time: datetime | None
    delivery_fee: float | None
    distance_km: float | None
    driver_notes: str | None
    available_actions: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class DeliveryListResponse(BaseModel):
    items: list[DeliveryResponse]


class DeliveryAdvanceRequest(BaseModel):
    status: DeliveryStatus
    driver_notes: str | None = Field(default=None, max_length=1000)

    @field_validator("driver_notes")
    @classmethod
    def clean_notes(cls, value: str | None) -> str | None:
        return sanitize_text(value)


class DeliveryCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class DeliveryEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    delivery_id: uuid.UUID
    actor_id: uuid.UUID | None
    type: DeliveryStatus
    message: str
    payload: dict
    created_at: datetime


class DeliveryEventListResponse(BaseModel):
    items: list[DeliveryEventResponse]


class DriverAvailabilityUpdate(BaseModel):
    available: bool
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class DriverStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    driver_id: uuid.UUID
    latitude: float | None
    longitude: float | None
    is_available: bool
    updated_at: datetime


class DriverStatusListResponse(BaseModel):
    items: list[DriverStatusResponse]


class DeliveryZoneCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    coordinates: list[list[float]] = Field(default_factory=list)
    base_fee: float = Field(default=5.00, ge=0)
    per_km_rate: float = Field(default=2.50, ge=0)


class DeliveryZoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    coordinates: list
    base_fee: float
    per_km_rate: float
    is_active: bool


class DeliveryZoneListResponse(BaseModel):
    items: list[DeliveryZoneResponse]
