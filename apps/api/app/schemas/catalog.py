import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.catalog import PriceType
from app.schemas.validators import sanitize_text


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    icon_url: str | None = Field(default=None, max_length=1024)

    @field_validator("name", "description")
    @classmethod
    def clean_text(cls, value: str | None) -> str | None:
        return sanitize_text(value)


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None
    icon_url: str | None
    is_active: bool


class CategoryListResponse(BaseModel):
    items: list[CategoryResponse]


class ServiceCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    category_id: uuid.UUID | None = None
    price: float | None = Field(default=None, gt=0)
    price_type: PriceType = PriceType.FIXED
    duration_minutes: int = Field(default=60, gt=0, le=24 * 60)
    requires_delivery: bool = False
    service_area: str | None = Field(default=None, max_length=255)
    images: list[str] = Field(default_factory=list, max_length=10)

    @field_validator("title", "description", "service_area")
    @classmethod
    def clean_text(cls, value: str | None) -> str | None:
        return sanitize_text(value)


class ServiceUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category_id: uuid.UUID | None = None
    price: float | None = Field(default=None, gt=0)
    price_type: PriceType | None = None
    duration_minutes: int | None = Field(default=None, gt=0, le=24 * 60)
    requires_delivery: bool | None = None
    service_area: str | None = Field(default=None, max_length=255)
    images: list[str] | None = Field(default=None, max_length=10)
    is_active: bool | None = None

    @field_validator("title", "description", "service_area")
    @classmethod
    def clean_text(cls, value: str | None) -> str | None:
        return sanitize_text(value)


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    merchant_id: uuid.UUID
    category_id: uuid.UUID | None
    title: str
    description: str | None
    price: float | None
    price_type: PriceType
    duration_minutes: int
    is_active: bool
    requires_delivery: bool
    service_area: str | None
    images: list[str]
    created_at: datetime
    updated_at: datetime


class ServiceListResponse(BaseModel):
    items: list[ServiceResponse]
