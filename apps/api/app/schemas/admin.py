import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from app.models.profile import UserRole

AnalyticsPeriod = Literal["week", "month"]


class RoleUpdateRequest(BaseModel):
    role: UserRole


class ActiveUpdateRequest(BaseModel):
    is_active: bool


class AdminActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    admin_id: uuid.UUID
    action_type: str
    target_type: str | None
    target_id: uuid.UUID | None
    description: str
    created_at: datetime


class AdminActionListResponse(BaseModel):
    items: list[AdminActionResponse]


class GrowthBucket(BaseModel):
    period_start: datetime
    count: int


class CategoryMetric(BaseModel):
    category: str
    count: int
    revenue: float


class TopService(BaseModel):
    service_id: uuid.UUID
    title: str
    bookings: int
    revenue: float


class AnalyticsResponse(BaseModel):
    period: AnalyticsPeriod
    user_growth: list[GrowthBucket]
    service_metrics: list[CategoryMetric]
    top_services: list[TopService]
