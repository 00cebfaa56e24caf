from app.schemas.delivery import (
    DeliveryEventListResponse,
    DeliveryEventResponse,
    DeliveryListResponse,
    DeliveryResponse,
)
from app.schemas.service_request import (
    ServiceRequestCreate,
    ServiceRequestListResponse,
    ServiceRequestResponse,
)

__all__ = [
    "DeliveryResponse",
    "DeliveryListResponse",
    "DeliveryEventResponse",
    "DeliveryEventListResponse",
    "ServiceRequestCreate",
    "ServiceRequestResponse",
    "ServiceRequestListResponse",
]
