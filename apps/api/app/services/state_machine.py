from fastapi import HTTPException, status

from app.models.delivery import DeliveryStatus
from app.models.service_request import ServiceRequestStatus

# Forward path a driver walks a delivery through, one step at a time
DELIVERY_SEQUENCE: tuple[DeliveryStatus, ...] = (
    DeliveryStatus.PENDING,
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.DELIVERED,
)

DELIVERY_TERMINAL_STATES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED})

DELIVERY_STATE_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELLED},
    DeliveryStatus.ASSIGNED: {DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED},
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.CANCELLED: set(),
}

SERVICE_REQUEST_TERMINAL_STATES = frozenset(
    {ServiceRequestStatus.COMPLETED, ServiceRequestStatus.CANCELLED}
)

SERVICE_REQUEST_TRANSITIONS: dict[ServiceRequestStatus, set[ServiceRequestStatus]] = {
    ServiceRequestStatus.PENDING: {ServiceRequestStatus.ACCEPTED, ServiceRequestStatus.CANCELLED},
    ServiceRequestStatus.ACCEPTED: {
        ServiceRequestStatus.IN_PROGRESS,
        ServiceRequestStatus.COMPLETED,
        ServiceRequestStatus.CANCELLED,
    },
    ServiceRequestStatus.IN_PROGRESS: {
        ServiceRequestStatus.COMPLETED,
        ServiceRequestStatus.CANCELLED,
    },
    ServiceRequestStatus.COMPLETED: set(),
    ServiceRequestStatus.CANCELLED: set(),
}


def _invalid_transition(current: str, next_status: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Invalid state transition: {current} -> {next_status}",
    )


def next_delivery_status(current: DeliveryStatus) -> DeliveryStatus | None:
    """Immediate forward successor of ``current``, or None at the end of the path."""
    if current not in DELIVERY_SEQUENCE:
        return None
    index = DELIVERY_SEQUENCE.index(current)
    if index + 1 >= len(DELIVERY_SEQUENCE):
        return None
    return DELIVERY_SEQUENCE[index + 1]


def ensure_valid_delivery_transition(current: DeliveryStatus, next_status: DeliveryStatus) -> None:
    if next_status not in DELIVERY_STATE_TRANSITIONS.get(current, set()):
        raise _invalid_transition(current.value, next_status.value)


def ensure_valid_request_transition(
    current: ServiceRequestStatus, next_status: ServiceRequestStatus
) -> None:
    if next_status not in SERVICE_REQUEST_TRANSITIONS.get(current, set()):
        raise _invalid_transition(current.value, next_status.value)
