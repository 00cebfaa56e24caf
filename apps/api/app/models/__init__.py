# Import SQLAlchemy models so they register on Base.metadata
from app.models.admin_action import AdminAction  # noqa: F401
from app.models.catalog import Category, PriceType, Service  # noqa: F401
from app.models.delivery import (  # noqa: F401
    Delivery,
    DeliveryStatus,
    DeliveryZone,
    DriverLocation,
)
from app.models.delivery_event import DeliveryEvent  # noqa: F401
from app.models.idempotency_record import IdempotencyRecord  # noqa: F401
from app.models.messaging import Conversation, Message, MessageType  # noqa: F401
from app.models.payment import (  # noqa: F401
    MerchantEarning,
    PaymentMethod,
    PaymentMethodType,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from app.models.profile import Profile, UserRole  # noqa: F401
from app.models.review import Review  # noqa: F401
from app.models.service_request import ServiceRequest, ServiceRequestStatus  # noqa: F401
