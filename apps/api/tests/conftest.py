import os
import threading
import uuid
from decimal import Decimal

os.environ.setdefault("TASKRUNNER_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("TASKRUNNER_TESTING", "true")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import app.models  # noqa: F401,E402
from app.auth.dependencies import AuthContext  # noqa: E402
from app.auth.jwt import issue_jwt  # noqa: E402
from app.config import settings  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import engine as app_engine  # noqa: E402
from app.db.session import get_db  # noqa: E402
from app.integrations.payment_gateway_client import (  # noqa: E402
    PaymentIntent,
    get_payment_gateway,
    to_cents,
)
from app.main import app  # noqa: E402
from app.models.catalog import Service  # noqa: E402
from app.models.profile import Profile, UserRole  # noqa: E402
from app.observability import metrics_store  # noqa: E402
from app.schemas.service_request import ServiceRequestCreate  # noqa: E402
from app.services.drivers_service import update_availability  # noqa: E402
from app.services.requests_service import create_service_request  # noqa: E402

testing_session_local = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=app_engine
)

PICKUP = {"address": "1 Market St", "latitude": 45.5017, "longitude": -73.5673}
DROPOFF = {"address": "99 Rue Ste-Catherine", "latitude": 45.5088, "longitude": -73.5540}


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture
def db_session():
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


class FakePaymentGateway:
    """Records intents instead of calling a processor; set ``error`` to fail the next call."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.error: Exception | None = None
        self.intent_status = "succeeded"

    def create_payment_intent(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return PaymentIntent(
            id=f"pi_test_{len(self.calls)}",
            status=self.intent_status,
            amount_cents=to_cents(kwargs["amount"]),
            currency=kwargs["currency"].lower(),
        )

    def ping(self) -> None:
        return None


@pytest.fixture
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture
def client(db_session, payment_gateway):
    db_session_lock = threading.Lock()

    def override_get_db():
        if db_session_lock.acquire(blocking=False):
            try:
                yield db_session
            finally:
                db_session_lock.release()
            return

        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_profile(db_session):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.CLIENT, username: str | None = None, **fields) -> Profile:
        counter["n"] += 1
        profile = Profile(
            id=uuid.uuid4(),
            username=username or f"{role.value}_{counter['n']}",
            role=role,
            **fields,
        )
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make


def _auth_for(profile: Profile) -> AuthContext:
    return AuthContext(user_id=profile.id, role=profile.role, username=profile.username)


def _headers_for(profile: Profile) -> dict[str, str]:
    token = issue_jwt(str(profile.id), settings.jwt_secret)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_for():
    return _auth_for


@pytest.fixture
def headers_for():
    return _headers_for


@pytest.fixture
def people(make_profile):
    return {
        "client": make_profile(UserRole.CLIENT, "client_a"),
        "other_client": make_profile(UserRole.CLIENT, "client_b"),
        "merchant": make_profile(UserRole.MERCHANT, "merchant_a"),
        "other_merchant": make_profile(UserRole.MERCHANT, "merchant_b"),
        "driver": make_profile(UserRole.DRIVER, "driver_a"),
        "other_driver": make_profile(UserRole.DRIVER, "driver_b"),
        "admin": make_profile(UserRole.ADMIN, "admin_a"),
    }


@pytest.fixture
def make_service(db_session):
    def _make(merchant: Profile, *, requires_delivery: bool = True, price: str = "40.00", **fields):
        service = Service(
            merchant_id=merchant.id,
            title=fields.pop("title", "Grocery run"),
            price=Decimal(price),
            requires_delivery=requires_delivery,
            **fields,
        )
        db_session.add(service)
        db_session.commit()
        return service

    return _make


@pytest.fixture
def make_request(db_session):
    def _make(client_profile: Profile, service: Service, with_delivery: bool = True):
        payload = {"service_id": str(service.id)}
        if with_delivery:
            payload["delivery"] = {"pickup_location": PICKUP, "delivery_location": DROPOFF}
        return create_service_request(
            db_session, _auth_for(client_profile), ServiceRequestCreate.model_validate(payload)
        )

    return _make


@pytest.fixture
def go_online(db_session):
    def _go(driver: Profile):
        return update_availability(
            db_session, driver.id, True, latitude=PICKUP["latitude"], longitude=PICKUP["longitude"]
        )

    return _go
