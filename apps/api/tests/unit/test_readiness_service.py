from sqlalchemy.exc import OperationalError

from app.db.session import SessionLocal
from app.integrations.errors import IntegrationUnavailableError
from app.observability import metrics_store
from app.services.readiness_service import (
    database_dependency_status,
    payment_gateway_dependency_status,
    safe_dependency_status,
)


class _BrokenSession:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, _statement):
        raise OperationalError("SELECT 1", {}, Exception("db down"))


class _Gateway:
    def __init__(self, error=None):
        self.error = error

    def ping(self):
        if self.error is not None:
            raise self.error


def test_database_status_ok_against_test_engine():
    assert database_dependency_status(SessionLocal) == "ok"


def test_database_status_error_when_query_fails():
    assert database_dependency_status(_BrokenSession) == "error"


def test_payment_gateway_status_reflects_ping():
    assert payment_gateway_dependency_status(_Gateway()) == "ok"
    assert (
        payment_gateway_dependency_status(_Gateway(IntegrationUnavailableError("payment_gateway")))
        == "error"
    )


def test_safe_dependency_status_turns_crashes_into_errors():
    def _boom():
        raise ValueError("unexpected")

    assert safe_dependency_status("payment_gateway", _boom) == "error"
    counters = metrics_store.snapshot().counters
    assert counters["readiness_dependency_checked_total"] == 1
    assert counters["readiness_dependency_error_total"] == 1
