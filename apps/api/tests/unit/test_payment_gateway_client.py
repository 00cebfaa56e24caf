from decimal import Decimal

import httpx
import pytest

from app.config import settings
from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationDeclinedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)
from app.integrations.payment_gateway_client import (
    PaymentGatewayClient,
    RecordOnlyPaymentGateway,
    get_payment_gateway,
    to_cents,
)


class _Response:
    def __init__(self, status_code: int, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _ClientStub:
    def __init__(self, post_sequence=None, get_sequence=None, seen=None):
        self._post_sequence = post_sequence or []
        self._get_sequence = get_sequence or []
        self.seen = seen if seen is not None else []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def post(self, url, json, headers):
        self.seen.append({"url": url, "json": json, "headers": headers})
        value = self._post_sequence.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def get(self, url, headers):
        self.seen.append({"url": url, "headers": headers})
        value = self._get_sequence.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def _intent_payload(status: str = "succeeded") -> dict:
    return {"id": "pi_123", "status": status, "amount_cents": 4000, "currency": "cad"}


def _client(max_retries: int = 0) -> PaymentGatewayClient:
    return PaymentGatewayClient(
        "http://payments/", api_key="sk_test", timeout_s=0.1, max_retries=max_retries, backoff_s=0
    )


def _charge(client: PaymentGatewayClient, key: str = "idem-1"):
    return client.create_payment_intent(
        amount=Decimal("40.00"),
        currency="CAD",
        payment_method_ref="pm_visa",
        idempotency_key=key,
        description="Payment",
    )


def test_to_cents_converts_decimal_amounts():
    assert to_cents(Decimal("40.00")) == 4000
    assert to_cents(Decimal("0.05")) == 5


def test_retries_reuse_the_same_idempotency_key(monkeypatch):
    seen: list[dict] = []
    sequence = [httpx.ReadTimeout("timeout"), _Response(503, {}), _Response(200, _intent_payload())]
    monkeypatch.setattr(
        "app.integrations.payment_gateway_client.httpx.Client",
        lambda timeout: _ClientStub(post_sequence=sequence, seen=seen),
    )

    intent = _charge(_client(max_retries=2), key="order-77")

    assert intent.id == "pi_123"
    assert len(seen) == 3
    assert {call["headers"]["Idempotency-Key"] for call in seen} == {"order-77"}
    assert seen[0]["url"] == "http://payments/v1/payment_intents"
    assert seen[0]["json"]["amount"] == 4000
    assert seen[0]["json"]["currency"] == "cad"
    assert seen[0]["headers"]["Authorization"] == "Bearer sk_test"


def test_timeout_after_retries_is_raised(monkeypatch):
    monkeypatch.setattr(
        "app.integrations.payment_gateway_client.httpx.Client",
        lambda timeout: _ClientStub(post_sequence=[httpx.ReadTimeout("timeout")]),
    )

    with pytest.raises(IntegrationTimeoutError):
        _charge(_client())


def test_persistent_5xx_is_unavailable(monkeypatch):
    monkeypatch.setattr(
        "app.integrations.payment_gateway_client.httpx.Client",
        lambda timeout: _ClientStub(post_sequence=[_Response(502, {}), _Response(500, {})]),
    )

    with pytest.raises(IntegrationUnavailableError):
        _charge(_client(max_retries=1))


def test_402_is_a_decline_with_the_processor_message(monkeypatch):
    calls: list[dict] = []
    monkeypatch.setattr(
        "app.integrations.payment_gateway_client.httpx.Client",
        lambda timeout: _ClientStub(
            post_sequence=[_Response(402, {"error": {"message": "Insufficient funds"}})],
            seen=calls,
        ),
    )

    with pytest.raises(IntegrationDeclinedError) as exc:
        _charge(_client(max_retries=3))

    assert exc.value.message == "Insufficient funds"
    assert exc.value.retryable is False
    assert len(calls) == 1


def test_other_4xx_maps_to_bad_gateway(monkeypatch):
    monkeypatch.setattr(
        "app.integrations.payment_gateway_client.httpx.Client",
        lambda timeout: _ClientStub(post_sequence=[_Response(422, {})]),
    )

    with pytest.raises(IntegrationBadGatewayError):
        _charge(_client(max_retries=2))


def test_malformed_payload_maps_to_bad_gateway(monkeypatch):
    monkeypatch.setattr(
        "app.integrations.payment_gateway_client.httpx.Client",
        lambda timeout: _ClientStub(post_sequence=[_Response(200, {"status": "succeeded"})]),
    )

    with pytest.raises(IntegrationBadGatewayError):
        _charge(_client())


def test_ping_reports_unhealthy_gateway(monkeypatch):
    monkeypatch.setattr(
        "app.integrations.payment_gateway_client.httpx.Client",
        lambda timeout: _ClientStub(get_sequence=[_Response(503, {})]),
    )

    with pytest.raises(IntegrationUnavailableError):
        _client().ping()


def test_missing_base_url_is_unavailable():
    client = PaymentGatewayClient("", api_key="", timeout_s=0.1, max_retries=0, backoff_s=0)

    with pytest.raises(IntegrationUnavailableError):
        _charge(client)


def test_record_only_gateway_is_deterministic_per_key():
    gateway = RecordOnlyPaymentGateway()

    first = _charge(gateway, key="same")
    second = _charge(gateway, key="same")

    assert first.id == second.id
    assert first.id.startswith("pi_local_")
    assert first.amount_cents == 4000
    assert _charge(gateway, key="other").id != first.id


def test_gateway_selection_follows_configuration(monkeypatch):
    monkeypatch.setattr(settings, "payment_api_base_url", "")
    assert isinstance(get_payment_gateway(), RecordOnlyPaymentGateway)

    monkeypatch.setattr(settings, "payment_api_base_url", "http://payments")
    assert isinstance(get_payment_gateway(), PaymentGatewayClient)
