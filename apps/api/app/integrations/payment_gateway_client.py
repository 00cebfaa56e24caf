import time
import uuid
from decimal import Decimal
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, Field

from app.config import settings
from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationDeclinedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)

SERVICE_NAME = "payment_gateway"


class PaymentIntent(BaseModel):
    id: str = Field(min_length=1)
    status: Literal["succeeded", "processing", "requires_action"] = "succeeded"
    amount_cents: int = Field(ge=0)
    currency: str


class PaymentGatewayProtocol(Protocol):
    def create_payment_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        payment_method_ref: str | None,
        idempotency_key: str,
        description: str | None = None,
    ) -> PaymentIntent: ...

    def ping(self) -> None: ...


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class PaymentGatewayClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.timeout_s,
            read=self.timeout_s,
            write=self.timeout_s,
            pool=self.timeout_s,
        )

    def _headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def create_payment_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        payment_method_ref: str | None,
        idempotency_key: str,
        description: str | None = None,
    ) -> PaymentIntent:
        if not self.base_url:
            raise IntegrationUnavailableError(SERVICE_NAME, "Payment gateway URL is not configured")

        body = {
            "amount": to_cents(amount),
            "currency": currency.lower(),
            "payment_method": payment_method_ref,
            "description": description,
            "confirm": True,
        }

        # The same Idempotency-Key is sent on every attempt so a retried
        # request cannot charge twice.
        for attempt in range(self.max_retries + 1):
            try:
                with httpx.Client(timeout=self._timeout()) as client:
                    response = client.post(
                        f"{self.base_url}/v1/payment_intents",
                        json=body,
                        headers=self._headers(idempotency_key),
                    )

                if response.status_code >= 500:
                    raise IntegrationUnavailableError(SERVICE_NAME, "Payment gateway returned 5xx")
                if response.status_code == 402:
                    raise IntegrationDeclinedError(SERVICE_NAME, _error_message(response))
                if response.status_code >= 400:
                    raise IntegrationBadGatewayError(
                        SERVICE_NAME,
                        f"Payment gateway returned {response.status_code}",
                    )

                try:
                    return PaymentIntent.model_validate(response.json())
                except ValueError as err:
                    raise IntegrationBadGatewayError(
                        SERVICE_NAME, "Payment gateway returned malformed payload"
                    ) from err
            except httpx.TimeoutException:
                integration_error = IntegrationTimeoutError(SERVICE_NAME)
            except httpx.TransportError as err:
                integration_error = IntegrationUnavailableError(SERVICE_NAME, str(err))
            except IntegrationUnavailableError as err:
                integration_error = err

            if attempt >= self.max_retries:
                raise integration_error

            time.sleep(self.backoff_s * (2**attempt))

        raise IntegrationUnavailableError(SERVICE_NAME)

    def ping(self) -> None:
        try:
            with httpx.Client(timeout=self._timeout()) as client:
                response = client.get(f"{self.base_url}/health", headers=self._headers())
        except httpx.TimeoutException as err:
            raise IntegrationTimeoutError(SERVICE_NAME) from err
        except httpx.TransportError as err:
            raise IntegrationUnavailableError(SERVICE_NAME, str(err)) from err
        if response.status_code >= 400:
            raise IntegrationUnavailableError(
                SERVICE_NAME, f"Payment gateway returned {response.status_code}"
            )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return "Payment declined"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return "Payment declined"


class RecordOnlyPaymentGateway:
    """Issues local intent ids without contacting a processor.

    Used when no gateway URL is configured; the payment is only recorded.
    """

    def create_payment_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        payment_method_ref: str | None,
        idempotency_key: str,
        description: str | None = None,
    ) -> PaymentIntent:
        return PaymentIntent(
            id=f"pi_local_{uuid.uuid5(uuid.NAMESPACE_URL, idempotency_key).hex}",
            status="succeeded",
            amount_cents=to_cents(amount),
            currency=currency.lower(),
        )

    def ping(self) -> None:
        return None


def payment_gateway_configured() -> bool:
    return bool(settings.payment_api_base_url.strip())


def get_payment_gateway() -> PaymentGatewayProtocol:
    if not payment_gateway_configured():
        return RecordOnlyPaymentGateway()
    return PaymentGatewayClient(
        settings.payment_api_base_url,
        api_key=settings.payment_api_key,
        timeout_s=settings.payment_api_timeout_s,
        max_retries=settings.payment_api_max_retries,
        backoff_s=settings.payment_api_backoff_s,
    )
