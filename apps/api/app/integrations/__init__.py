from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationDeclinedError,
    IntegrationError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)

__all__ = [
    "IntegrationError",
    "IntegrationTimeoutError",
    "IntegrationUnavailableError",
    "IntegrationBadGatewayError",
    "IntegrationDeclinedError",
]
