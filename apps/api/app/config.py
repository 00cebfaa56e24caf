from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "taskrunner-jwt-secret"
ALLOWED_APP_MODES = {"development", "production"}
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Taskrunner Marketplace API"
    app_mode: str = Field(default="development", validation_alias="TASKRUNNER_APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./taskrunner.db",
        validation_alias="TASKRUNNER_DATABASE_URL",
    )
    auto_create_schema: bool = True
    cors_allowed_origins: str = "http://localhost:8081,http://localhost:19006"

    jwt_secret: str = DEFAULT_JWT_SECRET
    testing: bool = Field(default=False, validation_alias="TASKRUNNER_TESTING")

    idempotency_ttl_s: int = 24 * 60 * 60

    payment_api_base_url: str = ""
    payment_api_key: str = ""
    payment_api_timeout_s: float = 5.0
    payment_api_max_retries: int = 2
    payment_api_backoff_s: float = 0.2
    payment_currency: str = "CAD"
    platform_fee_rate: float = Field(default=0.10, ge=0, lt=1)

    default_delivery_base_fee: float = 5.00
    default_delivery_per_km_rate: float = 2.50

    transactions_page_limit: int = 50

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"TASKRUNNER_APP_MODE must be one of: {allowed}")
        return mode


settings = Settings()


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if settings.testing:
        return
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when TASKRUNNER_TESTING is false"
        )
    if len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters "
            "when TASKRUNNER_TESTING is false"
        )
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError("TASKRUNNER_DATABASE_URL must use postgres in production mode")


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
