import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import Response

from app.config import allowed_origins, ensure_secure_runtime_settings, is_production_mode, settings
from app.db.migration_check import assert_db_is_up_to_date, maybe_create_schema
from app.db.session import engine
from app.observability import configure_logging, log_event, metrics_store, set_request_id
from app.routers.admin import router as admin_router
from app.routers.catalog import router as catalog_router
from app.routers.conversations import router as conversations_router
from app.routers.deliveries import router as deliveries_router
from app.routers.drivers import router as drivers_router
from app.routers.health import router as health_router
from app.routers.metrics import router as metrics_router
from app.routers.payments import router as payments_router
from app.routers.profiles import router as profiles_router
from app.routers.reviews import router as reviews_router
from app.routers.service_requests import router as service_requests_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    import app.models  # noqa: F401 (register all SQLAlchemy models)

    configure_logging()
    ensure_secure_runtime_settings()
    if is_production_mode():
        assert_db_is_up_to_date(engine)
    else:
        maybe_create_schema(engine)
    log_event("startup_complete")
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Marketplace API for clients, merchants, drivers and admins",
    lifespan=lifespan,
)


def custom_openapi():
    """Add HTTP Bearer auth to the schema so Swagger UI offers an Authorize button."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})
    security_schemes["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(f"http_request {request.method} {request.url.path} {response.status_code}")
    return response


app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(profiles_router)
app.include_router(catalog_router)
app.include_router(service_requests_router)
app.include_router(deliveries_router)
app.include_router(drivers_router)
app.include_router(conversations_router)
app.include_router(payments_router)
app.include_router(reviews_router)
app.include_router(admin_router)
