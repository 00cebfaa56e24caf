import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_auth_context, require_admin
from app.db.session import get_db
from app.schemas.catalog import (
    CategoryCreate,
    CategoryListResponse,
    CategoryResponse,
    ServiceCreate,
    ServiceListResponse,
    ServiceResponse,
    ServiceUpdate,
)
from app.services.catalog_service import (
    create_category,
    create_service,
    get_service,
    list_categories,
    list_services,
    update_service,
)

router = APIRouter(prefix="/api/v1", tags=["catalog"])


@router.get("/categories", response_model=CategoryListResponse, summary="List categories")
def list_categories_endpoint(db: Session = Depends(get_db)) -> CategoryListResponse:
    return CategoryListResponse(
        items=[CategoryResponse.model_validate(category) for category in list_categories(db)]
    )


@router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create category",
)
def create_category_endpoint(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> CategoryResponse:
    return CategoryResponse.model_validate(create_category(db, auth, payload))


@router.get("/services", response_model=ServiceListResponse, summary="Browse active services")
def list_services_endpoint(
    db: Session = Depends(get_db),
    category_id: uuid.UUID | None = Query(default=None),
    merchant_id: uuid.UUID | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> ServiceListResponse:
    services = list_services(
        db,
        category_id=category_id,
        merchant_id=merchant_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    return ServiceListResponse(items=[ServiceResponse.model_validate(s) for s in services])


@router.post(
    "/services",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Offer a service",
)
def create_service_endpoint(
    payload: ServiceCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ServiceResponse:
    return ServiceResponse.model_validate(create_service(db, auth, payload))


@router.get("/services/{service_id}", response_model=ServiceResponse, summary="Get service")
def get_service_endpoint(
    service_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ServiceResponse:
    return ServiceResponse.model_validate(get_service(db, auth, service_id))


@router.patch("/services/{service_id}", response_model=ServiceResponse, summary="Update service")
def update_service_endpoint(
    service_id: uuid.UUID,
    payload: ServiceUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ServiceResponse:
    return ServiceResponse.model_validate(update_service(db, auth, service_id, payload))
