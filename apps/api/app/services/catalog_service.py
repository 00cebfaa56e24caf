import uuid
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.auth.policy import ensure_owner
from app.models.catalog import Category, Service
from app.models.profile import UserRole
from app.observability import log_event, metrics_store
from app.schemas.catalog import CategoryCreate, ServiceCreate, ServiceUpdate


def list_categories(db: Session) -> list[Category]:
    return list(
        db.scalars(select(Category).where(Category.is_active.is_(True)).order_by(Category.name))
    )


def create_category(db: Session, auth: AuthContext, payload: CategoryCreate) -> Category:
    category = Category(
        name=payload.name,
        description=payload.description,
        icon_url=payload.icon_url,
    )
    db.add(category)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Category name already exists"
        ) from err
    db.refresh(category)
    log_event("category_created", user_id=str(auth.user_id))
    return category


def _ensure_category_exists(db: Session, category_id: uuid.UUID | None) -> None:
    if category_id is None:
        return
    category = db.get(Category, category_id)
    if category is None or not category.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown category")


def create_service(db: Session, auth: AuthContext, payload: ServiceCreate) -> Service:
    if auth.role != UserRole.MERCHANT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Only merchants can offer services"
        )
    _ensure_category_exists(db, payload.category_id)

    service = Service(
        merchant_id=auth.user_id,
        category_id=payload.category_id,
        title=payload.title,
        description=payload.description,
        price=Decimal(str(payload.price)) if payload.price is not None else None,
        price_type=payload.price_type,
        duration_minutes=payload.duration_minutes,
        requires_delivery=payload.requires_delivery,
        service_area=payload.service_area,
        images=payload.images,
    )
    db.add(service)
    db.commit()
    db.refresh(service)

    metrics_store.increment("services_created_total")
    log_event("service_created", user_id=str(auth.user_id))
    return service


def get_service_row(db: Session, service_id: uuid.UUID) -> Service:
    service = db.get(Service, service_id)
    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    return service


def get_service(db: Session, auth: AuthContext, service_id: uuid.UUID) -> Service:
    service = get_service_row(db, service_id)
    # Inactive services stay visible to their merchant only
    if not service.is_active and not (auth.is_admin or service.merchant_id == auth.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    return service


def update_service(
    db: Session, auth: AuthContext, service_id: uuid.UUID, payload: ServiceUpdate
) -> Service:
    service = get_service_row(db, service_id)
    ensure_owner(auth, service.merchant_id, "Only the owning merchant can edit this service")

    changes = payload.model_dump(exclude_unset=True)
    if "category_id" in changes:
        _ensure_category_exists(db, changes["category_id"])
    if changes.get("price") is not None:
        changes["price"] = Decimal(str(changes["price"]))

    for field, value in changes.items():
        setattr(service, field, value)

    db.commit()
    db.refresh(service)
    log_event("service_updated", user_id=str(auth.user_id))
    return service


def list_services(
    db: Session,
    *,
    category_id: uuid.UUID | None = None,
    merchant_id: uuid.UUID | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Service]:
    query = select(Service).where(Service.is_active.is_(True))
    if category_id is not None:
        query = query.where(Service.category_id == category_id)
    if merchant_id is not None:
        query = query.where(Service.merchant_id == merchant_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(Service.title.ilike(pattern), Service.description.ilike(pattern)))
    query = query.order_by(Service.created_at.desc()).limit(limit).offset(offset)
    return list(db.scalars(query))
