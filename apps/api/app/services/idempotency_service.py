import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow
from app.models.idempotency_record import IdempotencyRecord
from app.observability import log_event, metrics_store

IDEMPOTENCY_KEY_MAX_LENGTH = 255


@dataclass
class IdempotencyResult:
    replay: bool
    response_payload: dict[str, Any] | None = None


def validate_idempotency_key(idempotency_key: str | None) -> str | None:
    if idempotency_key is None:
        return None

    normalized_key = idempotency_key.strip()
    if not normalized_key:
        metrics_store.increment("idempotency_invalid_key_total")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Idempotency-Key must not be empty",
        )
    if len(normalized_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        metrics_store.increment("idempotency_invalid_key_total")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Idempotency-Key exceeds max length {IDEMPOTENCY_KEY_MAX_LENGTH}",
        )
    return normalized_key


def build_scope(route: str, *, resource_id: uuid.UUID | str | None = None) -> str:
    """Route scope for a key; nested routes include the parent resource id."""
    if resource_id is not None:
        return f"{route}:{resource_id}"
    return route


def _raise_payload_conflict() -> None:
    metrics_store.increment("idempotency_conflict_total")
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Idempotency key reused with different payload",
    )


def _hash_payload(payload: Any) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _purge_expired_records(db: Session, now: datetime) -> int:
    result = db.execute(delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= now))
    return int(result.rowcount or 0)


def _find_record(
    db: Session, user_id: uuid.UUID, route: str, idempotency_key: str
) -> IdempotencyRecord | None:
    return db.scalar(
        select(IdempotencyRecord).where(
            IdempotencyRecord.user_id == str(user_id),
            IdempotencyRecord.route == route,
            IdempotencyRecord.idempotency_key == idempotency_key,
        )
    )


def check_idempotency(
    *,
    db: Session,
    user_id: uuid.UUID,
    route: str,
    idempotency_key: str,
    request_payload: Any,
) -> IdempotencyResult:
    now = utcnow()
    expired_count = _purge_expired_records(db, now)
    if expired_count:
        db.commit()
        metrics_store.increment("idempotency_purged_total", expired_count)

    record = _find_record(db, user_id, route, idempotency_key)
    if record is None:
        return IdempotencyResult(replay=False)

    if record.request_hash != _hash_payload(request_payload):
        _raise_payload_conflict()

    metrics_store.increment("idempotency_replay_total")
    log_event("idempotent_replay", user_id=str(user_id))
    return IdempotencyResult(replay=True, response_payload=record.response_payload)


def save_idempotency_result(
    *,
    db: Session,
    user_id: uuid.UUID,
    route: str,
    idempotency_key: str,
    request_payload: Any,
    response_payload: dict[str, Any],
) -> None:
    payload_hash = _hash_payload(request_payload)
    expires_at = utcnow() + timedelta(seconds=settings.idempotency_ttl_s)

    record = _find_record(db, user_id, route, idempotency_key)
    if record is None:
        db.add(
            IdempotencyRecord(
                user_id=str(user_id),
                route=route,
                idempotency_key=idempotency_key,
                request_hash=payload_hash,
                response_payload=response_payload,
                expires_at=expires_at,
            )
        )
    else:
        if record.request_hash != payload_hash:
            _raise_payload_conflict()
        record.response_payload = response_payload
        record.expires_at = expires_at

    try:
        db.commit()
    except IntegrityError:
        # A concurrent request stored the same key first
        db.rollback()
        existing = _find_record(db, user_id, route, idempotency_key)
        if existing is None:
            raise
        if existing.request_hash != payload_hash:
            _raise_payload_conflict()
        return
    metrics_store.increment("idempotency_store_total")
