import uuid
from datetime import timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.db.base import utcnow
from app.models.idempotency_record import IdempotencyRecord
from app.observability import metrics_store
from app.services.idempotency_service import (
    IDEMPOTENCY_KEY_MAX_LENGTH,
    build_scope,
    check_idempotency,
    save_idempotency_result,
    validate_idempotency_key,
)

ROUTE = "POST:/api/v1/service-requests"


def test_validate_idempotency_key_trims_and_rejects_blank_or_long():
    assert validate_idempotency_key(None) is None
    assert validate_idempotency_key("  abc ") == "abc"

    with pytest.raises(HTTPException) as exc:
        validate_idempotency_key("   ")
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException):
        validate_idempotency_key("k" * (IDEMPOTENCY_KEY_MAX_LENGTH + 1))
    assert metrics_store.snapshot().counters["idempotency_invalid_key_total"] == 2


def test_build_scope_includes_parent_resource():
    conversation_id = uuid.uuid4()
    assert build_scope("POST:/messages") == "POST:/messages"
    assert build_scope("POST:/messages", resource_id=conversation_id) == (
        f"POST:/messages:{conversation_id}"
    )


def test_first_use_then_replay_returns_stored_response(db_session):
    user_id = uuid.uuid4()
    payload = {"service_id": "svc", "amount": 10}

    first = check_idempotency(
        db=db_session, user_id=user_id, route=ROUTE, idempotency_key="k1", request_payload=payload
    )
    assert first.replay is False

    save_idempotency_result(
        db=db_session,
        user_id=user_id,
        route=ROUTE,
        idempotency_key="k1",
        request_payload=payload,
        response_payload={"id": "abc"},
    )

    replay = check_idempotency(
        db=db_session,
        user_id=user_id,
        route=ROUTE,
        idempotency_key="k1",
        request_payload={"amount": 10, "service_id": "svc"},
    )
    assert replay.replay is True
    assert replay.response_payload == {"id": "abc"}


def test_same_key_with_different_payload_conflicts(db_session):
    user_id = uuid.uuid4()
    save_idempotency_result(
        db=db_session,
        user_id=user_id,
        route=ROUTE,
        idempotency_key="k1",
        request_payload={"amount": 10},
        response_payload={"id": "abc"},
    )

    with pytest.raises(HTTPException) as exc:
        check_idempotency(
            db=db_session,
            user_id=user_id,
            route=ROUTE,
            idempotency_key="k1",
            request_payload={"amount": 11},
        )
    assert exc.value.status_code == 409


def test_keys_are_scoped_per_user_and_route(db_session):
    owner = uuid.uuid4()
    save_idempotency_result(
        db=db_session,
        user_id=owner,
        route=ROUTE,
        idempotency_key="k1",
        request_payload={"amount": 10},
        response_payload={"id": "abc"},
    )

    other_user = check_idempotency(
        db=db_session,
        user_id=uuid.uuid4(),
        route=ROUTE,
        idempotency_key="k1",
        request_payload={"amount": 99},
    )
    other_route = check_idempotency(
        db=db_session,
        user_id=owner,
        route="POST:/api/v1/payments",
        idempotency_key="k1",
        request_payload={"amount": 99},
    )
    assert other_user.replay is False
    assert other_route.replay is False


def test_expired_records_are_purged(db_session):
    user_id = uuid.uuid4()
    db_session.add(
        IdempotencyRecord(
            user_id=str(user_id),
            route=ROUTE,
            idempotency_key="old",
            request_hash="x",
            response_payload={"id": "stale"},
            expires_at=utcnow() - timedelta(seconds=1),
        )
    )
    db_session.commit()

    result = check_idempotency(
        db=db_session,
        user_id=user_id,
        route=ROUTE,
        idempotency_key="old",
        request_payload={"anything": True},
    )

    assert result.replay is False
    assert db_session.scalar(select(IdempotencyRecord)) is None
    assert metrics_store.snapshot().counters["idempotency_purged_total"] == 1
