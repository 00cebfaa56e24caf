import uuid

import pytest
from fastapi import HTTPException

from app.auth.dependencies import get_auth_context, get_token_subject, require_driver
from app.auth.jwt import JwtError, decode_jwt, issue_jwt
from app.config import settings
from app.models.profile import UserRole

SECRET = "unit-test-secret"


def test_issued_token_round_trips_claims():
    token = issue_jwt("user-1", SECRET, email="a@example.com")

    claims = decode_jwt(token, SECRET)

    assert claims.subject == "user-1"
    assert claims.email == "a@example.com"


def test_wrong_secret_or_expiry_is_rejected():
    with pytest.raises(JwtError, match="signature"):
        decode_jwt(issue_jwt("user-1", SECRET), "other-secret")

    with pytest.raises(JwtError, match="Expired"):
        decode_jwt(issue_jwt("user-1", SECRET, expires_in_s=-10), SECRET)


def test_extra_claims_cannot_override_reserved_claims():
    token = issue_jwt("user-1", SECRET, extra_claims={"aud": "anon", "sub": "someone-else"})
    assert decode_jwt(token, SECRET).subject == "user-1"


def test_malformed_token_is_rejected():
    with pytest.raises(JwtError):
        decode_jwt("not.a.jwt", SECRET)
    with pytest.raises(JwtError, match="Malformed"):
        decode_jwt("only-one-part", SECRET)


def test_bearer_subject_must_be_a_uuid():
    token = issue_jwt("not-a-uuid", settings.jwt_secret)

    with pytest.raises(HTTPException) as exc:
        get_token_subject(f"Bearer {token}")
    assert exc.value.status_code == 401


def test_missing_bearer_is_unauthorized():
    with pytest.raises(HTTPException) as exc:
        get_token_subject(None)
    assert exc.value.status_code == 401
    assert exc.value.headers == {"WWW-Authenticate": "Bearer"}


def test_role_comes_from_the_stored_profile(db_session, people):
    auth = get_auth_context(people["driver"].id, db_session)

    assert auth.role == UserRole.DRIVER
    assert auth.is_admin is False
    assert require_driver(auth) is auth


def test_unknown_or_deactivated_profile_is_forbidden(db_session, people):
    with pytest.raises(HTTPException) as exc:
        get_auth_context(uuid.uuid4(), db_session)
    assert exc.value.status_code == 403

    people["client"].is_active = False
    db_session.commit()
    with pytest.raises(HTTPException) as exc:
        get_auth_context(people["client"].id, db_session)
    assert exc.value.detail == "Account deactivated"


def test_require_roles_rejects_other_roles(db_session, people, auth_for):
    with pytest.raises(HTTPException) as exc:
        require_driver(auth_for(people["client"]))
    assert exc.value.status_code == 403
