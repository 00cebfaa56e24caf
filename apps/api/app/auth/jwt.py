import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, status

# Audience used by the hosted auth provider for signed-in users
AUTHENTICATED_AUDIENCE = "authenticated"


class JwtError(Exception):
    pass


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    email: str | None
    expires_at: int


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(signing_input: bytes, secret: str) -> str:
    return _b64url_encode(hmac.new(secret.encode(), signing_input, hashlib.sha256).digest())


def issue_jwt(
    subject: str,
    secret: str,
    *,
    email: str | None = None,
    expires_in_s: int = 3600,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Sign an HS256 token shaped like the ones the auth provider hands to the mobile app."""
    header = {"alg": "HS256", "typ": "JWT"}
    claims: dict[str, Any] = {
        **(extra_claims or {}),
        "sub": subject,
        "aud": AUTHENTICATED_AUDIENCE,
        "exp": int(time.time()) + expires_in_s,
    }
    if email is not None:
        claims["email"] = email

    encoded_header = _b64url_encode(json.dumps(header, separators=(",", ":")).encode())
    encoded_payload = _b64url_encode(json.dumps(claims, separators=(",", ":")).encode())
    signing_input = f"{encoded_header}.{encoded_payload}".encode()
    return f"{encoded_header}.{encoded_payload}.{_sign(signing_input, secret)}"


def decode_jwt(token: str, secret: str) -> TokenClaims:
    try:
        encoded_header, encoded_payload, encoded_signature = token.split(".")
    except ValueError as exc:
        raise JwtError("Malformed JWT") from exc

    try:
        header = json.loads(_b64url_decode(encoded_header))
    except ValueError as exc:
        raise JwtError("Malformed JWT header") from exc
    if header.get("alg") != "HS256":
        raise JwtError("Unsupported JWT algorithm")

    signing_input = f"{encoded_header}.{encoded_payload}".encode()
    if not hmac.compare_digest(_sign(signing_input, secret), encoded_signature):
        raise JwtError("Invalid JWT signature")

    try:
        payload = json.loads(_b64url_decode(encoded_payload))
    except ValueError as exc:
        raise JwtError("Malformed JWT payload") from exc

    exp = payload.get("exp")
    if not isinstance(exp, int) or exp < int(time.time()):
        raise JwtError("Expired JWT")

    audience = payload.get("aud")
    audiences = audience if isinstance(audience, list) else [audience]
    if AUTHENTICATED_AUDIENCE not in audiences:
        raise JwtError("Invalid JWT audience")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise JwtError("Missing JWT subject")

    email = payload.get("email")
    return TokenClaims(
        subject=subject,
        email=email if isinstance(email, str) else None,
        expires_at=exp,
    )


def jwt_http_exception(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )
