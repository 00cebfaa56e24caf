import uuid
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.auth.jwt import JwtError, decode_jwt, jwt_http_exception
from app.config import settings
from app.db.session import get_db
from app.models.profile import Profile, UserRole


@dataclass
class AuthContext:
    user_id: uuid.UUID
    role: UserRole
    username: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_token_subject(authorization: str | None = Header(default=None)) -> uuid.UUID:
    """Verify the bearer token and return its subject; no profile is required yet."""
    if not authorization or not authorization.startswith("Bearer "):
        raise jwt_http_exception("Missing bearer token")

    token = authorization.removeprefix("Bearer ").strip()
    try:
        claims = decode_jwt(token, settings.jwt_secret)
    except JwtError as err:
        raise jwt_http_exception("Invalid JWT") from err

    try:
        return uuid.UUID(claims.subject)
    except ValueError as err:
        raise jwt_http_exception("Invalid JWT claims") from err


def get_auth_context(
    subject: uuid.UUID = Depends(get_token_subject),
    db: Session = Depends(get_db),
) -> AuthContext:
    profile = db.get(Profile, subject)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Profile not found for authenticated user",
        )
    if not profile.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account deactivated")

    return AuthContext(user_id=profile.id, role=profile.role, username=profile.username)


def require_roles(*roles: UserRole) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_driver = require_roles(UserRole.DRIVER)
