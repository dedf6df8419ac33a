"""Credential helpers and FastAPI auth dependencies for the portal backend."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Mapping, Optional

import bcrypt
import jwt
from dotenv import find_dotenv, load_dotenv
from fastapi import Depends, Header
from pydantic import ValidationError
from pydantic_settings import BaseSettings
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import errors, models
from .database import get_session
from .permissions import Action, authorize_role

# Ensure environment variables from ``.env`` are loaded when this module is
# imported. This mirrors the behavior used for the database configuration and
# keeps configuration in a single place for local development.
_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)


logger = logging.getLogger(__name__)

_ACCESS_TOKEN_TYPE = "access"
_EMAIL_ACTION_TOKEN_TYPE = "email_action"


class AuthSettings(BaseSettings):
    """Configuration required to issue and validate access tokens."""

    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    email_action_token_hours: int = 24
    bcrypt_rounds: int = 12
    portal_owner_email: Optional[str] = None


@lru_cache
def get_auth_settings() -> AuthSettings:
    """Load and cache auth settings from the environment."""

    try:
        return AuthSettings()
    except ValidationError as exc:  # pragma: no cover - configuration error
        raise RuntimeError("JWT_SECRET environment variable is not configured") from exc


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds or get_auth_settings().bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _encode(claims: Mapping[str, Any], settings: AuthSettings) -> str:
    return jwt.encode(dict(claims), settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, settings: AuthSettings, expected_type: str) -> Mapping[str, Any]:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise errors.AuthenticationError("Token has expired") from exc
    except jwt.PyJWTError as exc:
        raise errors.AuthenticationError("Token validation failed") from exc

    if claims.get("typ") != expected_type:
        raise errors.AuthenticationError("Token validation failed")
    return claims


def _claims_user_id(claims: Mapping[str, Any]) -> uuid.UUID:
    try:
        return uuid.UUID(str(claims.get("sub")))
    except (TypeError, ValueError) as exc:
        raise errors.AuthenticationError("Token is missing a valid user id") from exc


def create_access_token(user: models.User, settings: Optional[AuthSettings] = None) -> str:
    """Issue a signed bearer token for ``user``."""

    settings = settings or get_auth_settings()
    issued_at = datetime.now(timezone.utc)
    return _encode(
        {
            "sub": str(user.id),
            "role": user.role.value,
            "typ": _ACCESS_TOKEN_TYPE,
            "iat": issued_at,
            "exp": issued_at + timedelta(days=settings.jwt_expires_days),
        },
        settings,
    )


def decode_access_token(token: str, settings: Optional[AuthSettings] = None) -> uuid.UUID:
    """Validate ``token`` and return the user id it was issued for."""

    claims = _decode(token, settings or get_auth_settings(), _ACCESS_TOKEN_TYPE)
    return _claims_user_id(claims)


def create_email_action_token(
    user_id: uuid.UUID,
    action: models.DeletionRequestType,
    settings: Optional[AuthSettings] = None,
) -> str:
    """Issue a signed, short-lived token embedded in "this wasn't me" email links."""

    settings = settings or get_auth_settings()
    issued_at = datetime.now(timezone.utc)
    return _encode(
        {
            "sub": str(user_id),
            "act": action.value,
            "typ": _EMAIL_ACTION_TOKEN_TYPE,
            "iat": issued_at,
            "exp": issued_at + timedelta(hours=settings.email_action_token_hours),
        },
        settings,
    )


def decode_email_action_token(
    token: str,
    expected_action: models.DeletionRequestType,
    settings: Optional[AuthSettings] = None,
) -> uuid.UUID:
    claims = _decode(token, settings or get_auth_settings(), _EMAIL_ACTION_TOKEN_TYPE)
    if claims.get("act") != expected_action.value:
        raise errors.AuthenticationError("Token was issued for a different action")
    return _claims_user_id(claims)


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    session: AsyncSession = Depends(get_session),
) -> models.User:
    """FastAPI dependency that resolves the caller from a bearer token."""

    if not authorization:
        logger.warning("Auth failed: missing Authorization header for protected endpoint")
        raise errors.AuthenticationError("Authorization header is missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        logger.warning(
            "Auth failed: invalid Authorization header format (scheme=%s, has_token=%s)",
            scheme.lower(),
            bool(token),
        )
        raise errors.AuthenticationError("Authorization header must be a Bearer token")

    try:
        user_id = decode_access_token(token)
    except errors.AuthenticationError as exc:
        logger.warning("Auth failed: %s", exc)
        raise

    result = await session.execute(select(models.User).where(models.User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Auth failed: token references missing user_id=%s", user_id)
        raise errors.AuthenticationError("User for this token no longer exists")
    return user


def require_permission(action: Action):
    """Factory that returns a dependency enforcing a role-only ``action``."""

    async def dependency(user: models.User = Depends(get_current_user)) -> models.User:
        authorize_role(action, user)
        return user

    return dependency
