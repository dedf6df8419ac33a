"""Account registration, login and profile endpoints."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import errors, models, schemas
from ..auth import (
    AuthSettings,
    create_access_token,
    create_email_action_token,
    get_auth_settings,
    get_current_user,
    hash_password,
    verify_password,
)
from ..database import get_session
from ..services.notifications import NotificationDispatcher, get_notification_dispatcher
from ..utils import get_now

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)

_DECLINE_REGISTRATION_PATH = "/api/email/decline-registration"
_DECLINE_LOGIN_PATH = "/api/email/decline-login"


async def _owner_exists(session: AsyncSession) -> bool:
    result = await session.execute(
        select(models.User.id).where(models.User.role == models.UserRole.owner).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _initial_role(
    session: AsyncSession, email: str, settings: AuthSettings
) -> models.UserRole:
    owner_email = (settings.portal_owner_email or "").strip().lower()
    if owner_email and email == owner_email and not await _owner_exists(session):
        return models.UserRole.owner
    return models.UserRole.user


@router.post("/register", response_model=schemas.AuthResponse, status_code=201)
async def register_user(
    payload: schemas.UserRegister,
    session: AsyncSession = Depends(get_session),
    settings: AuthSettings = Depends(get_auth_settings),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.AuthResponse:
    username = payload.username.strip()
    email = str(payload.email).strip().lower()

    existing = await session.execute(
        select(models.User).where(or_(models.User.email == email, models.User.username == username))
    )
    conflict = existing.scalars().first()
    if conflict is not None:
        raise errors.ConflictError(
            "Email already exists" if conflict.email == email else "Username already exists"
        )

    user = models.User(
        username=username,
        email=email,
        password_hash=hash_password(payload.password, settings.bcrypt_rounds),
        role=await _initial_role(session, email, settings),
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise errors.ConflictError("Username or email already exists") from exc

    logger.info("User registered: user_id=%s role=%s", user.id, user.role.value)

    decline_token = create_email_action_token(
        user.id, models.DeletionRequestType.register_decline, settings
    )
    dispatcher.welcome(
        user, dispatcher.email_service.build_backend_link(_DECLINE_REGISTRATION_PATH, decline_token)
    )

    return schemas.AuthResponse(
        token=create_access_token(user, settings),
        user=schemas.UserRead.model_validate(user),
    )


@router.post("/login", response_model=schemas.AuthResponse)
async def login_user(
    payload: schemas.LoginRequest,
    session: AsyncSession = Depends(get_session),
    settings: AuthSettings = Depends(get_auth_settings),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    now: datetime = Depends(get_now),
) -> schemas.AuthResponse:
    identifier = payload.identifier.strip()
    result = await session.execute(
        select(models.User).where(
            or_(models.User.email == identifier.lower(), models.User.username == identifier)
        )
    )
    user = result.scalars().first()
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.warning("Login failed for identifier=%s", identifier)
        raise errors.AuthenticationError("Invalid credentials")

    decline_token = create_email_action_token(
        user.id, models.DeletionRequestType.login_decline, settings
    )
    dispatcher.login_alert(
        user, now, dispatcher.email_service.build_backend_link(_DECLINE_LOGIN_PATH, decline_token)
    )

    return schemas.AuthResponse(
        token=create_access_token(user, settings),
        user=schemas.UserRead.model_validate(user),
    )


@router.get("/profile", response_model=schemas.ProfileResponse, response_model_exclude_none=True)
async def get_profile(
    current_user: models.User = Depends(get_current_user),
) -> schemas.ProfileResponse:
    return schemas.ProfileResponse(user=schemas.UserRead.model_validate(current_user))


@router.put("/profile", response_model=schemas.ProfileResponse)
async def update_profile(
    payload: schemas.ProfileUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ProfileResponse:
    if payload.username is not None:
        username = payload.username.strip()
        if username != current_user.username:
            taken = await session.execute(
                select(models.User.id).where(models.User.username == username)
            )
            if taken.scalar_one_or_none() is not None:
                raise errors.ConflictError("Username already exists")
            current_user.username = username

    if payload.bio is not None:
        current_user.bio = payload.bio
    if payload.skills is not None:
        current_user.skills = [skill.strip() for skill in payload.skills if skill.strip()]
    if payload.experience is not None:
        current_user.experience = [entry.model_dump() for entry in payload.experience]
    if payload.portfolio_links is not None:
        current_user.portfolio_links = list(payload.portfolio_links)
    if payload.certifications is not None:
        current_user.certifications = [entry.model_dump() for entry in payload.certifications]

    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise errors.ConflictError("Username already exists") from exc

    return schemas.ProfileResponse(
        message="Profile updated successfully",
        user=schemas.UserRead.model_validate(current_user),
    )


@router.put("/password", response_model=schemas.MessageResponse)
async def update_password(
    payload: schemas.PasswordUpdate,
    session: AsyncSession = Depends(get_session),
    settings: AuthSettings = Depends(get_auth_settings),
    current_user: models.User = Depends(get_current_user),
) -> schemas.MessageResponse:
    if not verify_password(payload.current_password, current_user.password_hash):
        raise errors.AuthenticationError("Current password is incorrect")

    current_user.password_hash = hash_password(payload.new_password, settings.bcrypt_rounds)
    await session.commit()
    logger.info("Password updated for user_id=%s", current_user.id)
    return schemas.MessageResponse(message="Password updated successfully")
