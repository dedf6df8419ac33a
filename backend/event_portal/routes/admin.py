"""Administrative endpoints: event moderation, role management and audit logs."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import errors, models, schemas
from ..auth import require_permission
from ..database import get_session
from ..permissions import Action, authorize
from ..services import audit, lifecycle
from ..services.notifications import NotificationDispatcher, get_notification_dispatcher
from ..utils import parse_uuid

router = APIRouter(prefix="/api/admin", tags=["admin"])

logger = logging.getLogger(__name__)


async def _load_user(session: AsyncSession, user_id: str) -> models.User:
    result = await session.execute(
        select(models.User).where(models.User.id == parse_uuid(user_id, "user"))
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise errors.UserNotFound()
    return user


async def _list_users(
    session: AsyncSession, role: Optional[models.UserRole] = None
) -> list[schemas.UserRead]:
    query = select(models.User).order_by(models.User.date_joined.desc())
    if role is not None:
        query = query.where(models.User.role == role)
    result = await session.execute(query)
    return [schemas.UserRead.model_validate(user) for user in result.scalars().all()]


# Event moderation


@router.get("/events/pending", response_model=list[schemas.EventRead])
async def list_pending_events(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.event_moderate)),
) -> list[schemas.EventRead]:
    result = await session.execute(
        select(models.Event)
        .options(selectinload(models.Event.participants))
        .where(models.Event.is_approved.is_(False))
        .order_by(models.Event.created_at)
    )
    return [schemas.EventRead.model_validate(event) for event in result.scalars().all()]


async def _moderate_event(
    session: AsyncSession,
    dispatcher: NotificationDispatcher,
    admin: models.User,
    event_id: str,
    *,
    approve: bool,
) -> models.Event:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    event.is_approved = approve
    if approve:
        await audit.create_log(
            session, admin, f"Approved event '{event.title}'", models.LogType.event_approval, event.id
        )
    else:
        await audit.create_log(
            session, admin, f"Rejected event '{event.title}'", models.LogType.other, event.id
        )
    await session.commit()

    dispatcher.event_moderated(event, approved=approve)
    return event


@router.patch("/events/{event_id}/approve", response_model=schemas.EventMutationResponse)
async def approve_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.event_moderate)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.EventMutationResponse:
    event = await _moderate_event(session, dispatcher, current_user, event_id, approve=True)
    return schemas.EventMutationResponse(
        message="Event approved successfully", event=schemas.EventRead.model_validate(event)
    )


@router.patch("/events/{event_id}/reject", response_model=schemas.EventMutationResponse)
async def reject_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.event_moderate)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.EventMutationResponse:
    event = await _moderate_event(session, dispatcher, current_user, event_id, approve=False)
    return schemas.EventMutationResponse(
        message="Event rejected", event=schemas.EventRead.model_validate(event)
    )


@router.delete("/events/{event_id}", response_model=schemas.MessageResponse)
async def admin_delete_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.event_admin_delete)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.MessageResponse:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    authorize(Action.event_admin_delete, current_user, event)

    await audit.create_log(
        session,
        current_user,
        f"Deleted event '{event.title}'",
        models.LogType.event_deletion,
        event.id,
    )
    await session.delete(event)
    await session.commit()

    dispatcher.event_cancelled(event)
    return schemas.MessageResponse(message="Event deleted successfully")


# Users and roles


@router.get("/users", response_model=list[schemas.UserRead])
async def list_users(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_view)),
) -> list[schemas.UserRead]:
    return await _list_users(session)


@router.get("/organizers", response_model=list[schemas.UserRead])
async def list_organizers(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_view)),
) -> list[schemas.UserRead]:
    return await _list_users(session, models.UserRole.organizer)


@router.get("/admins", response_model=list[schemas.UserRead])
async def list_admins(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_view)),
) -> list[schemas.UserRead]:
    return await _list_users(session, models.UserRole.admin)


@router.get("/users/{user_id}", response_model=schemas.UserRead)
async def get_user(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_view)),
) -> schemas.UserRead:
    return schemas.UserRead.model_validate(await _load_user(session, user_id))


async def _change_role(
    session: AsyncSession,
    dispatcher: NotificationDispatcher,
    admin: models.User,
    user_id: str,
    *,
    action: Action,
    new_role: models.UserRole,
    log_type: models.LogType,
) -> models.User:
    target = await _load_user(session, user_id)
    authorize(action, admin, target)

    previous_role = target.role
    target.role = new_role
    await audit.create_log(
        session,
        admin,
        f"Changed role of {target.username} from {previous_role.value} to {new_role.value}",
        log_type,
        target.id,
    )
    await session.commit()

    if previous_role != new_role:
        dispatcher.role_changed(target, new_role)
    return target


@router.patch("/users/{user_id}/promote-admin", response_model=schemas.UserRoleResponse)
async def promote_to_admin(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_promote_admin)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.UserRoleResponse:
    user = await _change_role(
        session,
        dispatcher,
        current_user,
        user_id,
        action=Action.user_promote_admin,
        new_role=models.UserRole.admin,
        log_type=models.LogType.user_to_admin_approval,
    )
    return schemas.UserRoleResponse(
        message="User promoted to admin successfully", user=schemas.UserRead.model_validate(user)
    )


@router.patch("/users/{user_id}/promote-organizer", response_model=schemas.UserRoleResponse)
async def promote_to_organizer(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_promote_organizer)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.UserRoleResponse:
    user = await _change_role(
        session,
        dispatcher,
        current_user,
        user_id,
        action=Action.user_promote_organizer,
        new_role=models.UserRole.organizer,
        log_type=models.LogType.user_to_organizer_approval,
    )
    return schemas.UserRoleResponse(
        message="User promoted to organizer successfully",
        user=schemas.UserRead.model_validate(user),
    )


@router.patch("/users/{user_id}/demote", response_model=schemas.UserRoleResponse)
async def demote_user(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_demote)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.UserRoleResponse:
    user = await _change_role(
        session,
        dispatcher,
        current_user,
        user_id,
        action=Action.user_demote,
        new_role=models.UserRole.user,
        log_type=models.LogType.other,
    )
    return schemas.UserRoleResponse(
        message="User demoted to regular user successfully",
        user=schemas.UserRead.model_validate(user),
    )


@router.delete("/users/{user_id}", response_model=schemas.MessageResponse)
async def delete_user(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.user_delete)),
) -> schemas.MessageResponse:
    target = await _load_user(session, user_id)
    authorize(Action.user_delete, current_user, target)

    await audit.create_log(
        session,
        current_user,
        f"Deleted user {target.username} ({target.email})",
        models.LogType.other,
        target.id,
    )
    await session.delete(target)
    await session.commit()
    logger.info("User deleted: user_id=%s by user_id=%s", target.id, current_user.id)
    return schemas.MessageResponse(message="User deleted successfully")


# Audit logs


@router.get("/logs", response_model=schemas.LogPage)
async def list_logs(
    log_type: Optional[models.LogType] = Query(None, alias="type"),
    admin_id: Optional[uuid.UUID] = Query(None, alias="adminId"),
    page: int = Query(1, ge=1),
    limit: int = Query(audit.DEFAULT_PAGE_SIZE, ge=1, le=audit.MAX_PAGE_SIZE),
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.logs_view)),
) -> schemas.LogPage:
    result = await audit.get_logs(
        session, log_type=log_type, admin_id=admin_id, page=page, limit=limit
    )
    return schemas.LogPage(
        logs=[schemas.LogRead.model_validate(log) for log in result.logs],
        total_pages=result.total_pages,
        current_page=result.current_page,
        total=result.total,
    )


@router.get("/logs/stats", response_model=list[schemas.LogStat])
async def log_stats(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.logs_view)),
) -> list[schemas.LogStat]:
    stats = await audit.get_log_stats(session)
    return [schemas.LogStat(type=log_type, count=count) for log_type, count in stats]
