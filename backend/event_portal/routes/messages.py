"""User messages and account deletion requests."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import errors, models, schemas
from ..auth import get_current_user, require_permission
from ..database import get_session
from ..permissions import Action, authorize
from ..services import audit
from ..utils import parse_uuid

router = APIRouter(prefix="/api/messages", tags=["messages"])

logger = logging.getLogger(__name__)

MIN_MESSAGE_LENGTH = 10


def _messages_query():
    return (
        select(models.Message)
        .options(selectinload(models.Message.user))
        .order_by(models.Message.submitted_at.desc())
    )


async def _load_message(session: AsyncSession, message_id: str) -> models.Message:
    result = await session.execute(
        _messages_query().where(models.Message.id == parse_uuid(message_id, "message"))
    )
    message = result.scalar_one_or_none()
    if message is None:
        raise errors.MessageNotFound()
    return message


@router.post("", response_model=schemas.MessageRead, status_code=201)
async def submit_message(
    payload: schemas.MessageCreate,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
) -> schemas.MessageRead:
    text = payload.message.strip()
    if len(text) < MIN_MESSAGE_LENGTH:
        raise errors.ValidationError(
            f"Message must be at least {MIN_MESSAGE_LENGTH} characters long"
        )

    message = models.Message(
        user_id=current_user.id,
        user=current_user,
        message=text,
        type=models.MessageType.general,
    )
    session.add(message)
    await session.commit()
    return schemas.MessageRead.model_validate(message)


@router.get("", response_model=list[schemas.MessageRead])
async def list_messages(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.message_moderate)),
) -> list[schemas.MessageRead]:
    result = await session.execute(_messages_query())
    return [schemas.MessageRead.model_validate(message) for message in result.scalars().all()]


@router.get("/deletion-requests", response_model=list[schemas.MessageRead])
async def list_deletion_requests(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.message_moderate)),
) -> list[schemas.MessageRead]:
    result = await session.execute(
        _messages_query().where(
            models.Message.type == models.MessageType.account_deletion_request,
            models.Message.status == models.MessageStatus.pending,
        )
    )
    return [schemas.MessageRead.model_validate(message) for message in result.scalars().all()]


@router.delete(
    "/deletion-request/{message_id}/execute", response_model=schemas.DeletedUserResponse
)
async def execute_deletion_request(
    message_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.deletion_request_execute)),
) -> schemas.DeletedUserResponse:
    message = await _load_message(session, message_id)
    if message.type != models.MessageType.account_deletion_request:
        raise errors.ValidationError("This is not a deletion request")

    target = message.user
    if target is None:
        raise errors.UserNotFound()
    authorize(Action.deletion_request_execute, current_user, target)

    deleted = schemas.DeletedUser(username=target.username, email=target.email)
    message_pk = message.id
    await audit.create_log(
        session,
        current_user,
        f"Deleted user {target.username} ({target.email}) on their deletion request",
        models.LogType.other,
        target.id,
    )
    # The request row is removed with the account; the audit log keeps the trail.
    await session.delete(target)
    await session.commit()
    logger.info(
        "Deletion request executed: message_id=%s user_id=%s by user_id=%s",
        message_pk,
        target.id,
        current_user.id,
    )
    return schemas.DeletedUserResponse(
        message="User account deleted successfully", deleted_user=deleted
    )


@router.patch("/deletion-request/{message_id}/dismiss", response_model=schemas.MessageResponse)
async def dismiss_deletion_request(
    message_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.message_moderate)),
) -> schemas.MessageResponse:
    message = await _load_message(session, message_id)
    message.status = models.MessageStatus.resolved
    await session.commit()
    return schemas.MessageResponse(message="Deletion request dismissed")


@router.delete("/{message_id}", response_model=schemas.MessageResponse)
async def delete_message(
    message_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.message_moderate)),
) -> schemas.MessageResponse:
    message = await _load_message(session, message_id)
    await session.delete(message)
    await session.commit()
    return schemas.MessageResponse(message="Message deleted successfully")
