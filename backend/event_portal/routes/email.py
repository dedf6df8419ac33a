"""Endpoints reached from email links, plus manual reminder dispatch."""

from __future__ import annotations

import html
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import errors, models, schemas
from ..auth import decode_email_action_token, require_permission
from ..database import get_session
from ..permissions import Action
from ..services.email import format_timestamp
from ..services.notifications import NotificationDispatcher, get_notification_dispatcher
from ..utils import get_now

router = APIRouter(prefix="/api/email", tags=["email"])

logger = logging.getLogger(__name__)


def _html_page(title: str, *paragraphs: str, status_code: int = 200) -> HTMLResponse:
    body = "".join(f"<p>{html.escape(paragraph)}</p>" for paragraph in paragraphs)
    return HTMLResponse(
        content=(
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto;">'
            f"<h2>{html.escape(title)}</h2>{body}</div>"
        ),
        status_code=status_code,
    )


async def _file_deletion_request(
    session: AsyncSession,
    token: str,
    request_type: models.DeletionRequestType,
    describe: str,
) -> HTMLResponse | models.User:
    try:
        user_id = decode_email_action_token(token, request_type)
    except errors.AuthenticationError as exc:
        logger.warning("Rejected %s link: %s", request_type.value, exc)
        return _html_page(
            "Link expired",
            "This confirmation link is invalid or has expired. "
            "Please contact support if you still need assistance.",
            status_code=400,
        )

    user = await session.get(models.User, user_id)
    if user is None:
        return _html_page("User not found", status_code=404)

    existing = await session.execute(
        select(models.Message.id).where(
            models.Message.user_id == user.id,
            models.Message.request_type == request_type,
            models.Message.status == models.MessageStatus.pending,
        )
    )
    if existing.first() is None:
        session.add(
            models.Message(
                user_id=user.id,
                message=f"User {user.username} ({user.email}) {describe}",
                type=models.MessageType.account_deletion_request,
                request_type=request_type,
                status=models.MessageStatus.pending,
            )
        )
        await session.commit()
        logger.info("Deletion request filed: user_id=%s type=%s", user.id, request_type.value)
    return user


@router.get("/decline-registration", response_class=HTMLResponse)
async def decline_registration(
    token: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
) -> HTMLResponse:
    outcome = await _file_deletion_request(
        session,
        token,
        models.DeletionRequestType.register_decline,
        "has requested account deletion via registration email confirmation. "
        "They indicated they did not create this account.",
    )
    if isinstance(outcome, HTMLResponse):
        return outcome
    return _html_page(
        "Request Submitted",
        "Your account deletion request has been submitted to the administrators.",
        "An admin or owner will review your request and take appropriate action.",
    )


@router.get("/decline-login", response_class=HTMLResponse)
async def decline_login(
    token: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> HTMLResponse:
    outcome = await _file_deletion_request(
        session,
        token,
        models.DeletionRequestType.login_decline,
        "has reported unauthorized login activity and requested account deletion "
        f"for security reasons. Reported at {format_timestamp(now)}.",
    )
    if isinstance(outcome, HTMLResponse):
        return outcome
    return _html_page(
        "Security Request Submitted",
        "Your security concern has been reported and your account deletion request "
        "has been submitted to the administrators.",
        "An admin or owner will review your request and take appropriate action.",
    )


@router.post("/send-reminders", response_model=schemas.ReminderResponse)
async def send_reminders(
    payload: schemas.ReminderRequest,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.reminders_send)),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    now: datetime = Depends(get_now),
) -> schemas.ReminderResponse:
    results: dict[str, int] = {}
    for hours in payload.hours:
        results[str(hours)] = await dispatcher.send_bulk_reminders(session, hours, now)

    logger.info("Reminders sent by user_id=%s: %s", current_user.id, results)
    return schemas.ReminderResponse(message="Reminder emails sent successfully", results=results)
