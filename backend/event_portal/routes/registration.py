"""Event registration and OTP check-in endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_session
from ..permissions import Action, authorize
from ..services import lifecycle
from ..services.notifications import NotificationDispatcher, get_notification_dispatcher
from ..utils import get_now, parse_uuid

router = APIRouter(prefix="/api/registration", tags=["registration"])


@router.post("/{event_id}/register", response_model=schemas.RegistrationResponse)
async def register_for_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    now: datetime = Depends(get_now),
) -> schemas.RegistrationResponse:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    participant = await lifecycle.register(session, event, current_user, now)
    ticket_id = participant.ticket_id
    await session.commit()

    dispatcher.registration_confirmed(current_user, event, ticket_id)
    return schemas.RegistrationResponse(message="Registered successfully", ticket_id=ticket_id)


@router.post("/{event_id}/otp", response_model=schemas.OTPResponse)
async def generate_event_otp(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> schemas.OTPResponse:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    authorize(Action.otp_issue, current_user, event)

    otp = await lifecycle.issue_otp(session, event, now)
    expires_at = event.otp_expires_at
    await session.commit()
    return schemas.OTPResponse(message="OTP generated successfully", otp=otp, expires_at=expires_at)


@router.post("/{event_id}/checkin", response_model=schemas.MessageResponse)
async def check_in(
    event_id: str,
    payload: schemas.CheckInRequest,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> schemas.MessageResponse:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    await lifecycle.verify_otp(session, event, current_user, payload.otp, now)
    await session.commit()
    return schemas.MessageResponse(message="Attendance marked successfully")
