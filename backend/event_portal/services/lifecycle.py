"""Event lifecycle rules: schedules, registration, OTP check-in and feedback.

Every function that depends on the current time takes ``now`` explicitly so
the routes can inject a clock and tests can move it. Functions flush their
changes; committing is left to the caller.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import errors, models, schemas
from ..permissions import AUTO_APPROVED_ROLES
from ..utils import as_utc, generate_otp, generate_ticket_id
from .analytics import recompute_event_analytics

logger = logging.getLogger(__name__)

OTP_VALIDITY = timedelta(minutes=15)
MIN_RATING = 1
MAX_RATING = 5
TICKET_ID_ATTEMPTS = 5

_SCHEDULE_FIELDS = (
    "start_date_time",
    "end_date_time",
    "reg_start_date_time",
    "reg_end_date_time",
)


def validate_schedule(
    start: datetime,
    end: datetime,
    reg_start: datetime,
    reg_end: datetime,
) -> None:
    """Reject schedules whose registration window or duration is inconsistent."""

    if as_utc(end) <= as_utc(start):
        raise errors.ValidationError("Event end time must be after its start time")
    if as_utc(reg_end) <= as_utc(reg_start):
        raise errors.ValidationError("Registration end time must be after registration start time")
    if as_utc(reg_end) > as_utc(start):
        raise errors.ValidationError("Registration must close before the event starts")


def is_registration_open(event: models.Event, now: datetime) -> bool:
    return event.reg_start_date_time <= now <= event.reg_end_date_time


def has_event_started(event: models.Event, now: datetime) -> bool:
    return now >= event.start_date_time


def has_event_ended(event: models.Event, now: datetime) -> bool:
    return now >= event.end_date_time


def find_participant(
    event: models.Event, user_id: uuid.UUID
) -> Optional[models.EventParticipant]:
    for participant in event.participants:
        if participant.user_id == user_id:
            return participant
    return None


async def load_event(session: AsyncSession, event_id: uuid.UUID) -> models.Event:
    """Load an event with its host and participants, or raise ``EventNotFound``."""

    result = await session.execute(
        select(models.Event)
        .options(
            selectinload(models.Event.host),
            selectinload(models.Event.participants).selectinload(models.EventParticipant.user),
        )
        .where(models.Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise errors.EventNotFound()
    return event


async def create_event(
    session: AsyncSession,
    host: models.User,
    payload: schemas.EventCreate,
    now: datetime,
) -> models.Event:
    """Create an event hosted by ``host``; trusted roles skip moderation."""

    reg_start = as_utc(payload.reg_start_date_time) if payload.reg_start_date_time else now
    start = as_utc(payload.start_date_time)
    end = as_utc(payload.end_date_time)
    reg_end = as_utc(payload.reg_end_date_time)
    validate_schedule(start, end, reg_start, reg_end)

    event = models.Event(
        host=host,
        title=payload.title.strip(),
        description=payload.description.strip(),
        location=payload.location.strip(),
        image_url=payload.image_url,
        tags=list(payload.tags),
        start_date_time=start,
        end_date_time=end,
        reg_start_date_time=reg_start,
        reg_end_date_time=reg_end,
        is_approved=host.role in AUTO_APPROVED_ROLES,
        participants=[],
    )
    session.add(event)
    await session.flush()

    logger.info(
        "Event created: event_id=%s host_id=%s approved=%s",
        event.id,
        host.id,
        event.is_approved,
    )
    return event


async def update_event(
    session: AsyncSession,
    event: models.Event,
    payload: schemas.EventUpdate,
    now: datetime,
) -> set[str]:
    """Apply a partial update and return the names of the fields that changed."""

    if has_event_started(event, now):
        raise errors.EventAlreadyStarted()

    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None
    }
    for field in _SCHEDULE_FIELDS:
        if field in changes:
            changes[field] = as_utc(changes[field])

    if any(field in changes for field in _SCHEDULE_FIELDS):
        validate_schedule(
            changes.get("start_date_time", event.start_date_time),
            changes.get("end_date_time", event.end_date_time),
            changes.get("reg_start_date_time", event.reg_start_date_time),
            changes.get("reg_end_date_time", event.reg_end_date_time),
        )

    changed: set[str] = set()
    for field, value in changes.items():
        if getattr(event, field) != value:
            setattr(event, field, value)
            changed.add(field)

    if changed:
        await session.flush()
        logger.info("Event updated: event_id=%s fields=%s", event.id, sorted(changed))
    return changed


async def _allocate_ticket_id(session: AsyncSession) -> str:
    for _ in range(TICKET_ID_ATTEMPTS):
        ticket_id = generate_ticket_id()
        taken = await session.scalar(
            select(models.EventParticipant.ticket_id).where(
                models.EventParticipant.ticket_id == ticket_id
            )
        )
        if taken is None:
            return ticket_id
        logger.warning("Ticket id collision on %s, regenerating", ticket_id)
    raise errors.ConflictError("Could not allocate a unique ticket id, please retry")


def _is_ticket_clash(exc: IntegrityError) -> bool:
    # SQLite names the column, Postgres names the constraint.
    return "ticket_id" in str(exc.orig)


async def register(
    session: AsyncSession,
    event: models.Event,
    user: models.User,
    now: datetime,
) -> models.EventParticipant:
    """Register ``user`` for ``event`` and refresh the event's analytics."""

    if not event.is_approved:
        raise errors.EventNotApproved()
    if not is_registration_open(event, now):
        raise errors.RegistrationClosed()
    if find_participant(event, user.id) is not None:
        raise errors.AlreadyRegistered()

    ticket_id = await _allocate_ticket_id(session)
    participant = models.EventParticipant(
        user_id=user.id,
        user=user,
        ticket_id=ticket_id,
        registered_at=now,
    )
    event.participants.append(participant)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        if _is_ticket_clash(exc):
            logger.warning("Ticket id clash on insert: ticket_id=%s", ticket_id)
            raise errors.ConflictError(
                "Could not allocate a unique ticket id, please retry"
            ) from exc
        logger.warning(
            "Concurrent registration rejected by store: event_id=%s user_id=%s",
            event.id,
            user.id,
        )
        raise errors.AlreadyRegistered() from exc

    await recompute_event_analytics(session, event.id, now=now)
    logger.info(
        "Registered user_id=%s for event_id=%s ticket_id=%s",
        user.id,
        event.id,
        participant.ticket_id,
    )
    return participant


async def issue_otp(session: AsyncSession, event: models.Event, now: datetime) -> str:
    """Replace the event's check-in code with a fresh one valid for 15 minutes."""

    event.otp = generate_otp()
    event.otp_expires_at = now + OTP_VALIDITY
    await session.flush()
    logger.info("OTP issued for event_id=%s (expires_at=%s)", event.id, event.otp_expires_at)
    return event.otp


async def verify_otp(
    session: AsyncSession,
    event: models.Event,
    user: models.User,
    otp: str,
    now: datetime,
) -> models.EventParticipant:
    """Mark ``user`` as attended when ``otp`` matches the event's live code.

    Codes are not consumed: every participant presenting the same code before
    it expires is checked in, and repeating a check-in is a no-op success.
    """

    if not has_event_started(event, now):
        raise errors.EventNotStarted()
    if not event.otp or event.otp_expires_at is None:
        raise errors.NoActiveOTP()
    if now > event.otp_expires_at:
        raise errors.OTPExpired()
    if otp.strip() != event.otp:
        raise errors.OTPMismatch()

    participant = find_participant(event, user.id)
    if participant is None:
        raise errors.NotRegistered()

    if not participant.attended:
        participant.attended = True
        await session.flush()
        logger.info("Check-in recorded: event_id=%s user_id=%s", event.id, user.id)

    await recompute_event_analytics(session, event.id, now=now)
    return participant


async def submit_feedback(
    session: AsyncSession,
    event: models.Event,
    user: models.User,
    rating: int,
    comment: str,
    now: datetime,
) -> models.Feedback:
    """Record a participant's rating once the event is over."""

    if not has_event_ended(event, now):
        raise errors.EventNotEnded()
    if find_participant(event, user.id) is None:
        raise errors.NotAParticipant()

    existing = await session.scalar(
        select(models.Feedback.id).where(
            models.Feedback.event_id == event.id,
            models.Feedback.user_id == user.id,
        )
    )
    if existing is not None:
        raise errors.DuplicateFeedback()

    if not MIN_RATING <= rating <= MAX_RATING:
        raise errors.InvalidRating()

    feedback = models.Feedback(
        event_id=event.id,
        user_id=user.id,
        rating=rating,
        comment=(comment or "").strip(),
        submitted_at=now,
    )
    session.add(feedback)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise errors.DuplicateFeedback() from exc

    await recompute_event_analytics(session, event.id, now=now)
    logger.info(
        "Feedback submitted: event_id=%s user_id=%s rating=%d", event.id, user.id, rating
    )
    return feedback


async def list_feedback(session: AsyncSession, event_id: uuid.UUID) -> list[models.Feedback]:
    result = await session.execute(
        select(models.Feedback)
        .where(models.Feedback.event_id == event_id)
        .order_by(models.Feedback.submitted_at.desc())
    )
    return list(result.scalars().all())
