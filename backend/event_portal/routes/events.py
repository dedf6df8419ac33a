"""Event discovery and management endpoints."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_session
from ..permissions import Action, authorize
from ..services import lifecycle
from ..services.notifications import NotificationDispatcher, get_notification_dispatcher
from ..utils import get_now, parse_uuid

router = APIRouter(prefix="/api/events", tags=["events"])

logger = logging.getLogger(__name__)


def _events_query():
    return (
        select(models.Event)
        .options(selectinload(models.Event.participants))
        .order_by(models.Event.start_date_time)
    )


async def _list_events(session: AsyncSession, query) -> list[schemas.EventRead]:
    result = await session.execute(query)
    return [schemas.EventRead.model_validate(event) for event in result.scalars().all()]


@router.get("", response_model=list[schemas.EventRead])
async def list_approved_events(
    session: AsyncSession = Depends(get_session),
) -> list[schemas.EventRead]:
    return await _list_events(session, _events_query().where(models.Event.is_approved.is_(True)))


@router.get("/all", response_model=list[schemas.EventRead])
async def list_all_events(
    session: AsyncSession = Depends(get_session),
) -> list[schemas.EventRead]:
    return await _list_events(session, _events_query())


@router.get("/my", response_model=list[schemas.EventRead])
async def list_my_events(
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
) -> list[schemas.EventRead]:
    return await _list_events(
        session, _events_query().where(models.Event.host_id == current_user.id)
    )


@router.post("", response_model=schemas.EventMutationResponse, status_code=201)
async def create_event(
    payload: schemas.EventCreate,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> schemas.EventMutationResponse:
    event = await lifecycle.create_event(session, current_user, payload, now)
    await session.commit()

    message = "Event created successfully"
    if not event.is_approved:
        message = f"{message} (Pending admin approval)"
    return schemas.EventMutationResponse(
        message=message, event=schemas.EventRead.model_validate(event)
    )


@router.get("/{event_id}", response_model=schemas.EventRead)
async def get_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
) -> schemas.EventRead:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    return schemas.EventRead.model_validate(event)


@router.put("/{event_id}", response_model=schemas.EventMutationResponse)
async def update_event(
    event_id: str,
    payload: schemas.EventUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    now: datetime = Depends(get_now),
) -> schemas.EventMutationResponse:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    authorize(Action.event_update, current_user, event)

    changed = await lifecycle.update_event(session, event, payload, now)
    await session.commit()

    if changed:
        dispatcher.event_updated(event)
    return schemas.EventMutationResponse(
        message="Event updated", event=schemas.EventRead.model_validate(event)
    )


@router.delete("/{event_id}", response_model=schemas.MessageResponse)
async def delete_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> schemas.MessageResponse:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    authorize(Action.event_delete, current_user, event)

    await session.delete(event)
    await session.commit()
    logger.info("Event deleted: event_id=%s by user_id=%s", event.id, current_user.id)

    dispatcher.event_cancelled(event)
    return schemas.MessageResponse(message="Event deleted")
