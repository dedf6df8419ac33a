"""Post-event feedback endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_session
from ..services import lifecycle
from ..utils import get_now, parse_uuid

router = APIRouter(prefix="/api/feedback", tags=["feedback"])


@router.post("/{event_id}/feedback", response_model=schemas.MessageResponse)
async def submit_feedback(
    event_id: str,
    payload: schemas.FeedbackCreate,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
    now: datetime = Depends(get_now),
) -> schemas.MessageResponse:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    await lifecycle.submit_feedback(
        session, event, current_user, payload.rating, payload.comment, now
    )
    await session.commit()
    return schemas.MessageResponse(message="Feedback submitted successfully")


@router.get("/{event_id}/feedback", response_model=list[schemas.FeedbackRead])
async def list_event_feedback(
    event_id: str,
    session: AsyncSession = Depends(get_session),
) -> list[schemas.FeedbackRead]:
    feedback = await lifecycle.list_feedback(session, parse_uuid(event_id, "event"))
    return [schemas.FeedbackRead.model_validate(entry) for entry in feedback]
