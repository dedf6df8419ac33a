"""Per-event engagement analytics endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import get_current_user, require_permission
from ..database import get_session
from ..permissions import Action, authorize
from ..services import lifecycle
from ..services.analytics import get_event_analytics, recompute_event_analytics
from ..utils import get_now, parse_uuid

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/{event_id}/analytics", response_model=schemas.AnalyticsRead)
async def read_event_analytics(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(get_current_user),
) -> schemas.AnalyticsRead:
    event = await lifecycle.load_event(session, parse_uuid(event_id, "event"))
    authorize(Action.analytics_view, current_user, event)

    analytics = await get_event_analytics(session, event.id)
    return schemas.AnalyticsRead.model_validate(analytics)


@router.post("/{event_id}/analytics/update", response_model=schemas.AnalyticsUpdateResponse)
async def update_event_analytics(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: models.User = Depends(require_permission(Action.analytics_recompute)),
    now: datetime = Depends(get_now),
) -> schemas.AnalyticsUpdateResponse:
    analytics = await recompute_event_analytics(session, parse_uuid(event_id, "event"), now=now)
    await session.commit()
    return schemas.AnalyticsUpdateResponse(
        message="Analytics updated", analytics=schemas.AnalyticsRead.model_validate(analytics)
    )
