"""Engagement analytics derived from registrations, check-ins and feedback."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import errors, models
from ..utils import round2, utcnow

logger = logging.getLogger(__name__)

ATTENDANCE_WEIGHT = 0.5
FEEDBACK_WEIGHT = 0.3
RATING_WEIGHT = 0.2
MAX_RATING = 5


def calculate_engagement(
    total_registrations: int,
    total_check_ins: int,
    total_feedbacks: int,
    average_rating: float,
) -> float:
    """Blend attendance, feedback participation and rating into a 0-100 score.

    An event nobody registered for always scores ``0``.
    """

    if total_registrations <= 0:
        return 0.0

    attendance_ratio = total_check_ins / total_registrations
    feedback_ratio = total_feedbacks / total_registrations
    rating_ratio = average_rating / MAX_RATING

    score = (
        attendance_ratio * ATTENDANCE_WEIGHT
        + feedback_ratio * FEEDBACK_WEIGHT
        + rating_ratio * RATING_WEIGHT
    ) * 100
    return round2(score)


async def recompute_event_analytics(
    session: AsyncSession,
    event_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
) -> models.EventAnalytics:
    """Re-derive every aggregate for ``event_id`` and upsert its analytics row.

    Stored aggregates are never adjusted incrementally; each call counts the
    source rows visible to ``session``, including rows flushed earlier in the
    current transaction. The caller owns the commit.
    """

    event_exists = await session.scalar(
        select(models.Event.id).where(models.Event.id == event_id)
    )
    if event_exists is None:
        raise errors.EventNotFound()

    participant_counts = await session.execute(
        select(
            func.count(),
            func.count().filter(models.EventParticipant.attended.is_(True)),
        ).where(models.EventParticipant.event_id == event_id)
    )
    total_registrations, total_check_ins = participant_counts.one()

    feedback_stats = await session.execute(
        select(func.count(models.Feedback.id), func.avg(models.Feedback.rating)).where(
            models.Feedback.event_id == event_id
        )
    )
    total_feedbacks, mean_rating = feedback_stats.one()
    average_rating = float(mean_rating) if total_feedbacks else 0.0

    engagement_score = calculate_engagement(
        total_registrations, total_check_ins, total_feedbacks, average_rating
    )

    result = await session.execute(
        select(models.EventAnalytics).where(models.EventAnalytics.event_id == event_id)
    )
    analytics = result.scalar_one_or_none()
    if analytics is None:
        analytics = models.EventAnalytics(event_id=event_id)
        session.add(analytics)

    analytics.total_registrations = total_registrations
    analytics.total_check_ins = total_check_ins
    analytics.total_feedbacks = total_feedbacks
    analytics.average_rating = round2(average_rating)
    analytics.engagement_score = engagement_score
    analytics.generated_at = now or utcnow()
    await session.flush()

    logger.debug(
        "Recomputed analytics for event_id=%s (registrations=%d check_ins=%d feedbacks=%d score=%.2f)",
        event_id,
        total_registrations,
        total_check_ins,
        total_feedbacks,
        engagement_score,
    )
    return analytics


async def get_event_analytics(session: AsyncSession, event_id: uuid.UUID) -> models.EventAnalytics:
    result = await session.execute(
        select(models.EventAnalytics).where(models.EventAnalytics.event_id == event_id)
    )
    analytics = result.scalar_one_or_none()
    if analytics is None:
        raise errors.AnalyticsNotFound()
    return analytics
