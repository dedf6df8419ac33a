"""Append-only audit trail of administrative actions."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(slots=True)
class LogPage:
    logs: list[models.AdminLog]
    total_pages: int
    current_page: int
    total: int


async def create_log(
    session: AsyncSession,
    admin: models.User,
    message: str,
    log_type: models.LogType,
    type_id: uuid.UUID,
) -> models.AdminLog:
    """Record ``admin``'s action on the entity ``type_id``; the caller commits."""

    log = models.AdminLog(
        admin_id=admin.id,
        admin=admin,
        message=message[:1000],
        type=log_type,
        type_id=type_id,
    )
    session.add(log)
    await session.flush()
    logger.info(
        "Admin action logged: admin_id=%s type=%s type_id=%s",
        admin.id,
        log_type.value,
        type_id,
    )
    return log


async def get_logs(
    session: AsyncSession,
    *,
    log_type: Optional[models.LogType] = None,
    admin_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> LogPage:
    """Return one page of logs, newest first, with the matching total."""

    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    conditions = []
    if log_type is not None:
        conditions.append(models.AdminLog.type == log_type)
    if admin_id is not None:
        conditions.append(models.AdminLog.admin_id == admin_id)

    count_query = select(func.count()).select_from(models.AdminLog)
    page_query = select(models.AdminLog).options(selectinload(models.AdminLog.admin))
    if conditions:
        count_query = count_query.where(*conditions)
        page_query = page_query.where(*conditions)

    total = await session.scalar(count_query)
    result = await session.execute(
        page_query.order_by(models.AdminLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    total = total or 0
    return LogPage(
        logs=list(result.scalars().all()),
        total_pages=math.ceil(total / limit),
        current_page=page,
        total=total,
    )


async def get_log_stats(session: AsyncSession) -> list[tuple[models.LogType, int]]:
    """Count logs per type, most frequent first."""

    count = func.count(models.AdminLog.id)
    result = await session.execute(
        select(models.AdminLog.type, count)
        .group_by(models.AdminLog.type)
        .order_by(count.desc(), models.AdminLog.type)
    )
    return [(log_type, total) for log_type, total in result.all()]
