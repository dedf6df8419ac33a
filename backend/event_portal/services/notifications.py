"""Outbound notification queue and its background delivery worker.

Request handlers publish :class:`Notification` objects and return at once; a
single worker task started in the application lifespan drains the queue and
hands each message to the mail transport. Delivery failures are logged and
dropped, never retried, and never reach the request that triggered them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models
from . import email as templates
from .email import (
    EmailServiceError,
    RenderedEmail,
    ResendEmailService,
    get_mail_settings,
    get_resend_email_service,
)

logger = logging.getLogger(__name__)

REMINDER_WINDOW = timedelta(minutes=30)


@dataclass(frozen=True, slots=True)
class Notification:
    to_email: str
    email: RenderedEmail
    context_label: str


class NotificationDispatcher:
    """Queue-backed, fire-and-forget email publisher."""

    def __init__(self, email_service: ResendEmailService, *, max_concurrency: int = 5) -> None:
        self._email_service = email_service
        self._queue: asyncio.Queue[Optional[Notification]] = asyncio.Queue()
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._worker: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def email_service(self) -> ResendEmailService:
        return self._email_service

    def start(self) -> None:
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
        logger.info("Notification dispatcher started")

    async def stop(self) -> None:
        """Deliver everything already queued, then stop the worker."""

        if self._worker is None:
            return
        await self._queue.put(None)
        await self._worker
        self._worker = None
        logger.info("Notification dispatcher stopped")

    def publish(self, notification: Notification) -> None:
        self._queue.put_nowait(notification)
        logger.debug(
            "Queued %s notification for %s (pending=%d)",
            notification.context_label,
            notification.to_email,
            self._queue.qsize(),
        )

    def publish_many(self, notifications: Iterable[Notification]) -> None:
        for notification in notifications:
            self.publish(notification)

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                if notification is None:
                    return
                await self.deliver(notification)
            except Exception:  # pragma: no cover - keep the worker alive
                logger.exception("Unexpected error while delivering notification")
            finally:
                self._queue.task_done()

    async def deliver(self, notification: Notification) -> bool:
        """Send one notification now; returns ``False`` if the transport failed."""

        async with self._semaphore:
            try:
                await self._email_service.send(
                    notification.to_email,
                    notification.email,
                    context_label=notification.context_label,
                )
            except EmailServiceError:
                logger.exception(
                    "Failed to deliver %s email to %s",
                    notification.context_label,
                    notification.to_email,
                )
                return False
        return True

    async def deliver_many(self, notifications: Sequence[Notification]) -> int:
        """Send a batch with bounded concurrency and return how many succeeded."""

        results = await asyncio.gather(
            *(self.deliver(notification) for notification in notifications),
            return_exceptions=True,
        )
        delivered = 0
        for notification, result in zip(notifications, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error delivering %s email to %s: %s",
                    notification.context_label,
                    notification.to_email,
                    result,
                )
            elif result:
                delivered += 1
        return delivered

    # Lifecycle notifications

    def welcome(self, user: models.User, decline_url: str) -> None:
        self.publish(Notification(user.email, templates.welcome_email(user, decline_url), "welcome"))

    def login_alert(self, user: models.User, logged_in_at: datetime, decline_url: str) -> None:
        self.publish(
            Notification(
                user.email,
                templates.login_alert_email(user, logged_in_at, decline_url),
                "login_alert",
            )
        )

    def registration_confirmed(
        self, user: models.User, event: models.Event, ticket_id: str
    ) -> None:
        self.publish(
            Notification(
                user.email,
                templates.registration_confirmed_email(user, event, ticket_id),
                "registration_confirmed",
            )
        )

    def event_updated(self, event: models.Event) -> None:
        email = templates.event_updated_email(event)
        self.publish_many(
            Notification(address, email, "event_updated")
            for address in _participant_emails(event)
        )

    def event_cancelled(self, event: models.Event) -> None:
        email = templates.event_cancelled_email(event)
        self.publish_many(
            Notification(address, email, "event_cancelled")
            for address in _participant_emails(event)
        )

    def event_moderated(self, event: models.Event, *, approved: bool) -> None:
        if approved:
            email, label = templates.event_approved_email(event), "event_approved"
        else:
            email, label = templates.event_rejected_email(event), "event_rejected"
        self.publish(Notification(event.host.email, email, label))

    def role_changed(self, user: models.User, new_role: models.UserRole) -> None:
        self.publish(
            Notification(user.email, templates.role_changed_email(user, new_role), "role_changed")
        )

    async def send_bulk_reminders(
        self, session: AsyncSession, hours: int, now: datetime
    ) -> int:
        """Email every participant of approved events starting ``hours`` from ``now``.

        ``hours == 0`` targets events that are live right now; otherwise events
        starting within thirty minutes either side of ``now + hours``.
        """

        query = (
            select(models.Event)
            .options(
                selectinload(models.Event.participants).selectinload(models.EventParticipant.user)
            )
            .where(models.Event.is_approved.is_(True))
            .execution_options(populate_existing=True)
        )
        if hours == 0:
            query = query.where(
                models.Event.start_date_time <= now,
                models.Event.end_date_time >= now,
            )
            label = "now (Live!)"
        else:
            target = now + timedelta(hours=hours)
            query = query.where(
                models.Event.start_date_time >= target - REMINDER_WINDOW,
                models.Event.start_date_time <= target + REMINDER_WINDOW,
            )
            label = f"{hours} hours"

        result = await session.execute(query)
        events = result.scalars().all()

        notifications = [
            Notification(address, templates.reminder_email(event, label), "reminder")
            for event in events
            for address in _participant_emails(event)
        ]
        delivered = await self.deliver_many(notifications)
        logger.info(
            "Sent %d of %d reminders across %d events for %d hours",
            delivered,
            len(notifications),
            len(events),
            hours,
        )
        return delivered


def _participant_emails(event: models.Event) -> list[str]:
    return [
        participant.user.email
        for participant in event.participants
        if participant.user is not None and participant.user.email
    ]


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher; FastAPI dependency and lifespan hook."""

    return NotificationDispatcher(
        get_resend_email_service(),
        max_concurrency=get_mail_settings().max_concurrency,
    )
