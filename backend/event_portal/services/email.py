"""Email sending helpers backed by Resend."""

from __future__ import annotations

import html
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Mapping, Optional, Sequence

import httpx
from dotenv import find_dotenv, load_dotenv

from .. import models

logger = logging.getLogger(__name__)

_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)

PORTAL_NAME = "Digital Event Management Portal"


@dataclass(frozen=True, slots=True)
class MailSettings:
    """Configuration required to send transactional email via Resend.

    ``api_key`` may be empty, in which case delivery is skipped and logged.
    """

    from_email: str
    backend_url: str
    api_key: Optional[str] = None
    from_name: Optional[str] = None
    reply_to_email: Optional[str] = None
    api_base_url: str = "https://api.resend.com"
    request_timeout_seconds: float = 10.0
    max_concurrency: int = 5

    @property
    def normalized_backend_base(self) -> str:
        return self.backend_url.rstrip("/")

    @property
    def delivery_enabled(self) -> bool:
        return bool(self.api_key)


_ENVIRONMENT_KEYS: Mapping[str, Sequence[str]] = {
    "api_key": ("RESEND_API_KEY",),
    "from_email": ("RESEND_FROM_EMAIL", "EMAIL_FROM"),
    "backend_url": ("BACKEND_URL",),
    "from_name": ("RESEND_FROM_NAME",),
    "reply_to_email": ("RESEND_REPLY_TO_EMAIL",),
    "api_base_url": ("RESEND_API_BASE_URL",),
}

_NUMERIC_ENVIRONMENT_KEYS: Mapping[str, tuple[str, type]] = {
    "request_timeout_seconds": ("RESEND_HTTP_TIMEOUT_SECONDS", float),
    "max_concurrency": ("MAIL_MAX_CONCURRENCY", int),
}


def _read_first_env(names: Sequence[str]) -> Optional[str]:
    for env_name in names:
        value = os.getenv(env_name)
        if value is not None and value.strip() != "":
            return value
    return None


@lru_cache
def get_mail_settings() -> MailSettings:
    values: dict[str, object] = {
        "from_email": "no-reply@localhost",
        "backend_url": "http://localhost:8000",
    }
    for field_name, env_names in _ENVIRONMENT_KEYS.items():
        value = _read_first_env(env_names)
        if value is not None:
            values[field_name] = value

    for field_name, (env_name, cast) in _NUMERIC_ENVIRONMENT_KEYS.items():
        raw = _read_first_env((env_name,))
        if raw is None:
            continue
        try:
            values[field_name] = cast(raw)
        except ValueError as exc:  # pragma: no cover - configuration error
            raise RuntimeError(
                f"Mail environment variables are not configured: {env_name} must be a number"
            ) from exc

    if not values.get("api_key"):
        logger.warning("RESEND_API_KEY is not set; outbound email will be skipped")
    return MailSettings(**values)  # type: ignore[arg-type]


class EmailServiceError(RuntimeError):
    """Raised when an email could not be delivered."""


@dataclass(frozen=True, slots=True)
class EmailAction:
    label: str
    url: str


@dataclass(frozen=True, slots=True)
class RenderedEmail:
    subject: str
    heading: str
    paragraphs: tuple[str, ...]
    action: Optional[EmailAction] = None
    details: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def text_body(self) -> str:
        lines = [self.heading, "", *self.paragraphs]
        if self.details:
            lines.append("")
            lines.extend(f"{label}: {value}" for label, value in self.details)
        if self.action is not None:
            lines.extend(["", f"{self.action.label}: {self.action.url}"])
        return "\n".join(lines)

    @property
    def html_body(self) -> str:
        parts = [f"<h2>{html.escape(self.heading)}</h2>"]
        parts.extend(f"<p>{html.escape(paragraph)}</p>" for paragraph in self.paragraphs)
        if self.details:
            parts.append("<ul>")
            parts.extend(
                f"<li><strong>{html.escape(label)}:</strong> {html.escape(value)}</li>"
                for label, value in self.details
            )
            parts.append("</ul>")
        if self.action is not None:
            parts.append(
                f'<p><a href="{html.escape(self.action.url, quote=True)}">'
                f"{html.escape(self.action.label)}</a></p>"
            )
        return "\n".join(parts)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M %Z")


def welcome_email(user: models.User, decline_url: str) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Welcome to {PORTAL_NAME}",
        heading="Welcome to DEMP!",
        paragraphs=(f"Hi {user.username}, your account has been created successfully.",),
        details=(("Email", user.email),),
        action=EmailAction("I did not create this account", decline_url),
    )


def login_alert_email(user: models.User, logged_in_at: datetime, decline_url: str) -> RenderedEmail:
    return RenderedEmail(
        subject="New Login to Your DEMP Account",
        heading="New Login Detected",
        paragraphs=(
            f"Your account was logged into at {format_timestamp(logged_in_at)}.",
        ),
        action=EmailAction("This wasn't me", decline_url),
    )


def _event_details(event: models.Event) -> tuple[tuple[str, str], ...]:
    return (
        ("Location", event.location),
        ("Start", format_timestamp(event.start_date_time)),
        ("End", format_timestamp(event.end_date_time)),
    )


def registration_confirmed_email(
    user: models.User, event: models.Event, ticket_id: str
) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Registration Confirmed - {event.title}",
        heading="Event Registration Confirmed",
        paragraphs=(f"Hello {user.username}, you are registered for {event.title}.",),
        details=(*_event_details(event), ("Ticket ID", ticket_id)),
    )


def reminder_email(event: models.Event, time_remaining: str) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Reminder: {event.title}",
        heading="Event Reminder",
        paragraphs=(f"Your event {event.title} starts in {time_remaining}.",),
        details=(
            ("Location", event.location),
            ("Start", format_timestamp(event.start_date_time)),
        ),
    )


def event_updated_email(event: models.Event) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Event Updated - {event.title}",
        heading="Event Updated",
        paragraphs=(f"{event.title} has been updated. Please review the latest details.",),
        details=_event_details(event),
    )


def event_cancelled_email(event: models.Event) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Event Cancelled - {event.title}",
        heading="Event Cancelled",
        paragraphs=(f"{event.title} was cancelled.",),
    )


def event_approved_email(event: models.Event) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Event Approved - {event.title}",
        heading="Event Approved!",
        paragraphs=(f"{event.title} is now live and open for registration.",),
    )


def event_rejected_email(event: models.Event) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Event Not Approved - {event.title}",
        heading="Event Not Approved",
        paragraphs=(f"{event.title} was not approved.",),
    )


def role_changed_email(user: models.User, new_role: models.UserRole) -> RenderedEmail:
    return RenderedEmail(
        subject="Your Role Has Been Updated",
        heading="Role Updated",
        paragraphs=(f"Hi {user.username}, your role is now {new_role.value}.",),
    )


class ResendEmailService:
    """Send portal emails through Resend."""

    def __init__(self, settings: MailSettings) -> None:
        self._settings = settings

    @property
    def settings(self) -> MailSettings:
        return self._settings

    def _build_from_header(self) -> str:
        if self._settings.from_name:
            return f"{self._settings.from_name} <{self._settings.from_email}>"
        return self._settings.from_email

    def build_backend_link(self, path: str, token: str) -> str:
        base = self._settings.normalized_backend_base
        return str(httpx.URL(f"{base}{path}", params={"token": token}))

    async def send(
        self,
        to_email: str,
        email: RenderedEmail,
        *,
        context_label: str,
    ) -> Optional[dict]:
        """Deliver ``email``; returns the provider response or ``None`` when skipped."""

        if not self._settings.delivery_enabled:
            logger.info(
                "Skipping %s email to %s; RESEND_API_KEY is not configured",
                context_label,
                to_email,
            )
            return None

        headers = {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }

        from_header = self._build_from_header()
        json_payload: dict[str, object] = {
            "from": from_header,
            "to": [to_email],
            "subject": email.subject,
            "text": email.text_body,
            "html": email.html_body,
        }
        if self._settings.reply_to_email:
            json_payload["reply_to"] = [self._settings.reply_to_email]

        try:
            async with httpx.AsyncClient(
                base_url=self._settings.api_base_url,
                timeout=self._settings.request_timeout_seconds,
            ) as client:
                response = await client.post("/emails", json=json_payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmailServiceError(
                f"Could not reach Resend while sending {context_label} email: {exc}"
            ) from exc

        if response.status_code >= 400:
            detail = response.text
            logger.error("Resend failed to send %s email: %s", context_label, detail)
            raise EmailServiceError(
                f"Resend returned {response.status_code} while sending {context_label} email: {detail}"
            )

        logger.debug("Sent %s email to %s", context_label, to_email)
        return response.json()


@lru_cache
def get_resend_email_service() -> ResendEmailService:
    return ResendEmailService(get_mail_settings())
