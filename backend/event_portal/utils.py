"""Utility helpers for ticket and OTP generation, time and id parsing."""

from __future__ import annotations

import secrets
import time
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from . import errors

TICKET_PREFIX = "DEMPEV"
OTP_DIGITS = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_now() -> datetime:
    """FastAPI dependency returning the request's notion of "now"."""

    return utcnow()


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime, treating naive values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_ticket_id() -> str:
    """Generate a human-shareable ticket id: prefix, time component, random suffix."""

    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = 1000 + secrets.randbelow(9000)
    return f"{TICKET_PREFIX}{timestamp}{suffix}"


def generate_otp() -> str:
    """Generate a six digit numeric one-time code (100000-999999)."""

    return str(100000 + secrets.randbelow(900000))


def parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise errors.ValidationError(f"Invalid {label} id") from exc


def round2(value: float) -> float:
    """Round half away from zero to two decimal places."""

    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
