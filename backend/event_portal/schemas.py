"""Pydantic models for API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt, field_validator

from .models import (
    DeletionRequestType,
    LogType,
    MessageStatus,
    MessageType,
    ParticipantStatus,
    UserRole,
)


def _to_camel(string: str) -> str:
    """Convert ``snake_case`` strings to ``camelCase``."""

    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    """Base model that renders JSON keys using ``camelCase``."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(BaseModel):
    message: str


# Accounts

# bcrypt refuses secrets longer than 72 bytes.
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class UserRegister(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=MAX_PASSWORD_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class LoginRequest(CamelModel):
    identifier: str = Field(..., min_length=1, description="Username or email")
    password: str


class ExperienceEntry(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    year: Optional[int] = None


class CertificationEntry(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    issued_by: Optional[str] = Field(None, max_length=200)
    proof_url: Optional[str] = None


class UserSummary(CamelModel):
    id: UUID
    username: str
    email: str
    role: UserRole


class UserRead(UserSummary):
    bio: str = ""
    skills: List[str] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    portfolio_links: List[str] = Field(default_factory=list)
    certifications: List[CertificationEntry] = Field(default_factory=list)
    verified_badge: bool = False
    date_joined: datetime


class AuthResponse(CamelModel):
    token: str
    user: UserRead


class ProfileResponse(CamelModel):
    message: Optional[str] = None
    user: UserRead


class ProfileUpdate(CamelModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    skills: Optional[List[str]] = None
    experience: Optional[List[ExperienceEntry]] = None
    portfolio_links: Optional[List[str]] = None
    certifications: Optional[List[CertificationEntry]] = None


class PasswordUpdate(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=MAX_PASSWORD_BYTES)

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


# Events


class EventCreate(CamelModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    location: str = Field(..., min_length=1, max_length=300)
    image_url: str = ""
    tags: List[str] = Field(default_factory=list)
    start_date_time: datetime
    end_date_time: datetime
    reg_start_date_time: Optional[datetime] = Field(
        None, description="Defaults to the time of creation"
    )
    reg_end_date_time: datetime


class EventUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    location: Optional[str] = Field(None, min_length=1, max_length=300)
    image_url: Optional[str] = None
    tags: Optional[List[str]] = None
    start_date_time: Optional[datetime] = None
    end_date_time: Optional[datetime] = None
    reg_start_date_time: Optional[datetime] = None
    reg_end_date_time: Optional[datetime] = None


class ParticipantRead(CamelModel):
    user_id: UUID
    status: ParticipantStatus
    ticket_id: str
    attended: bool
    registered_at: datetime


class EventRead(CamelModel):
    id: UUID
    host_id: UUID
    title: str
    description: str
    location: str
    image_url: str
    tags: List[str]
    start_date_time: datetime
    end_date_time: datetime
    reg_start_date_time: datetime
    reg_end_date_time: datetime
    is_approved: bool
    participants: List[ParticipantRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class EventMutationResponse(CamelModel):
    message: str
    event: EventRead


# Registration and check-in


class RegistrationResponse(CamelModel):
    message: str
    ticket_id: str


class OTPResponse(CamelModel):
    message: str
    otp: str
    expires_at: datetime


class CheckInRequest(CamelModel):
    otp: str


# Feedback and analytics


class FeedbackCreate(CamelModel):
    rating: StrictInt
    comment: str = Field("", max_length=1000)


class FeedbackRead(CamelModel):
    id: UUID
    user_id: UUID
    event_id: UUID
    rating: int
    comment: str
    submitted_at: datetime


class AnalyticsRead(CamelModel):
    event_id: UUID
    total_registrations: int
    total_check_ins: int
    total_feedbacks: int
    average_rating: float
    engagement_score: float
    generated_at: datetime


class AnalyticsUpdateResponse(CamelModel):
    message: str
    analytics: AnalyticsRead


# Administration


class UserRoleResponse(CamelModel):
    message: str
    user: UserRead


class LogRead(CamelModel):
    id: UUID
    admin_id: Optional[UUID]
    admin: Optional[UserSummary] = None
    message: str
    type: LogType
    type_id: UUID
    created_at: datetime


class LogPage(CamelModel):
    logs: List[LogRead]
    total_pages: int
    current_page: int
    total: int


class LogStat(CamelModel):
    type: LogType
    count: int


# Messages and email links


class MessageCreate(CamelModel):
    message: str = Field(..., min_length=10, max_length=2000)


class MessageRead(CamelModel):
    id: UUID
    user_id: UUID
    user: Optional[UserSummary] = None
    message: str
    type: MessageType
    request_type: Optional[DeletionRequestType] = None
    status: MessageStatus
    submitted_at: datetime


class DeletedUser(CamelModel):
    username: str
    email: str


class DeletedUserResponse(CamelModel):
    message: str
    deleted_user: DeletedUser


MAX_REMINDER_HOURS = 24 * 365


class ReminderRequest(CamelModel):
    # Up to one year ahead.
    hours: List[Annotated[int, Field(ge=0, le=MAX_REMINDER_HOURS)]] = Field(..., min_length=1)


class ReminderResponse(CamelModel):
    message: str
    results: Dict[str, int]
