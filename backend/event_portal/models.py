"""SQLAlchemy ORM models for the event management portal backend."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .utils import as_utc, utcnow


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return as_utc(value)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return as_utc(value)


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


class UserRole(enum.Enum):
    user = "user"
    organizer = "organizer"
    admin = "admin"
    owner = "owner"


class ParticipantStatus(enum.Enum):
    free = "free"
    paid = "paid"
    pending = "pending"


class LogType(enum.Enum):
    event_approval = "event_approval"
    event_deletion = "event_deletion"
    user_to_organizer_approval = "user_to_organizer_approval"
    user_to_admin_approval = "user_to_admin_approval"
    other = "other"


class MessageType(enum.Enum):
    general = "general"
    account_deletion_request = "account_deletion_request"


class DeletionRequestType(enum.Enum):
    register_decline = "register_decline"
    login_decline = "login_decline"


class MessageStatus(enum.Enum):
    pending = "pending"
    resolved = "resolved"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


class UpdatedAtMixin:
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class SchemaMigration(Base):
    __tablename__ = "app_schema_migrations"

    schema_hash: Mapped[str] = mapped_column(String, primary_key=True)
    applied_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, nullable=False
    )


class User(Base, TimestampMixin, UpdatedAtMixin):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("email", name="uq_users_email"),
        Index("idx_users_role", "role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"), default=UserRole.user, nullable=False
    )
    bio: Mapped[str] = mapped_column(Text, default="", nullable=False)
    skills: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    experience: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    portfolio_links: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    certifications: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    verified_badge: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    date_joined: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, nullable=False
    )

    hosted_events: Mapped[list["Event"]] = relationship(
        back_populates="host", cascade="all, delete-orphan", passive_deletes=True
    )


class Event(Base, TimestampMixin, UpdatedAtMixin):
    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_host_id", "host_id"),
        Index("idx_events_start_date_time", "start_date_time"),
        Index("idx_events_is_approved", "is_approved"),
        CheckConstraint("end_date_time > start_date_time", name="ck_events_end_after_start"),
        CheckConstraint(
            "reg_end_date_time > reg_start_date_time", name="ck_events_reg_end_after_reg_start"
        ),
        CheckConstraint(
            "reg_end_date_time <= start_date_time", name="ck_events_reg_end_before_start"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, default="", nullable=False)
    tags: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    start_date_time: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)
    end_date_time: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)
    reg_start_date_time: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, nullable=False
    )
    reg_end_date_time: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    otp: Mapped[Optional[str]] = mapped_column(String(6), nullable=True)
    otp_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(timezone=True), nullable=True
    )

    host: Mapped[User] = relationship(back_populates="hosted_events")
    participants: Mapped[list["EventParticipant"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EventParticipant.registered_at",
    )


class EventParticipant(Base):
    __tablename__ = "event_participants"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_participant"),
        UniqueConstraint("ticket_id", name="uq_event_participant_ticket_id"),
        Index("idx_event_participants_user_id", "user_id"),
    )

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[ParticipantStatus] = mapped_column(
        _enum_column(ParticipantStatus, "participant_status"),
        default=ParticipantStatus.free,
        nullable=False,
    )
    ticket_id: Mapped[str] = mapped_column(String(32), nullable=False)
    attended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    registered_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, nullable=False
    )

    event: Mapped[Event] = relationship(back_populates="participants")
    user: Mapped[User] = relationship()


class Feedback(Base, TimestampMixin):
    __tablename__ = "feedback"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_feedback_user_event"),
        Index("idx_feedback_event_id", "event_id"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_feedback_rating"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, nullable=False
    )


class EventAnalytics(Base, TimestampMixin):
    __tablename__ = "event_analytics"
    __table_args__ = (
        UniqueConstraint("event_id", name="uq_event_analytics_event_id"),
        Index("idx_event_analytics_engagement_score", "engagement_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    total_registrations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_check_ins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_feedbacks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    engagement_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, nullable=False
    )


class AdminLog(Base, TimestampMixin):
    __tablename__ = "admin_logs"
    __table_args__ = (
        Index("idx_admin_logs_admin_id", "admin_id"),
        Index("idx_admin_logs_type", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    type: Mapped[LogType] = mapped_column(_enum_column(LogType, "log_type"), nullable=False)
    type_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    admin: Mapped[Optional[User]] = relationship()


class Message(Base, TimestampMixin):
    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_user_id", "user_id"),
        Index("idx_messages_submitted_at", "submitted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[str] = mapped_column(String(2000), nullable=False)
    type: Mapped[MessageType] = mapped_column(
        _enum_column(MessageType, "message_type"), default=MessageType.general, nullable=False
    )
    request_type: Mapped[Optional[DeletionRequestType]] = mapped_column(
        _enum_column(DeletionRequestType, "deletion_request_type"), nullable=True
    )
    status: Mapped[MessageStatus] = mapped_column(
        _enum_column(MessageStatus, "message_status"),
        default=MessageStatus.pending,
        nullable=False,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), default=utcnow, nullable=False
    )

    user: Mapped[User] = relationship()
