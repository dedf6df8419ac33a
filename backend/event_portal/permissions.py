"""Role model and the per-action permission table.

Every mutating endpoint calls :func:`authorize` with the caller loaded fresh
from the store and, where relevant, the resource being acted on. Each
:class:`Action` maps to the set of roles that may attempt it and an optional
predicate over ``(actor, target)`` that returns a denial message or ``None``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from . import errors, models
from .models import UserRole

logger = logging.getLogger(__name__)

ROLE_ORDER: tuple[UserRole, ...] = (
    UserRole.user,
    UserRole.organizer,
    UserRole.admin,
    UserRole.owner,
)

MODERATORS = frozenset({UserRole.admin, UserRole.owner})
ALL_ROLES = frozenset(ROLE_ORDER)
AUTO_APPROVED_ROLES = frozenset({UserRole.organizer, UserRole.admin, UserRole.owner})


def role_rank(role: UserRole) -> int:
    return ROLE_ORDER.index(role)


class Action(enum.Enum):
    event_update = "event.update"
    event_delete = "event.delete"
    event_moderate = "event.moderate"
    event_admin_delete = "event.admin_delete"
    otp_issue = "otp.issue"
    analytics_view = "analytics.view"
    analytics_recompute = "analytics.recompute"
    user_view = "user.view"
    user_promote_admin = "user.promote_admin"
    user_promote_organizer = "user.promote_organizer"
    user_demote = "user.demote"
    user_delete = "user.delete"
    deletion_request_execute = "deletion_request.execute"
    message_moderate = "message.moderate"
    reminders_send = "reminders.send"
    logs_view = "logs.view"


Predicate = Callable[[models.User, Any], Optional[str]]


@dataclass(frozen=True)
class Rule:
    roles: frozenset[UserRole]
    denied_message: str = "You do not have permission to perform this action"
    predicate: Optional[Predicate] = None


def _is_host(actor: models.User, event: models.Event) -> bool:
    return event.host_id == actor.id


def _host_or_moderator(message: str) -> Predicate:
    def check(actor: models.User, event: models.Event) -> Optional[str]:
        if _is_host(actor, event) or actor.role in MODERATORS:
            return None
        return message

    return check


def _event_delete(actor: models.User, event: models.Event) -> Optional[str]:
    if actor.role == UserRole.admin and event.host.role == UserRole.owner:
        return "Admins cannot delete events created by owner"
    if _is_host(actor, event) or actor.role in MODERATORS:
        return None
    return "You do not have permission to delete this event"


def _admin_event_delete(actor: models.User, event: models.Event) -> Optional[str]:
    if actor.role == UserRole.admin and event.host.role == UserRole.owner:
        return "Admins cannot delete events created by owner"
    return None


def _role_change(action_label: str) -> Predicate:
    def check(actor: models.User, target: models.User) -> Optional[str]:
        if target.role == UserRole.owner:
            return "Cannot modify owner role"
        if target.role == UserRole.admin and actor.role != UserRole.owner:
            return f"Only owner can {action_label} admin"
        return None

    return check


def _user_delete(actor: models.User, target: models.User) -> Optional[str]:
    if target.role == UserRole.owner:
        return "Cannot delete owner account"
    return None


def _deletion_request(actor: models.User, target: models.User) -> Optional[str]:
    if target.role == UserRole.owner:
        return "Cannot delete owner account"
    if target.role == UserRole.admin and actor.role != UserRole.owner:
        return "Only owner can delete admin accounts"
    return None


PERMISSIONS: Mapping[Action, Rule] = {
    Action.event_update: Rule(
        ALL_ROLES,
        predicate=_host_or_moderator("You do not have permission to update this event"),
    ),
    Action.event_delete: Rule(ALL_ROLES, predicate=_event_delete),
    Action.event_moderate: Rule(MODERATORS, "Only admins and the owner can moderate events"),
    Action.event_admin_delete: Rule(
        MODERATORS, "Only admins and the owner can delete events", _admin_event_delete
    ),
    Action.otp_issue: Rule(
        ALL_ROLES,
        predicate=_host_or_moderator(
            "You do not have permission to generate OTP for this event"
        ),
    ),
    Action.analytics_view: Rule(
        ALL_ROLES,
        predicate=_host_or_moderator(
            "You do not have permission to view analytics for this event"
        ),
    ),
    Action.analytics_recompute: Rule(
        MODERATORS, "Only admins and the owner can recompute analytics"
    ),
    Action.user_view: Rule(MODERATORS, "Only admins and the owner can view users"),
    Action.user_promote_admin: Rule(
        MODERATORS, "Only admins and the owner can promote users", _role_change("modify")
    ),
    Action.user_promote_organizer: Rule(
        MODERATORS, "Only admins and the owner can promote users", _role_change("modify")
    ),
    Action.user_demote: Rule(
        MODERATORS, "Only admins and the owner can demote users", _role_change("demote")
    ),
    Action.user_delete: Rule(
        frozenset({UserRole.owner}), "Only owner can delete users", _user_delete
    ),
    Action.deletion_request_execute: Rule(
        MODERATORS,
        "Only admins and the owner can process deletion requests",
        _deletion_request,
    ),
    Action.message_moderate: Rule(MODERATORS, "Only admins and the owner can manage messages"),
    Action.reminders_send: Rule(MODERATORS, "Only admins and the owner can send reminders"),
    Action.logs_view: Rule(MODERATORS, "Only admins and the owner can view logs"),
}


def check(action: Action, actor: models.User, target: Any = None) -> Optional[str]:
    """Return the denial message for ``actor`` performing ``action``, or ``None``."""

    denial = check_role(action, actor)
    if denial is not None:
        return denial
    rule = PERMISSIONS[action]
    if rule.predicate is not None:
        return rule.predicate(actor, target)
    return None


def check_role(action: Action, actor: models.User) -> Optional[str]:
    """Like :func:`check` but only consults the role allow-list."""

    rule = PERMISSIONS[action]
    if actor.role not in rule.roles:
        return rule.denied_message
    return None


def _deny(action: Action, actor: models.User, denial: str) -> None:
    logger.warning(
        "Permission denied: user_id=%s role=%s action=%s reason=%s",
        actor.id,
        actor.role.value,
        action.value,
        denial,
    )
    raise errors.ForbiddenError(denial)


def authorize_role(action: Action, actor: models.User) -> None:
    """Reject callers whose role can never perform ``action``, before any lookup."""

    denial = check_role(action, actor)
    if denial is not None:
        _deny(action, actor, denial)


def authorize(action: Action, actor: models.User, target: Any = None) -> None:
    """Raise :class:`errors.ForbiddenError` unless ``actor`` may perform ``action``."""

    denial = check(action, actor, target)
    if denial is not None:
        _deny(action, actor, denial)
