"""Domain errors raised by services and rendered by the API exception handler."""

from __future__ import annotations

from fastapi import status


class PortalError(RuntimeError):
    """Base class for errors surfaced to API callers with an HTTP status."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PortalError):
    """Malformed or missing input, or a violated schema constraint."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ForbiddenError(PortalError):
    """The caller's role or ownership does not allow the action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to perform this action"


class ConflictError(PortalError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class StateError(PortalError):
    """The action is not valid for the resource's current time window or state."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Action not allowed at this time"


class AuthenticationError(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


# Lookups


class EventNotFound(NotFoundError):
    default_message = "Event not found"


class UserNotFound(NotFoundError):
    default_message = "User not found"


class MessageNotFound(NotFoundError):
    default_message = "Message not found"


class AnalyticsNotFound(NotFoundError):
    default_message = "No analytics found"


# Registration and check-in


class RegistrationClosed(StateError):
    default_message = "Registration closed"


class EventNotApproved(StateError):
    default_message = "Event has not been approved yet"


class AlreadyRegistered(ConflictError):
    default_message = "Already registered"


class NoActiveOTP(StateError):
    default_message = "No OTP has been generated for this event"


class OTPExpired(StateError):
    default_message = "OTP expired"


class OTPMismatch(ValidationError):
    default_message = "Invalid OTP"


class NotRegistered(StateError):
    default_message = "User not registered for event"


class EventNotStarted(StateError):
    default_message = "Event has not started yet"


class EventAlreadyStarted(StateError):
    default_message = "Event already started"


# Feedback


class EventNotEnded(StateError):
    default_message = "Event not finished yet"


class NotAParticipant(ForbiddenError):
    default_message = "Only registered participants can submit feedback"


class DuplicateFeedback(ConflictError):
    default_message = "You have already submitted feedback for this event"


class InvalidRating(ValidationError):
    default_message = "Rating must be an integer between 1 and 5"
