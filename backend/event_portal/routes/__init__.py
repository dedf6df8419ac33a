"""Route modules for the backend application."""

__all__ = [
    "admin",
    "analytics",
    "auth",
    "email",
    "events",
    "feedback",
    "messages",
    "registration",
]
