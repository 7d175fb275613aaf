"""Domain errors raised by messaging services and rendered by the API layer."""

from __future__ import annotations


class MessagingError(Exception):
    """Base class; `status_code` is the HTTP status used by the REST handlers."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MessagingError):
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(MessagingError):
    status_code = 404
    default_message = "Not found"


class ForbiddenError(MessagingError):
    status_code = 403
    default_message = "Not authorized"


class PersistenceError(MessagingError):
    """The message store failed a read or write. Never retried here."""

    status_code = 500
    default_message = "Server error"


class AuthenticationError(MessagingError):
    status_code = 401
    default_message = "Not authorized to access this route"
