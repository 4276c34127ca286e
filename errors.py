from typing import Optional


class VTTError(Exception):
    """Base for errors reported back to a single connection as an ERROR frame."""

    message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(VTTError):
    message = "Invalid request"


class NotFoundError(VTTError):
    message = "Room not found"


class PasswordMismatch(VTTError):
    message = "Invalid password"


class StoreUnavailable(Exception):
    """The durable backend could not be reached at startup."""
