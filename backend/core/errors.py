"""Scheduling error taxonomy.

Each error carries the HTTP status it is rendered with and an optional
payload that is merged into the response envelope next to ``message``.
"""

from typing import Any

from fastapi import status


class SchedulingError(Exception):
    """Base exception for scheduling operations."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, payload: dict[str, Any] | None = None, error: str | None = None):
        self.message = message
        self.payload = payload or {}
        self.error = error
        super().__init__(message)

    def to_content(self) -> dict[str, Any]:
        content: dict[str, Any] = {'message': self.message, **self.payload}
        if self.error:
            content['error'] = self.error
        return content


class NotFoundError(SchedulingError):
    """Raised when a therapist store, date entry, slot or appointment is missing."""

    status_code = status.HTTP_404_NOT_FOUND


class InvalidRequestError(SchedulingError):
    """Raised when a slot falls outside declared availability or a batch is malformed."""


class ConflictError(SchedulingError):
    """Raised for overlapping or duplicate slots and double bookings."""


class InternalError(SchedulingError):
    """Raised when the store fails part way through an operation."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
