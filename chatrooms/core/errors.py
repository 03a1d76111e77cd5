"""Errors raised by the chat services and reported back to a single connection."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for chat errors. ``detail`` is what the client gets to see."""

    detail: str = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class ValidationError(ChatError):
    """The request was understood but cannot be applied. No state changes."""


class UsernameTaken(ValidationError):
    detail = "Username taken!"


class InvalidCredentials(ValidationError):
    detail = "Invalid credentials!"


class RoomExists(ValidationError):
    detail = "Room exists!"


class RoomNotFound(ValidationError):
    detail = "Room not found!"


class InvalidPayload(ValidationError):
    detail = "Invalid request."


class RepositoryError(ChatError):
    """Persistence layer unreachable or a query failed."""


class DeleteError(RepositoryError):
    detail = "Delete failed."
