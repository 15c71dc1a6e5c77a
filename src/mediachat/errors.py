"""Error taxonomy for the chat pipeline."""

from __future__ import annotations


class MediachatError(Exception):
    status_code = 500
    public_message: str | None = None

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def detail(self) -> str:
        return self.public_message or self.message or self.__class__.__name__


class ValidationError(MediachatError):
    """Malformed upload or request; raised before any side effect."""

    status_code = 400


class NotFoundError(MediachatError):
    status_code = 404


class ForbiddenError(MediachatError):
    """Access outside the caller's namespace prefix."""

    status_code = 403
    public_message = "Forbidden"


class UpstreamModelError(MediachatError):
    status_code = 502


class ToolExecutionError(MediachatError):
    """A tool failed. Captured into the call's output, never raised past the executor."""


class UnknownToolError(NotFoundError):
    pass


class InvalidTransitionError(MediachatError):
    pass


class TurnInProgressError(MediachatError):
    status_code = 409
