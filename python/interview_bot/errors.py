"""
Error taxonomy for the session orchestration engine.

Contract violations (bad signature, duplicate session, illegal transition)
carry the HTTP status the service should answer with. Automation and release
failures never reach the caller that triggered them; the lifecycle records
them on the session instead.
"""

from __future__ import annotations

from http import HTTPStatus


__all__ = [
    "BotServiceError",
    "VerificationFailed",
    "DuplicateSessionError",
    "SessionNotFoundError",
    "InvalidTransitionError",
    "AutomationFailure",
    "ReleaseFailure",
]


class BotServiceError(Exception):
    """Base exception for errors surfaced to API and webhook callers."""

    def __init__(
        self,
        message: str,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        error_code: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = int(status_code)
        self.error_code = error_code
        super().__init__(message)


class VerificationFailed(BotServiceError):
    """Raised when a webhook signature is missing or does not match."""

    def __init__(self, message: str = "Invalid webhook signature.") -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.UNAUTHORIZED,
            error_code="VERIFICATION_FAILED",
        )


class DuplicateSessionError(BotServiceError):
    """Raised when a session already exists for the meeting."""

    def __init__(self, meeting_id: str) -> None:
        self.meeting_id = meeting_id
        super().__init__(
            message=f"Session already active for meeting '{meeting_id}'.",
            status_code=HTTPStatus.CONFLICT,
            error_code="DUPLICATE_SESSION",
        )


class SessionNotFoundError(BotServiceError):
    """Raised when no session is known for the meeting."""

    def __init__(self, meeting_id: str) -> None:
        self.meeting_id = meeting_id
        super().__init__(
            message=f"No session found for meeting '{meeting_id}'.",
            status_code=HTTPStatus.NOT_FOUND,
            error_code="SESSION_NOT_FOUND",
        )


class InvalidTransitionError(BotServiceError):
    """Raised when a lifecycle operation is not legal from the current state."""

    def __init__(self, meeting_id: str, operation: str, state: str) -> None:
        self.meeting_id = meeting_id
        self.operation = operation
        self.state = state
        super().__init__(
            message=(
                f"Cannot {operation} for meeting '{meeting_id}' "
                f"while in state '{state}'."
            ),
            status_code=HTTPStatus.CONFLICT,
            error_code="INVALID_TRANSITION",
        )


class AutomationFailure(Exception):
    """A collaborator reported a fatal error or a bounded wait ran out."""

    def __init__(self, step: str, detail: str) -> None:
        self.step = step
        self.detail = detail
        super().__init__(f"{step}: {detail}")


class ReleaseFailure(Exception):
    """Releasing the automation viewport raised or timed out."""

    def __init__(self, meeting_id: str, cause: BaseException) -> None:
        self.meeting_id = meeting_id
        self.cause = cause
        super().__init__(f"Viewport release failed for meeting '{meeting_id}': {cause}")
