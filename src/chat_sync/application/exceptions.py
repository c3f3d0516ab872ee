from __future__ import annotations

from typing import Any, Awaitable, Callable

from chat_sync.domain.value_objects.enums import ErrorReason


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class SyncError(AppError):
    """Error surfaced by orchestrator-level operations, tagged with a reason."""

    reason: ErrorReason = ErrorReason.UNKNOWN

    def __init__(self, detail: str = "", *, reason: ErrorReason | None = None) -> None:
        super().__init__(detail)
        if reason is not None:
            self.reason = reason


class NetworkError(SyncError):
    reason = ErrorReason.NETWORK


class ValidationError(SyncError):
    reason = ErrorReason.VALIDATION


class ModerationError(SyncError):
    reason = ErrorReason.MODERATION

    def __init__(self, detail: str = "", *, errors: list[str] | None = None) -> None:
        super().__init__(detail)
        self.errors = errors or []


class AttachmentError(ValidationError):
    """File rejected for size or type; distinct from a storage outage."""


class StorageError(NetworkError):
    """File storage could not be reached or refused the upload."""


class RequestCancelledError(SyncError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Request {key} cancelled")
        self.key = key


class RetryExhaustedError(SyncError):
    """Terminal failure of an initial load; ``retry()`` starts over manually."""

    def __init__(
        self,
        detail: str,
        *,
        attempts: int,
        last_error: BaseException,
        retry: Callable[[], Awaitable[Any]],
    ) -> None:
        reason = last_error.reason if isinstance(last_error, SyncError) else ErrorReason.NETWORK
        super().__init__(detail, reason=reason)
        self.attempts = attempts
        self.last_error = last_error
        self.retry = retry


def as_sync_error(exc: BaseException) -> SyncError:
    """Wrap anything that is not already typed as an UNKNOWN SyncError."""
    if isinstance(exc, SyncError):
        return exc
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return NetworkError(str(exc) or type(exc).__name__)
    return SyncError(str(exc) or type(exc).__name__, reason=ErrorReason.UNKNOWN)
