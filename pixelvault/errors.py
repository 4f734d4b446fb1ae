"""Exception hierarchy for the image service."""

from typing import Any


class ImageServiceError(Exception):
    """Base exception for all image service errors.

    Every error carries a machine readable code and the HTTP status the
    API layer answers with. Optional context goes in ``details``.
    """

    error_code: str = "IMAGE_SERVICE_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgument(ImageServiceError):
    """Raised when a client supplied a malformed value."""

    error_code = "INVALID_ARGUMENT"
    status_code = 400


class UnknownTransformation(ImageServiceError):
    """Raised when a transformation name is not registered."""

    error_code = "UNKNOWN_TRANSFORMATION"
    status_code = 400


class ImageNotFound(ImageServiceError):
    """Raised when an original image does not exist."""

    error_code = "IMAGE_NOT_FOUND"
    status_code = 404


class StorageError(ImageServiceError):
    """Raised when a storage backend cannot complete an operation."""

    error_code = "STORAGE_ERROR"
    status_code = 500


class TransformationError(ImageServiceError):
    """Raised when a registered transformation fails to execute."""

    error_code = "TRANSFORMATION_FAILED"
    status_code = 500


class HookExecutionError(ImageServiceError):
    """Raised when a hook fails during a pre/post execution phase.

    When the hook raised an ``ImageServiceError`` itself (for instance an
    access-control hook rejecting the request), its status code is kept.
    """

    error_code = "HOOK_EXECUTION_FAILED"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        hook: str,
        phase: str,
        operation: str,
        cause: BaseException | None = None,
    ) -> None:
        details: dict[str, Any] = {"hook": hook, "phase": phase, "operation": operation}
        status_code = None
        if isinstance(cause, ImageServiceError):
            status_code = cause.status_code
            details["cause"] = cause.to_dict()
        super().__init__(message, status_code=status_code, details=details)
        self.hook = hook
        self.phase = phase
        self.operation = operation
