"""Application-specific exceptions for consistent error handling."""

from typing import Any

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Application error with standardized error code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | list[Any] | None = None,
    ):
        """Initialize application error."""
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "details": details,
            },
        )
        self.code = code
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class QuestionStoreError(AppError):
    """The question store could not be read. Callers should retry or degrade."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="QUESTION_STORE_UNAVAILABLE",
            message=message,
            details=details,
        )


class LedgerError(AppError):
    """Attempted-question ledger read or write failed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="LEDGER_UNAVAILABLE",
            message=message,
            details=details,
        )


class SelectionInProgressError(AppError):
    """Another selection for the same learner and subject holds the lock."""

    def __init__(self, user_id: str, subject_id: str, retry_after_seconds: int):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code="SELECTION_IN_PROGRESS",
            message="A selection for this learner and subject is already running",
            details={
                "user_id": user_id,
                "subject_id": subject_id,
                "retry_after_seconds": retry_after_seconds,
            },
        )

