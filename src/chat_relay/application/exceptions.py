from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    code = "not_found"


class ForbiddenError(AppError):
    code = "forbidden"


class InvalidStateError(AppError):
    code = "invalid_state"


class ValidationError(AppError):
    code = "validation_failed"


class TransientError(AppError):
    """Store or network unavailable. The caller may retry the whole operation."""

    code = "transient"
    public_detail = "Temporarily unavailable, please try again"
