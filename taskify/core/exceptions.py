"""
Custom HTTP exceptions and global exception handlers for Taskify.
All application-level errors are defined here for consistency.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ── Custom exception classes ──────────────────────────────────────────────────

class TaskifyException(Exception):
    """Base exception for all Taskify domain errors."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.error_code = error_code or "TASKIFY_ERROR"
        self.errors = errors
        super().__init__(detail)


class NotFoundException(TaskifyException):
    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        detail = f"{resource} not found"
        if resource_id is not None:
            detail = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND",
        )


class UnauthorizedException(TaskifyException):
    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
        )


class ForbiddenException(TaskifyException):
    def __init__(self, detail: str = "You do not have permission to perform this action") -> None:
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN",
        )


class ConflictException(TaskifyException):
    def __init__(self, detail: str, error_code: str = "CONFLICT") -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code,
        )


class UnprocessableEntityException(TaskifyException):
    def __init__(
        self,
        detail: str,
        error_code: str = "UNPROCESSABLE_ENTITY",
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code,
            errors=errors,
        )


class InvoiceValidationException(UnprocessableEntityException):
    """
    One or more tasks cannot be linked to an invoice.
    ``errors`` holds one entry per offending task: {"task_id", "code", "message"}.
    """

    def __init__(
        self,
        errors: list[dict[str, Any]],
        detail: str = "One or more tasks are not eligible for invoicing",
    ) -> None:
        super().__init__(detail=detail, error_code="INVOICE_VALIDATION_ERROR", errors=errors)

    @property
    def codes(self) -> set[str]:
        return {error["code"] for error in self.errors or []}


class InvalidTokenException(TaskifyException):
    def __init__(self, detail: str = "Invalid or expired token") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="INVALID_TOKEN",
        )


# ── Exception handlers ────────────────────────────────────────────────────────

def _error_response(
    status_code: int,
    detail: str,
    error_code: str,
    errors: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {
        "success": False,
        "error": error_code,
        "message": detail,
    }
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


async def taskify_exception_handler(
    request: Request, exc: TaskifyException
) -> JSONResponse:
    return _error_response(exc.status_code, exc.detail, exc.error_code, exc.errors)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({"field": field, "message": error["msg"]})
    return _error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail="Validation failed",
        error_code="VALIDATION_ERROR",
        errors=errors,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected internal server error occurred",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI application."""
    app.add_exception_handler(TaskifyException, taskify_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
