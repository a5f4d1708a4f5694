"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

BASE_ERROR_URI = "https://hr.example.com/errors"

logger = logging.getLogger(__name__)


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        *,
        error_type: str = "not-found",
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(
            status_code=404,
            error_type=error_type,
            title=f"{entity_type} Not Found",
            detail=detail or f"{entity_type} with id '{entity_id}' does not exist.",
        )


class AccountNotFoundException(NotFoundException):
    """404 — the employee has no leave account."""

    def __init__(self, employee_id: Any) -> None:
        super().__init__(
            "LeaveAccount",
            employee_id,
            error_type="account-not-found",
            detail=(
                f"No leave account exists for employee '{employee_id}'. "
                "The employment record may be missing or misconfigured."
            ),
        )


class RequestNotFoundException(NotFoundException):
    """404 — leave request missing or outside the caller's organization."""

    def __init__(self, request_id: Any) -> None:
        super().__init__(
            "LeaveRequest", request_id, error_type="request-not-found",
        )


class ConflictError(AppException):
    """409 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any, detail: Optional[str] = None) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=detail or f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(
        self,
        errors: dict[str, list[str]],
        *,
        error_type: str = "validation-error",
        title: str = "Validation Error",
        detail: str = "One or more fields failed validation.",
    ) -> None:
        super().__init__(
            status_code=422,
            error_type=error_type,
            title=title,
            detail=detail,
            errors=errors,
        )


class InvalidRangeException(ValidationException):
    """422 — end date precedes start date."""

    def __init__(self, start_date: date, end_date: date) -> None:
        super().__init__(
            {"end_date": ["End date must be on or after the start date."]},
            error_type="invalid-range",
            title="Invalid Date Range",
            detail=(
                f"End date {end_date.isoformat()} precedes "
                f"start date {start_date.isoformat()}."
            ),
        )
        self.start_date = start_date
        self.end_date = end_date


class InsufficientBalanceException(ValidationException):
    """422 — a debit would take a leave balance below zero."""

    def __init__(self, category_label: str, available: Decimal, requested: Decimal) -> None:
        super().__init__(
            {"balance": [
                f"Insufficient {category_label} balance. "
                f"Available: {available}, Requested: {requested}."
            ]},
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=f"You do not have enough {category_label} remaining for this request.",
        )
        self.available = available
        self.requested = requested


class StoreUnavailableException(AppException):
    """503 — the database could not complete the unit of work."""

    def __init__(self, detail: str = "The leave store is temporarily unavailable.") -> None:
        super().__init__(
            status_code=503,
            error_type="store-unavailable",
            title="Service Unavailable",
            detail=detail,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_store_error(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error("Store unavailable on %s: %s", request.url.path, exc)
    return await _handle_app_exception(request, StoreUnavailableException())


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    for store_error in (OperationalError, InterfaceError, PoolTimeoutError):
        app.add_exception_handler(store_error, _handle_store_error)
