"""Domain error taxonomy and the JSON error envelope shared by all endpoints.

Business-rule violations carry a human-readable reason that is safe to show
to the investor. Ledger and storage failures are rendered with a generic
message; their detail stays in the logs.
"""
from typing import Any

import sentry_sdk
import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all API error handlers."""
    error: str
    message: str
    detail: Any = None
    request_id: str = "unknown"

logger = structlog.get_logger()


# ── Taxonomy ────────────────────────────────────────────────────────────────


class DomainError(Exception):
    status_code = 500
    error = "domain_error"
    default_message = "The operation could not be completed."

    def __init__(self, message: str | None = None, **detail: Any) -> None:
        super().__init__(message or self.default_message)
        self.detail = detail

    @property
    def message(self) -> str:
        return str(self.args[0])

    def public_message(self) -> str:
        return self.message


class ValidationError(DomainError):
    status_code = 422
    error = "validation_error"
    default_message = "Invalid input."


class NotFound(DomainError):
    status_code = 404
    error = "not_found"
    default_message = "Resource not found."


class BusinessRuleViolation(DomainError):
    status_code = 409
    error = "business_rule_violation"


class AlreadyFunded(BusinessRuleViolation):
    error = "already_funded"
    default_message = "This property is already fully funded."


class CapacityExceeded(BusinessRuleViolation):
    error = "capacity_exceeded"
    default_message = "Investment exceeds the amount remaining to be raised."


class InsufficientBalance(BusinessRuleViolation):
    error = "insufficient_balance"
    default_message = "Insufficient fiat balance."


class BelowTokenMinimum(BusinessRuleViolation):
    error = "below_token_minimum"
    default_message = "Investment amount is too low to receive at least one token."


class NotFunded(BusinessRuleViolation):
    error = "not_funded"
    default_message = "Rent can only be distributed for a fully funded property."


class NotMinted(BusinessRuleViolation):
    error = "not_minted"
    default_message = "The token supply for this property has not been minted yet."


class AlreadyMinted(BusinessRuleViolation):
    error = "already_minted"
    default_message = "The token supply for this property has already been minted."


class DuplicateDistribution(BusinessRuleViolation):
    error = "duplicate_distribution"
    default_message = "Rent for this period has already been distributed."


class LedgerFailure(DomainError):
    status_code = 502
    error = "ledger_failure"
    default_message = "The ledger operation failed."
    code = "failed"

    def public_message(self) -> str:
        return "The ledger could not complete the operation. Please retry later."


class LedgerRejected(LedgerFailure):
    error = "ledger_rejected"

    def __init__(self, code: str, message: str | None = None, **detail: Any) -> None:
        super().__init__(message or f"Ledger rejected the transaction: {code}", code=code, **detail)
        self.code = code


class LedgerTimeout(LedgerFailure):
    error = "ledger_timeout"
    default_message = "Timed out waiting for the ledger to validate the transaction."
    code = "timeout"


class LedgerUnavailable(LedgerFailure):
    error = "ledger_unavailable"
    default_message = "The ledger could not be reached."
    code = "unavailable"


class CompensationFailed(LedgerFailure):
    """A saga step failed and its compensating action failed too; needs manual reconciliation."""

    error = "ledger_compensation_failed"
    code = "compensation_failed"


class StorageFailure(DomainError):
    status_code = 503
    error = "storage_failure"
    default_message = "The database transaction failed."

    def public_message(self) -> str:
        return "The request could not be stored. Please retry."


# ── Handlers ────────────────────────────────────────────────────────────────


async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render a DomainError into the standard envelope."""
    request_id = request.headers.get("x-request-id", "unknown")
    exposes_detail = isinstance(exc, (ValidationError, NotFound, BusinessRuleViolation))

    if not exposes_detail:
        logger.error(
            "request.infrastructure_failure",
            error=exc.message,
            error_type=type(exc).__name__,
            path=request.url.path,
            request_id=request_id,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.error,
            message=exc.public_message(),
            detail=(exc.detail or None) if exposes_detail else None,
            request_id=request_id,
        ).model_dump(mode="json"),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Our team has been notified.",
            "request_id": request_id,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": f"http_{exc.status_code}",
            "message": str(exc.detail),
            "detail": exc.detail,
            "request_id": request_id,
        },
        headers=dict(exc.headers or {}),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request-body validation errors in the standard envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ValidationError.error,
            message=ValidationError.default_message,
            detail=[
                {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                for err in exc.errors()
            ],
            request_id=request_id,
        ).model_dump(mode="json"),
    )
