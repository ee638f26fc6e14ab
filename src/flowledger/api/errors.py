"""
Error handlers -- map flowledger errors to RFC 7807 responses.

Backend error text (driver messages, statement text) never reaches a client
unless the application runs with ``debug`` enabled; clients get the error
code, the stable ``kind`` and a generic message.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from flowledger.api.schemas import ErrorDetail, ProblemDetail
from flowledger.core.errors import (
    ConstraintViolation,
    FlowLedgerError,
    QueryError,
    RowNotFound,
    TransientError,
)
from flowledger.core.logging import get_logger

logger = get_logger(__name__)

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "CONSTRAINT_VIOLATION": 422,
    "UNAVAILABLE": 503,
    "INTERNAL": 500,
}

_TITLES: dict[str, str] = {
    "NOT_FOUND": "Not Found",
    "CONFLICT": "Conflict",
    "CONSTRAINT_VIOLATION": "Constraint Violation",
    "UNAVAILABLE": "Service Unavailable",
    "INTERNAL": "Internal Server Error",
}

_GENERIC_DETAIL = "An unexpected error occurred."


def error_code_for(exc: BaseException) -> str:
    """Classify *exc* into one of the codes in :data:`ERROR_CODE_TO_STATUS`."""
    if isinstance(exc, RowNotFound):
        return "NOT_FOUND"
    if isinstance(exc, ConstraintViolation):
        return "CONFLICT" if exc.kind == "unique" else "CONSTRAINT_VIOLATION"
    if isinstance(exc, TransientError):
        return "UNAVAILABLE"
    return "INTERNAL"


def status_for_error_code(code: str) -> int:
    """Resolve an error code to HTTP status, defaulting to 500."""
    return ERROR_CODE_TO_STATUS.get(code, 500)


def problem_response(
    *,
    status: int,
    title: str,
    detail: str = "",
    instance: str = "",
    code: str = "INTERNAL",
    errors: list[dict[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance,
        code=code,
    )
    if errors:
        body.errors = [ErrorDetail(**e) for e in errors]
    return JSONResponse(status_code=status, content=body.model_dump(), headers=headers)


def _debug(request: Request) -> bool:
    return bool(getattr(request.app.state, "debug", False))


def _detail(exc: FlowLedgerError, code: str, debug: bool) -> str:
    if debug:
        if isinstance(exc, QueryError) and exc.backend_message:
            return f"{exc.message}: {exc.backend_message}"
        return exc.message
    if code == "INTERNAL":
        return _GENERIC_DETAIL
    if code == "UNAVAILABLE":
        return "The database is temporarily unavailable. Retry later."
    # Messages of these errors are composed by flowledger, not the backend
    return exc.message


async def ledger_exception_handler(request: Request, exc: FlowLedgerError) -> JSONResponse:
    """Map a :class:`FlowLedgerError` to its problem response."""
    code = error_code_for(exc)
    status = status_for_error_code(code)
    debug = _debug(request)

    errors: list[dict[str, Any]] = []
    if isinstance(exc, QueryError):
        errors.append({"code": exc.kind.upper(), "message": _detail(exc, code, debug)})

    headers = None
    if status == 503:
        headers = {"Retry-After": str(exc.retry_after or 1)}

    log = logger.error if status >= 500 else logger.info
    log("request_failed", path=str(request.url.path), status=status, **exc.to_dict())

    return problem_response(
        status=status,
        title=_TITLES[code],
        detail=_detail(exc, code, debug),
        instance=str(request.url),
        code=code,
        errors=errors,
        headers=headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions -- returns 500 with ProblemDetail."""
    logger.exception("request_unhandled_error", path=str(request.url.path), error_type=type(exc).__name__)
    return problem_response(
        status=500,
        title=_TITLES["INTERNAL"],
        detail=str(exc) if _debug(request) else _GENERIC_DETAIL,
        instance=str(request.url),
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register the flowledger handlers on *app*."""
    app.add_exception_handler(FlowLedgerError, ledger_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "error_code_for",
    "install_exception_handlers",
    "ledger_exception_handler",
    "problem_response",
    "status_for_error_code",
    "unhandled_exception_handler",
]
