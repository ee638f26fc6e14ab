"""
API schemas -- RFC 7807 problem documents.

Every error response produced by :mod:`flowledger.api.errors` is a
:class:`ProblemDetail`.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Structured error detail for nested errors."""

    code: str = Field(description="Machine-readable error code (e.g., 'ENUM', 'FOREIGN_KEY')")
    message: str = Field(description="Human-readable error description")
    field: str | None = Field(default=None, description="Field path if error is field-specific")


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``NOT_FOUND`` (404): Row does not exist or is soft-deleted
        - ``CONFLICT`` (409): Uniqueness violation
        - ``CONSTRAINT_VIOLATION`` (422): Enum, range, foreign-key or append-only rejection
        - ``UNAVAILABLE`` (503): Pool exhausted or backend unreachable; retry later
        - ``INTERNAL`` (500): Unexpected server error

    Example:
        {
            "type": "about:blank",
            "title": "Constraint Violation",
            "status": 422,
            "detail": "Constraint violation (enum)",
            "instance": "/workflows/abc-123",
            "code": "CONSTRAINT_VIOLATION",
            "errors": [{"code": "ENUM", "message": "Constraint violation (enum)"}]
        }
    """

    type: str = Field(default="about:blank", description="Error type URI (usually 'about:blank')")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")
    code: str = Field(default="INTERNAL", description="Machine-readable error code")
    errors: list[ErrorDetail] = Field(
        default_factory=list,
        description="List of nested error details",
    )
