"""Structured error codes for API responses.

Usage:
    from storefront.backend.core.errors import api_error, E

    raise api_error(404, E.NO_RECORDS_FOUND)
    raise api_error(400, E.INVALID_CSV, "CSV row 4 has more cells than the header")
"""
from enum import Enum
from fastapi import HTTPException


class ErrorCode(str, Enum):
    """All API error codes. Frontend maps these to i18n translations."""

    # ── Auth ──────────────────────────────────────────────────
    INVALID_TOKEN = "INVALID_TOKEN"
    NOT_AN_ADMIN = "NOT_AN_ADMIN"
    FORBIDDEN = "FORBIDDEN"

    # ── Bulk operations ───────────────────────────────────────
    EMPTY_BATCH = "EMPTY_BATCH"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # ── CSV import / export ───────────────────────────────────
    INVALID_CSV = "INVALID_CSV"
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_FIELD_MAPPING = "INVALID_FIELD_MAPPING"
    INVALID_EXPORT_FIELDS = "INVALID_EXPORT_FIELDS"
    NO_RECORDS_FOUND = "NO_RECORDS_FOUND"

    # ── Generic ───────────────────────────────────────────────
    DB_UNAVAILABLE = "DB_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Shorthand alias
E = ErrorCode

# Default human-readable messages per code (English fallback)
_DEFAULT_MESSAGES: dict[str, str] = {
    E.INVALID_TOKEN: "Invalid or expired token",
    E.NOT_AN_ADMIN: "Not an admin",
    E.FORBIDDEN: "Access denied",
    E.EMPTY_BATCH: "At least one item is required",
    E.BATCH_TOO_LARGE: "Too many items in one batch",
    E.VALIDATION_FAILED: "Validation failed",
    E.INVALID_CSV: "CSV file is empty or invalid",
    E.UNSUPPORTED_MEDIA_TYPE: "Only CSV files are accepted",
    E.FILE_TOO_LARGE: "Uploaded file is too large",
    E.INVALID_FIELD_MAPPING: "Field mapping must be a JSON object of strings",
    E.INVALID_EXPORT_FIELDS: "Unknown export fields",
    E.NO_RECORDS_FOUND: "No users found matching the criteria",
    E.DB_UNAVAILABLE: "Database not available",
    E.INTERNAL_ERROR: "Internal error",
}


def default_message(code: ErrorCode) -> str:
    return _DEFAULT_MESSAGES.get(code, code.value)


def api_error(
    status_code: int,
    code: ErrorCode,
    detail: str | None = None,
) -> HTTPException:
    """Create an HTTPException with a structured error code.

    Args:
        status_code: HTTP status code (400, 404, 500, etc.)
        code: ErrorCode enum value
        detail: Human-readable message. If None, uses default for the code.

    Returns:
        HTTPException with JSON body {"detail": "...", "code": "ERROR_CODE"}
    """
    message = detail or default_message(code)
    return HTTPException(
        status_code=status_code,
        detail={"detail": message, "code": code.value},
    )
