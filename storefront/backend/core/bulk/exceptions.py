"""Errors that abort a whole bulk request.

Row-level problems never raise; they become RowOutcome values. Only the
conditions below propagate to the caller.
"""
from typing import Optional

from storefront.backend.core.errors import ErrorCode, default_message


class BulkError(Exception):
    """Base class. Carries the HTTP status and error code for the API layer."""

    status_code = 500
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: Optional[str] = None, code: Optional[ErrorCode] = None):
        if code is not None:
            self.code = code
        self.message = message or default_message(self.code)
        super().__init__(self.message)


class BatchRejected(BulkError):
    """Input-shape error: nothing was processed."""

    status_code = 400
    code = ErrorCode.VALIDATION_FAILED


class CsvFormatError(BatchRejected):
    code = ErrorCode.INVALID_CSV


class NoRecordsFound(BulkError):
    status_code = 404
    code = ErrorCode.NO_RECORDS_FOUND


class StoreUnavailableError(BulkError):
    """The record or audit store could not be reached.

    When raised mid-batch, ``result`` holds the rows processed before the
    outage.
    """

    status_code = 500
    code = ErrorCode.DB_UNAVAILABLE
    result = None


class DuplicateRecordError(Exception):
    """A create or update collided with a unique field of another user."""
