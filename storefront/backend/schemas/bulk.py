"""Schemas for bulk user operations.

The wire format is camelCase; fields are snake_case in Python.
"""
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel, to_snake

from storefront.backend.core.bulk.models import BatchReport, BatchResult, RowOutcome, UserFilters


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ─────────────────────────────────────────────────


class BulkUpdateItem(CamelModel):
    """One user and the fields to change on it."""

    user_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _snake_keys(cls, v):
        """Accept both ``firstName`` and ``first_name``."""
        if isinstance(v, dict):
            return {to_snake(k) if isinstance(k, str) else k: value for k, value in v.items()}
        return v


class BulkUpdateRequest(CamelModel):
    updates: List[BulkUpdateItem]


class BulkStatusRequest(CamelModel):
    user_ids: List[Optional[str]]
    status: Literal["active", "inactive", "suspended", "banned"]
    reason: Optional[str] = Field(default=None, max_length=500)


class BulkDeleteRequest(CamelModel):
    user_ids: List[Optional[str]]
    reason: Optional[str] = Field(default=None, max_length=500)


class ExportFilters(CamelModel):
    search: Optional[str] = None
    status: Optional[str] = None
    registration_date_from: Optional[date] = None
    registration_date_to: Optional[date] = None
    has_flags: Optional[bool] = None
    flag_type: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    email_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None

    def to_filters(self) -> UserFilters:
        return UserFilters(
            search=self.search,
            status=self.status,
            registration_date_from=self.registration_date_from,
            registration_date_to=self.registration_date_to,
            has_flags=self.has_flags,
            flag_type=self.flag_type,
            tags=tuple(self.tags),
            email_verified=self.email_verified,
            phone_verified=self.phone_verified,
        )


class ExportRequest(CamelModel):
    filters: Optional[ExportFilters] = None
    fields: Optional[List[str]] = None
    filename: Optional[str] = Field(default=None, max_length=200)


# ── Responses ────────────────────────────────────────────────


class RowOutcomeOut(CamelModel):
    user_id: Optional[str] = None
    row: Optional[int] = None
    action: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def from_outcome(cls, outcome: RowOutcome) -> "RowOutcomeOut":
        data = None
        if outcome.data is not None:
            data = {k: str(v) if isinstance(v, date) else v for k, v in outcome.data.items()}
        return cls(
            user_id=outcome.user_id,
            row=outcome.row,
            action=outcome.action,
            error=outcome.error,
            reason=outcome.reason,
            data=data,
        )


class BatchData(CamelModel):
    total_processed: int
    total_successful: int
    total_failed: int
    total_skipped: int
    successful: List[RowOutcomeOut] = []
    failed: List[RowOutcomeOut] = []
    skipped: List[RowOutcomeOut] = []

    @classmethod
    def from_result(cls, result: BatchResult) -> "BatchData":
        return cls(
            total_processed=result.total_processed,
            total_successful=result.total_successful,
            total_failed=result.total_failed,
            total_skipped=result.total_skipped,
            successful=[RowOutcomeOut.from_outcome(o) for o in result.successful],
            failed=[RowOutcomeOut.from_outcome(o) for o in result.failed],
            skipped=[RowOutcomeOut.from_outcome(o) for o in result.skipped],
        )


class BulkOperationResponse(CamelModel):
    """Result of a bulk operation."""

    success: bool
    status: str
    message: str
    dry_run: Optional[bool] = None
    data: BatchData

    @classmethod
    def from_report(cls, report: BatchReport, message: str) -> "BulkOperationResponse":
        return cls(
            success=report.success,
            status=report.status.value,
            message=message,
            dry_run=True if report.dry_run else None,
            data=BatchData.from_result(report.result),
        )
