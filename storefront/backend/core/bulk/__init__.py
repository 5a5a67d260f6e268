"""Bulk user operations engine."""
from storefront.backend.core.bulk.coordinator import BatchCoordinator, decide_status
from storefront.backend.core.bulk.exceptions import (
    BatchRejected,
    BulkError,
    CsvFormatError,
    NoRecordsFound,
    StoreUnavailableError,
)
from storefront.backend.core.bulk.models import AuditContext, BatchReport, BatchStatus, ImportOptions

__all__ = [
    "BatchCoordinator",
    "decide_status",
    "BatchRejected",
    "BulkError",
    "CsvFormatError",
    "NoRecordsFound",
    "StoreUnavailableError",
    "AuditContext",
    "BatchReport",
    "BatchStatus",
    "ImportOptions",
]
