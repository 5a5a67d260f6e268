"""Schemas for the admin API."""
from storefront.backend.schemas.common import (
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
)
from storefront.backend.schemas.bulk import (
    BulkUpdateItem,
    BulkUpdateRequest,
    BulkStatusRequest,
    BulkDeleteRequest,
    ExportFilters,
    ExportRequest,
    RowOutcomeOut,
    BatchData,
    BulkOperationResponse,
)

__all__ = [
    # Common
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    # Bulk
    "BulkUpdateItem",
    "BulkUpdateRequest",
    "BulkStatusRequest",
    "BulkDeleteRequest",
    "ExportFilters",
    "ExportRequest",
    "RowOutcomeOut",
    "BatchData",
    "BulkOperationResponse",
]
