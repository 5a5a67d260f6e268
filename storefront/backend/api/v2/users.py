"""Bulk user operations API endpoints."""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from storefront.backend.api.deps import (
    AdminUser,
    audit_context,
    get_coordinator,
    require_permission,
)
from storefront.backend.core.bulk.coordinator import BatchCoordinator
from storefront.backend.core.bulk.exceptions import BulkError
from storefront.backend.core.bulk.models import BatchReport, BatchStatus, ExportFile, ImportOptions, UpdateCommand
from storefront.backend.core.errors import api_error, E
from storefront.backend.core.rate_limit import limiter, RATE_BULK, RATE_EXPORT
from storefront.backend.schemas.bulk import (
    BatchData,
    BulkDeleteRequest,
    BulkOperationResponse,
    BulkStatusRequest,
    BulkUpdateRequest,
    ExportRequest,
)
from storefront.backend.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)

_OPERATION_TITLES = {
    "update": "Bulk update",
    "status": "Bulk status change",
    "delete": "Bulk delete",
    "import": "CSV import",
}


def _as_http_error(e: BulkError):
    if e.status_code >= 500:
        logger.error("Bulk request aborted: %s", e.message)
    exc = api_error(e.status_code, e.code, e.message)
    partial = getattr(e, "result", None)
    if partial is not None:
        # Rows processed before the abort, in the usual BatchData shape
        data = BatchData.from_result(partial)
        exc.detail["data"] = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    return exc


def _message(report: BatchReport) -> str:
    result = report.result
    title = _OPERATION_TITLES.get(report.operation, report.operation)
    if report.dry_run:
        title += " (dry run)"
    counts = f"{result.total_successful} succeeded, {result.total_failed} failed"
    if result.total_skipped:
        counts += f", {result.total_skipped} skipped"
    if report.status is BatchStatus.SUCCESS:
        return f"{title} completed: {counts}"
    if report.status is BatchStatus.PARTIAL:
        return f"{title} partially completed: {counts}"
    return f"{title} failed: {counts}"


def _bulk_response(report: BatchReport) -> JSONResponse:
    """200 for full success and every dry run, 207 otherwise."""
    body = BulkOperationResponse.from_report(report, _message(report))
    status_code = 200 if report.dry_run or report.status is BatchStatus.SUCCESS else 207
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _file_response(export: ExportFile) -> StreamingResponse:
    return StreamingResponse(
        iter([export.content]),
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


def _parse_field_mapping(raw: Optional[str]) -> Optional[dict]:
    if raw is None or not raw.strip():
        return None
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError:
        raise api_error(400, E.INVALID_FIELD_MAPPING)
    if not isinstance(mapping, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
    ):
        raise api_error(400, E.INVALID_FIELD_MAPPING)
    return mapping


# ── Bulk operations ──────────────────────────────────────────────


@router.post("/bulk/update", response_model=BulkOperationResponse)
@limiter.limit(RATE_BULK)
async def bulk_update_users(
    request: Request,
    body: BulkUpdateRequest,
    admin: AdminUser = Depends(require_permission("users", "bulk_operations")),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """Update fields on many users; each item is applied independently."""
    commands = [UpdateCommand(user_id=item.user_id, fields=item.data) for item in body.updates]
    try:
        report = await coordinator.bulk_update(audit_context(request, admin), commands)
    except BulkError as e:
        raise _as_http_error(e)
    return _bulk_response(report)


@router.post("/bulk/status", response_model=BulkOperationResponse)
@limiter.limit(RATE_BULK)
async def bulk_update_status(
    request: Request,
    body: BulkStatusRequest,
    admin: AdminUser = Depends(require_permission("users", "bulk_operations")),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """Set one status on many users. Suspensions and bans also flag the account."""
    try:
        report = await coordinator.bulk_status(
            audit_context(request, admin), body.user_ids, body.status, body.reason,
        )
    except BulkError as e:
        raise _as_http_error(e)
    return _bulk_response(report)


@router.post("/bulk/delete", response_model=BulkOperationResponse)
@limiter.limit(RATE_BULK)
async def bulk_delete_users(
    request: Request,
    body: BulkDeleteRequest,
    admin: AdminUser = Depends(require_permission("users", "delete")),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """Soft-delete many users (status inactive, records kept)."""
    try:
        report = await coordinator.bulk_delete(audit_context(request, admin), body.user_ids, body.reason)
    except BulkError as e:
        raise _as_http_error(e)
    return _bulk_response(report)


# ── CSV import / export ──────────────────────────────────────────


@router.post("/import/csv", response_model=BulkOperationResponse)
@limiter.limit(RATE_BULK)
async def import_users_csv(
    request: Request,
    file: UploadFile = File(...),
    dry_run: bool = Form(False, alias="dryRun"),
    update_existing: bool = Form(False, alias="updateExisting"),
    field_mapping: Optional[str] = Form(None, alias="fieldMapping"),
    admin: AdminUser = Depends(require_permission("users", "import")),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """Import users from an uploaded CSV file."""
    mapping = _parse_field_mapping(field_mapping)
    # Read one byte past the limit so oversized uploads are detected without buffering them whole
    data = await file.read(coordinator.import_max_bytes + 1)
    options = ImportOptions(dry_run=dry_run, update_existing=update_existing)
    try:
        report = await coordinator.import_csv(
            audit_context(request, admin), data, file.content_type, options, mapping,
        )
    except BulkError as e:
        raise _as_http_error(e)
    return _bulk_response(report)


@router.post("/export/csv")
@limiter.limit(RATE_EXPORT)
async def export_users_csv(
    request: Request,
    body: ExportRequest,
    admin: AdminUser = Depends(require_permission("users", "export")),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """Export users matching the filters as a CSV download."""
    filters = body.filters.to_filters() if body.filters else None
    try:
        export = await coordinator.export_csv(
            audit_context(request, admin), filters, body.fields, body.filename,
        )
    except BulkError as e:
        raise _as_http_error(e)
    return _file_response(export)


@router.get("/import/template")
@limiter.limit(RATE_EXPORT)
async def get_import_template(
    request: Request,
    admin: AdminUser = Depends(require_permission("users", "export")),
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """Header-only CSV listing the accepted import columns."""
    return _file_response(coordinator.import_template())
