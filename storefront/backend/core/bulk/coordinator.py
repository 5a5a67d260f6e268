"""Batch coordinator: the entry point for every bulk user operation.

A batch is driven row by row through validate → apply → audit. Rows are
independent: one row failing never stops or rolls back another. Only input
shape problems (raised before the first row) and store outages (raised
mid-batch) abort a request.
"""
import logging
import re
import time
from dataclasses import asdict
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from storefront.backend.core.bulk import csv_transcoder
from storefront.backend.core.bulk.applier import MutationApplier
from storefront.backend.core.bulk.audit import AuditRecorder
from storefront.backend.core.bulk.exceptions import (
    BatchRejected,
    CsvFormatError,
    NoRecordsFound,
    StoreUnavailableError,
)
from storefront.backend.core.bulk.models import (
    DEFAULT_EXPORT_FIELDS,
    EXPORTABLE_FIELDS,
    AuditContext,
    BatchReport,
    BatchResult,
    BatchStatus,
    BulkCommand,
    ExportFile,
    ImportOptions,
    ImportRowCommand,
    RowOutcome,
    SoftDeleteCommand,
    StatusChangeCommand,
    UpdateCommand,
    UserFilters,
)
from storefront.backend.core.bulk.stores import AuditStore, UserStore
from storefront.backend.core.bulk.validator import validate
from storefront.backend.core.errors import E

logger = logging.getLogger(__name__)

ACTION_UPDATE = "user.bulk_update"
ACTION_STATUS = "user.bulk_status"
ACTION_DELETE = "user.bulk_delete"
ACTION_IMPORT = "user.import_csv"

_HIGH_SEVERITY_STATUSES = {"banned"}
_UNSAFE_FILENAME_CHARS = re.compile(r'[^\w.\- ]', re.ASCII)


# ── Response status decision ──────────────────────────────────

# Checked top to bottom; the first matching predicate wins.
_STATUS_TABLE: Tuple[Tuple[Callable[[BatchResult], bool], BatchStatus], ...] = (
    (lambda r: r.total_failed == 0 and r.total_processed > 0, BatchStatus.SUCCESS),
    (lambda r: r.total_failed > 0 and r.total_successful > 0, BatchStatus.PARTIAL),
    (lambda r: r.total_failed > 0 and r.total_successful == 0, BatchStatus.FAILED),
)


def decide_status(result: BatchResult) -> BatchStatus:
    for predicate, status in _STATUS_TABLE:
        if predicate(result):
            return status
    # Nothing processed at all
    return BatchStatus.FAILED


def _sanitize_filename(filename: Optional[str]) -> str:
    """Reduce a caller-supplied name to ASCII safe for a Content-Disposition header."""
    default = f"users_export_{int(time.time() * 1000)}.csv"
    if not filename or not filename.strip():
        return default
    name = filename.strip().replace("/", "_").replace("\\", "_")
    name = _UNSAFE_FILENAME_CHARS.sub("", name).strip()
    if name.lower().endswith(".csv"):
        name = name[:-4]
    name = name.strip().lstrip(".")
    if not name.strip("._- "):
        return default
    return name + ".csv"


def _check_export_fields(fields: Optional[Sequence[str]]) -> List[str]:
    if not fields:
        return list(DEFAULT_EXPORT_FIELDS)
    unknown = [f for f in fields if f.split(".", 1)[0] not in EXPORTABLE_FIELDS]
    if unknown:
        raise BatchRejected(
            f"Unknown export fields: {', '.join(unknown)}",
            code=E.INVALID_EXPORT_FIELDS,
        )
    return list(fields)


class BatchCoordinator:
    """Runs bulk operations against one user store and one audit store."""

    def __init__(
        self,
        user_store: UserStore,
        audit_store: AuditStore,
        max_rows: int = 100,
        import_max_rows: int = 1000,
        import_max_bytes: int = 5 * 1024 * 1024,
        export_max_rows: int = 10000,
    ):
        self._users = user_store
        self._audit = AuditRecorder(audit_store)
        self.max_rows = max_rows
        self.import_max_rows = import_max_rows
        self.import_max_bytes = import_max_bytes
        self.export_max_rows = export_max_rows

    def _check_batch_size(self, size: int, limit: int) -> None:
        if size == 0:
            raise BatchRejected(code=E.EMPTY_BATCH)
        if size > limit:
            raise BatchRejected(
                f"Batch of {size} items exceeds the limit of {limit}",
                code=E.BATCH_TOO_LARGE,
            )

    async def _process(
        self,
        applier: MutationApplier,
        command: BulkCommand,
        options: ImportOptions,
    ) -> RowOutcome:
        row = getattr(command, "row_number", None)
        user_id = getattr(command, "user_id", None)
        echo = dict(command.raw_fields) if isinstance(command, ImportRowCommand) else None

        checked = validate(command)
        if not checked.ok:
            return RowOutcome.failed(checked.error, user_id=user_id, row=row, data=echo)

        try:
            outcome = await applier.apply(checked.command, options)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.exception("Unexpected error applying row %s", row or user_id)
            return RowOutcome.failed(str(e) or type(e).__name__, user_id=user_id, row=row, data=echo)

        if echo is not None and outcome.data is None:
            outcome.data = echo
        return outcome

    async def _run(
        self,
        ctx: AuditContext,
        action: str,
        commands: Iterable[BulkCommand],
        options: ImportOptions = ImportOptions(),
        severity: str = "medium",
        summary_extra: Optional[Mapping[str, Any]] = None,
    ) -> BatchResult:
        applier = MutationApplier(self._users, admin_id=ctx.admin_id)
        result = BatchResult()
        extra = dict(summary_extra or {})
        try:
            for command in commands:
                outcome = await self._process(applier, command, options)
                result.add(outcome)
                if outcome.error:
                    logger.debug("%s row %s failed: %s", action, outcome.row or outcome.user_id, outcome.error)
                await self._audit.record_row(ctx, action, outcome, severity)
        except StoreUnavailableError as e:
            logger.error("%s aborted after %d rows: %s", action, result.total_processed, e)
            await self._audit.record_summary(
                ctx, action, result.counts(), status="aborted", severity=severity,
                extra={**extra, "error": e.message},
            )
            # Rows committed before the outage stay committed; report them
            e.result = result
            raise

        await self._audit.record_summary(ctx, action, result.counts(), severity=severity, extra=extra)
        return result

    def _report(self, operation: str, result: BatchResult, dry_run: bool = False) -> BatchReport:
        status = decide_status(result)
        logger.info(
            "Bulk %s finished: %s (%d ok, %d failed, %d skipped)",
            operation, status.value, result.total_successful,
            result.total_failed, result.total_skipped,
        )
        return BatchReport(operation=operation, result=result, status=status, dry_run=dry_run)

    # ── Entry points ──────────────────────────────────────────

    async def bulk_update(self, ctx: AuditContext, commands: Sequence[UpdateCommand]) -> BatchReport:
        self._check_batch_size(len(commands), self.max_rows)
        logger.info("Bulk update of %d users by %s", len(commands), ctx.admin_username)
        result = await self._run(ctx, ACTION_UPDATE, commands)
        return self._report("update", result)

    async def bulk_status(
        self,
        ctx: AuditContext,
        user_ids: Sequence[str],
        status: str,
        reason: Optional[str] = None,
    ) -> BatchReport:
        self._check_batch_size(len(user_ids), self.max_rows)
        logger.info("Bulk status change to %s for %d users by %s", status, len(user_ids), ctx.admin_username)
        commands = [StatusChangeCommand(user_id=uid, new_status=status, reason=reason) for uid in user_ids]
        severity = "high" if status in _HIGH_SEVERITY_STATUSES else "medium"
        result = await self._run(
            ctx, ACTION_STATUS, commands, severity=severity,
            summary_extra={"new_status": status, "reason": reason},
        )
        return self._report("status", result)

    async def bulk_delete(
        self,
        ctx: AuditContext,
        user_ids: Sequence[str],
        reason: Optional[str] = None,
    ) -> BatchReport:
        self._check_batch_size(len(user_ids), self.max_rows)
        logger.info("Bulk delete of %d users by %s", len(user_ids), ctx.admin_username)
        commands = [SoftDeleteCommand(user_id=uid, reason=reason) for uid in user_ids]
        result = await self._run(
            ctx, ACTION_DELETE, commands, severity="high",
            summary_extra={"reason": reason},
        )
        return self._report("delete", result)

    async def import_csv(
        self,
        ctx: AuditContext,
        data: bytes,
        content_type: Optional[str],
        options: ImportOptions = ImportOptions(),
        field_mapping: Optional[Mapping[str, str]] = None,
    ) -> BatchReport:
        """Import users from CSV bytes.

        The whole file is parsed before the first row is applied, so a
        malformed line rejects the upload without touching any user.
        Data rows are numbered from 2 (row 1 is the header).
        """
        if not data:
            raise CsvFormatError()
        if len(data) > self.import_max_bytes:
            raise BatchRejected(
                f"File exceeds the limit of {self.import_max_bytes} bytes",
                code=E.FILE_TOO_LARGE,
            )
        rows = list(csv_transcoder.parse(data, content_type, field_mapping))
        if not rows:
            raise CsvFormatError("CSV file has no data rows")
        self._check_batch_size(len(rows), self.import_max_rows)

        logger.info(
            "CSV import of %d rows by %s (dry_run=%s, update_existing=%s)",
            len(rows), ctx.admin_username, options.dry_run, options.update_existing,
        )
        commands = (
            ImportRowCommand(raw_fields=raw, row_number=index)
            for index, raw in enumerate(rows, start=2)
        )
        result = await self._run(
            ctx, ACTION_IMPORT, commands, options=options,
            summary_extra=asdict(options),
        )
        return self._report("import", result, dry_run=options.dry_run)

    async def export_csv(
        self,
        ctx: AuditContext,
        filters: Optional[UserFilters] = None,
        fields: Optional[Sequence[str]] = None,
        filename: Optional[str] = None,
    ) -> ExportFile:
        filters = filters or UserFilters()
        export_fields = _check_export_fields(fields)
        users = await self._users.search(filters, self.export_max_rows)
        if not users:
            raise NoRecordsFound()

        name = _sanitize_filename(filename)
        content = csv_transcoder.serialize(users, export_fields)
        await self._audit.record_export(
            ctx, name, len(users), export_fields,
            {k: v for k, v in asdict(filters).items() if v not in (None, ())},
        )
        logger.info("Exported %d users to %s for %s", len(users), name, ctx.admin_username)
        return ExportFile(filename=name, content=content, record_count=len(users))

    def import_template(self) -> ExportFile:
        return ExportFile(filename=csv_transcoder.TEMPLATE_FILENAME, content=csv_transcoder.template())
