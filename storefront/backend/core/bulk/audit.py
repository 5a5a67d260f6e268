"""Audit trail writer for bulk operations.

One entry per processed row plus one summary entry per batch. Writes happen
after the mutation has committed, so a failing write is logged and dropped
rather than reported as a row failure.
"""
import logging
from typing import Any, Dict, Optional

from storefront.backend.core.bulk.models import AuditContext, AuditEntry, OutcomeTag, RowOutcome
from storefront.backend.core.bulk.stores import AuditStore

logger = logging.getLogger(__name__)

RESOURCE = "users"


def _outcome_changes(outcome: RowOutcome) -> Dict[str, Any]:
    changes: Dict[str, Any] = dict(outcome.changes)
    if outcome.action:
        changes["action"] = outcome.action
    if outcome.row is not None:
        changes["row"] = outcome.row
    if outcome.error:
        changes["error"] = outcome.error
    if outcome.reason:
        changes["reason"] = outcome.reason
    return changes


class AuditRecorder:
    """Turns outcomes into AuditEntry records for one audit store."""

    def __init__(self, store: AuditStore):
        self._store = store

    async def _append(self, entry: AuditEntry) -> None:
        try:
            await self._store.append(entry)
        except Exception as e:
            logger.warning("Audit write for %s failed: %s", entry.action, e)

    async def record_row(
        self,
        ctx: AuditContext,
        action: str,
        outcome: RowOutcome,
        severity: str = "medium",
    ) -> None:
        await self._append(AuditEntry(
            admin_id=ctx.admin_id,
            admin_username=ctx.admin_username,
            action=action,
            resource=RESOURCE,
            resource_id=outcome.user_id,
            status=outcome.tag.value,
            changes=_outcome_changes(outcome),
            # A row that changed nothing carries no risk
            severity=severity if outcome.tag is OutcomeTag.SUCCEEDED else "low",
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        ))

    async def record_summary(
        self,
        ctx: AuditContext,
        action: str,
        counts: Dict[str, Any],
        status: str = "completed",
        severity: str = "medium",
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._append(AuditEntry(
            admin_id=ctx.admin_id,
            admin_username=ctx.admin_username,
            action=f"{action}_summary",
            resource=RESOURCE,
            resource_id=None,
            status=status,
            changes={**counts, **(extra or {})},
            severity=severity,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        ))

    async def record_export(
        self,
        ctx: AuditContext,
        filename: str,
        record_count: int,
        fields,
        filters: Dict[str, Any],
    ) -> None:
        await self._append(AuditEntry(
            admin_id=ctx.admin_id,
            admin_username=ctx.admin_username,
            action="user.export_csv",
            resource=RESOURCE,
            resource_id=None,
            status="completed",
            changes={
                "filename": filename,
                "record_count": record_count,
                "fields": list(fields),
                "filters": filters,
            },
            severity="medium",
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        ))
