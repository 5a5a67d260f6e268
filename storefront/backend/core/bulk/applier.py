"""Mutation applier: performs one validated command against the user store.

Every command touches at most one user and issues at most one write, so a row
is either fully applied or not applied at all. Store outages propagate as
StoreUnavailableError; everything else about a row is reported as a RowOutcome.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from storefront.backend.core.bulk.exceptions import DuplicateRecordError
from storefront.backend.core.bulk.models import (
    BulkCommand,
    ImportOptions,
    ImportRowCommand,
    RowOutcome,
    SoftDeleteCommand,
    StatusChangeCommand,
    UpdateCommand,
)
from storefront.backend.core.bulk.stores import UserStore

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "User not found"
USER_EXISTS = "User already exists"

# Status → (flag type, severity) appended together with the status change
_STATUS_FLAGS: Dict[str, tuple] = {
    "suspended": ("manual_review", "medium"),
    "banned": ("policy_violation", "high"),
}
_DELETE_FLAG = ("manual_review", "high")


def _audit_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "before": {k: _audit_value(before.get(k)) for k in after},
        "after": {k: _audit_value(v) for k, v in after.items()},
    }


class MutationApplier:
    """Applies commands for one batch on behalf of one administrator."""

    def __init__(self, store: UserStore, admin_id: Optional[str] = None):
        self._store = store
        self._admin_id = admin_id

    def _flag(self, flag_type: str, severity: str, reason: str) -> Dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "type": flag_type,
            "reason": reason,
            "severity": severity,
            "created_by": self._admin_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "resolved": False,
        }

    async def apply(self, command: BulkCommand, options: ImportOptions = ImportOptions()) -> RowOutcome:
        if isinstance(command, UpdateCommand):
            return await self._apply_update(command)
        if isinstance(command, StatusChangeCommand):
            return await self._apply_status_change(command)
        if isinstance(command, SoftDeleteCommand):
            return await self._apply_soft_delete(command)
        if isinstance(command, ImportRowCommand):
            return await self._apply_import(command, options)
        raise TypeError(f"Unsupported bulk command: {type(command).__name__}")

    async def _apply_update(self, command: UpdateCommand) -> RowOutcome:
        user = await self._store.find_by_id(command.user_id)
        if user is None:
            return RowOutcome.failed(USER_NOT_FOUND, user_id=command.user_id)

        try:
            updated = await self._store.update(command.user_id, dict(command.fields))
        except DuplicateRecordError as e:
            return RowOutcome.failed(str(e), user_id=command.user_id)
        if updated is None:
            return RowOutcome.failed(USER_NOT_FOUND, user_id=command.user_id)

        return RowOutcome.succeeded(
            "updated",
            user_id=command.user_id,
            changes=_diff(user, command.fields),
        )

    async def _set_status(
        self,
        user_id: str,
        status: str,
        flag: Optional[Dict[str, Any]],
        reason: Optional[str],
        action: str,
    ) -> RowOutcome:
        user = await self._store.find_by_id(user_id)
        if user is None:
            return RowOutcome.failed(USER_NOT_FOUND, user_id=user_id)

        old_status = user.get("status")
        # Status and flag go out in a single write
        updated = await self._store.update(user_id, {"status": status}, append_flag=flag)
        if updated is None:
            return RowOutcome.failed(USER_NOT_FOUND, user_id=user_id)

        changes = {"old_status": old_status, "new_status": status, "reason": reason}
        if flag is not None:
            changes["flag"] = {"type": flag["type"], "severity": flag["severity"]}
        return RowOutcome.succeeded(action, user_id=user_id, changes=changes)

    async def _apply_status_change(self, command: StatusChangeCommand) -> RowOutcome:
        flag = None
        flag_spec = _STATUS_FLAGS.get(command.new_status)
        if flag_spec:
            flag_type, severity = flag_spec
            reason = command.reason or f"Account {command.new_status} by admin (bulk operation)"
            flag = self._flag(flag_type, severity, reason)
        return await self._set_status(
            command.user_id, command.new_status, flag, command.reason, "status_changed",
        )

    async def _apply_soft_delete(self, command: SoftDeleteCommand) -> RowOutcome:
        flag_type, severity = _DELETE_FLAG
        reason = command.reason or "Account deleted by admin (bulk operation)"
        flag = self._flag(flag_type, severity, reason)
        return await self._set_status(
            command.user_id, "inactive", flag, command.reason, "deleted",
        )

    async def _apply_import(self, command: ImportRowCommand, options: ImportOptions) -> RowOutcome:
        fields = dict(command.raw_fields)
        row = command.row_number
        existing = await self._store.find_by_email(fields["email"])

        if existing is not None and not options.update_existing:
            return RowOutcome.skipped(
                USER_EXISTS, user_id=existing["id"], row=row,
                changes={"email": fields["email"]},
            )

        if options.dry_run:
            action = "would_update" if existing is not None else "would_create"
            return RowOutcome.succeeded(
                action, user_id=existing["id"] if existing else None, row=row,
            )

        try:
            if existing is not None:
                updated = await self._store.update(existing["id"], fields)
                if updated is None:
                    return RowOutcome.failed(USER_NOT_FOUND, user_id=existing["id"], row=row)
                return RowOutcome.succeeded(
                    "updated", user_id=existing["id"], row=row,
                    changes=_diff(existing, fields),
                )

            fields["customer_id"] = f"CUST_{uuid.uuid4().hex[:12].upper()}"
            created = await self._store.create(fields)
        except DuplicateRecordError as e:
            return RowOutcome.failed(str(e), row=row)

        logger.debug("Import row %s created user %s", row, created["id"])
        return RowOutcome.succeeded(
            "created", user_id=created["id"], row=row,
            changes={"created": {k: _audit_value(v) for k, v in fields.items()}},
        )
