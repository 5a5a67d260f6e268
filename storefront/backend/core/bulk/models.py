"""Commands, outcomes and audit records for bulk user operations.

A bulk request is turned into a list of commands of one kind. Each command is
validated and applied on its own and yields exactly one RowOutcome; the
outcomes of a batch are folded into a BatchResult.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# ── Field sets ────────────────────────────────────────────────

USER_STATUSES = ("active", "inactive", "suspended", "banned", "pending_verification")
BULK_TARGET_STATUSES = ("active", "inactive", "suspended", "banned")
GENDERS = ("male", "female", "other", "prefer_not_to_say")

# Fields an administrator may change through a bulk update.
# customer_id, flags and timestamps are managed by the system.
MUTABLE_FIELDS = frozenset({
    "first_name", "last_name", "email", "phone", "status",
    "date_of_birth", "gender", "address", "city", "state", "zip_code",
    "country", "tags", "email_verified", "phone_verified",
})

# Accepted CSV import columns, in template order.
IMPORT_FIELDS = (
    "first_name", "last_name", "email", "phone", "date_of_birth", "gender",
    "address", "city", "state", "zip_code", "country", "tags", "source",
)
REQUIRED_IMPORT_FIELDS = ("first_name", "last_name", "email")

DEFAULT_EXPORT_FIELDS = (
    "customer_id", "first_name", "last_name", "email", "phone", "status",
    "registration_date", "tags", "email_verified", "phone_verified",
)
EXPORTABLE_FIELDS = frozenset(MUTABLE_FIELDS | {
    "id", "customer_id", "source", "flags", "registration_date",
    "created_at", "updated_at",
})


# ── Commands ──────────────────────────────────────────────────


@dataclass(frozen=True)
class UpdateCommand:
    user_id: Optional[str]
    fields: Dict[str, Any]


@dataclass(frozen=True)
class StatusChangeCommand:
    user_id: Optional[str]
    new_status: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class SoftDeleteCommand:
    user_id: Optional[str]
    reason: Optional[str] = None


@dataclass(frozen=True)
class ImportRowCommand:
    raw_fields: Dict[str, Any]
    row_number: Optional[int] = None


BulkCommand = Union[UpdateCommand, StatusChangeCommand, SoftDeleteCommand, ImportRowCommand]


@dataclass(frozen=True)
class ImportOptions:
    dry_run: bool = False
    update_existing: bool = False


# ── Outcomes ──────────────────────────────────────────────────


class OutcomeTag(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RowOutcome:
    """Result of attempting one command."""

    tag: OutcomeTag
    user_id: Optional[str] = None
    row: Optional[int] = None
    action: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    # Field deltas or the failure details, written to the audit log
    changes: Dict[str, Any] = field(default_factory=dict)
    # Input echo for CSV rows so the admin can locate the line
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def succeeded(cls, action: str, user_id: Optional[str] = None, **kwargs) -> "RowOutcome":
        return cls(tag=OutcomeTag.SUCCEEDED, action=action, user_id=user_id, **kwargs)

    @classmethod
    def failed(cls, error: str, user_id: Optional[str] = None, **kwargs) -> "RowOutcome":
        return cls(tag=OutcomeTag.FAILED, error=error, user_id=user_id, **kwargs)

    @classmethod
    def skipped(cls, reason: str, user_id: Optional[str] = None, **kwargs) -> "RowOutcome":
        return cls(tag=OutcomeTag.SKIPPED, reason=reason, user_id=user_id, **kwargs)


@dataclass
class BatchResult:
    """Aggregate of all outcomes of one batch, each list in input order."""

    successful: List[RowOutcome] = field(default_factory=list)
    failed: List[RowOutcome] = field(default_factory=list)
    skipped: List[RowOutcome] = field(default_factory=list)

    def add(self, outcome: RowOutcome) -> None:
        if outcome.tag is OutcomeTag.SUCCEEDED:
            self.successful.append(outcome)
        elif outcome.tag is OutcomeTag.FAILED:
            self.failed.append(outcome)
        else:
            self.skipped.append(outcome)

    @property
    def total_processed(self) -> int:
        return self.total_successful + self.total_failed + self.total_skipped

    @property
    def total_successful(self) -> int:
        return len(self.successful)

    @property
    def total_failed(self) -> int:
        return len(self.failed)

    @property
    def total_skipped(self) -> int:
        return len(self.skipped)

    def counts(self) -> Dict[str, int]:
        return {
            "total_processed": self.total_processed,
            "total_successful": self.total_successful,
            "total_failed": self.total_failed,
            "total_skipped": self.total_skipped,
        }


class BatchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class BatchReport:
    """What a coordinator entry point hands back to the API layer."""

    operation: str
    result: BatchResult
    status: BatchStatus
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return self.status is BatchStatus.SUCCESS


@dataclass(frozen=True)
class ExportFile:
    filename: str
    content: bytes
    record_count: int = 0


# ── Audit ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class AuditContext:
    """The acting administrator and request origin for one bulk request."""

    admin_id: Optional[str]
    admin_username: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AuditEntry:
    admin_id: Optional[str]
    admin_username: str
    action: str
    resource: str
    resource_id: Optional[str]
    status: str
    changes: Dict[str, Any]
    severity: str = "medium"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ── Export filters ────────────────────────────────────────────


@dataclass(frozen=True)
class UserFilters:
    """Criteria for selecting users to export. Unset criteria match everything."""

    search: Optional[str] = None
    status: Optional[str] = None
    registration_date_from: Optional[date] = None
    registration_date_to: Optional[date] = None
    has_flags: Optional[bool] = None
    flag_type: Optional[str] = None
    tags: tuple = ()
    email_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None

    def matches(self, user: Dict[str, Any]) -> bool:
        if self.search:
            needle = self.search.lower()
            haystack = (
                user.get("first_name"), user.get("last_name"),
                user.get("email"), user.get("customer_id"),
            )
            if not any(needle in str(value).lower() for value in haystack if value):
                return False
        if self.status and user.get("status") != self.status:
            return False
        registered = user.get("registration_date")
        if isinstance(registered, datetime):
            registered = registered.date()
        if self.registration_date_from and (registered is None or registered < self.registration_date_from):
            return False
        if self.registration_date_to and (registered is None or registered > self.registration_date_to):
            return False
        flags = user.get("flags") or []
        if self.has_flags is not None and bool(flags) != self.has_flags:
            return False
        if self.flag_type and not any(f.get("type") == self.flag_type for f in flags):
            return False
        if self.tags and not set(self.tags) & set(user.get("tags") or []):
            return False
        if self.email_verified is not None and bool(user.get("email_verified")) != self.email_verified:
            return False
        if self.phone_verified is not None and bool(user.get("phone_verified")) != self.phone_verified:
            return False
        return True
