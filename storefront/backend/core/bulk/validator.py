"""Row validation for bulk user commands.

Pure functions: nothing here touches a store. A valid command comes back
normalized (unknown fields dropped, values coerced) so the applier only ever
sees the fixed schema of its kind.
"""
import re
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from storefront.backend.core.bulk.models import (
    BulkCommand,
    GENDERS,
    IMPORT_FIELDS,
    ImportRowCommand,
    MUTABLE_FIELDS,
    REQUIRED_IMPORT_FIELDS,
    SoftDeleteCommand,
    StatusChangeCommand,
    USER_STATUSES,
    UpdateCommand,
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")
_NAME_MAX = 50
_TEXT_MAX = 200
REASON_MAX = 500


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    command: Optional[BulkCommand] = None
    error: Optional[str] = None


def _ok(command: BulkCommand) -> ValidationResult:
    return ValidationResult(ok=True, command=command)


def _error(message: str) -> ValidationResult:
    return ValidationResult(ok=False, error=message)


def is_valid_user_id(value: Any) -> bool:
    """User ids are UUIDs."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        uuid.UUID(value.strip())
    except ValueError:
        return False
    return True


# ── Field coercers ────────────────────────────────────────────
# Each takes a raw value and returns the normalized value or raises ValueError
# with a short, user-facing problem description.


def _name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("must be a non-empty string")
    value = value.strip()
    if len(value) > _NAME_MAX:
        raise ValueError(f"must be at most {_NAME_MAX} characters")
    return value


def _email(value: Any) -> str:
    if not isinstance(value, str) or not _EMAIL_RE.match(value.strip()):
        raise ValueError("invalid email address")
    return value.strip().lower()


def _phone(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not _PHONE_RE.match(value.strip()):
        raise ValueError("invalid phone number")
    return value.strip()


def _status(value: Any) -> str:
    if value not in USER_STATUSES:
        raise ValueError(f"must be one of {', '.join(USER_STATUSES)}")
    return value


def _gender(value: Any) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if normalized not in GENDERS:
        raise ValueError(f"must be one of {', '.join(GENDERS)}")
    return normalized


def _date_of_birth(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError("must be an ISO date (YYYY-MM-DD)")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("must be a string")
    value = value.strip()
    if len(value) > _TEXT_MAX:
        raise ValueError(f"must be at most {_TEXT_MAX} characters")
    return value


def _tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    if isinstance(value, (list, tuple)) and all(isinstance(tag, str) for tag in value):
        return [tag.strip() for tag in value if tag.strip()]
    raise ValueError("must be a list of strings or a comma-separated string")


def _boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError("must be true or false")


_COERCERS: Dict[str, Callable[[Any], Any]] = {
    "first_name": _name,
    "last_name": _name,
    "email": _email,
    "phone": _phone,
    "status": _status,
    "date_of_birth": _date_of_birth,
    "gender": _gender,
    "address": _text,
    "city": _text,
    "state": _text,
    "zip_code": _text,
    "country": _text,
    "tags": _tags,
    "source": _text,
    "email_verified": _boolean,
    "phone_verified": _boolean,
}


def _coerce_fields(fields: Dict[str, Any], allowed) -> Tuple[Dict[str, Any], List[str]]:
    """Coerce the allowed subset of ``fields``; returns (clean, problems)."""
    clean: Dict[str, Any] = {}
    problems: List[str] = []
    for name, value in fields.items():
        if name not in allowed:
            continue
        try:
            clean[name] = _COERCERS[name](value)
        except ValueError as e:
            problems.append(f"{name} {e}")
    return clean, problems


def _invalid_fields_message(problems: List[str]) -> str:
    return "Invalid fields: " + "; ".join(problems)


# ── Per-kind validation ───────────────────────────────────────


def _validate_update(command: UpdateCommand) -> ValidationResult:
    if not is_valid_user_id(command.user_id):
        return _error("Invalid user ID")
    if not isinstance(command.fields, dict) or not command.fields:
        return _error("No fields to update")
    recognized = MUTABLE_FIELDS.intersection(command.fields)
    if not recognized:
        return _error(
            "No updatable fields provided: " + ", ".join(sorted(map(str, command.fields)))
        )
    clean, problems = _coerce_fields(command.fields, MUTABLE_FIELDS)
    if problems:
        return _error(_invalid_fields_message(problems))
    return _ok(replace(command, user_id=command.user_id.strip(), fields=clean))


def _validate_reason(reason: Optional[str]) -> Optional[str]:
    if reason is not None and len(reason) > REASON_MAX:
        return f"Reason must be at most {REASON_MAX} characters"
    return None


def _validate_status_change(command: StatusChangeCommand) -> ValidationResult:
    if not is_valid_user_id(command.user_id):
        return _error("Invalid user ID")
    if command.new_status not in USER_STATUSES:
        return _error(f"Invalid status: {command.new_status}")
    problem = _validate_reason(command.reason)
    if problem:
        return _error(problem)
    return _ok(replace(command, user_id=command.user_id.strip()))


def _validate_soft_delete(command: SoftDeleteCommand) -> ValidationResult:
    if not is_valid_user_id(command.user_id):
        return _error("Invalid user ID")
    problem = _validate_reason(command.reason)
    if problem:
        return _error(problem)
    return _ok(replace(command, user_id=command.user_id.strip()))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _validate_import_row(command: ImportRowCommand) -> ValidationResult:
    raw = command.raw_fields or {}
    missing = [name for name in REQUIRED_IMPORT_FIELDS if _is_blank(raw.get(name))]
    if missing:
        return _error("Missing required fields: " + ", ".join(missing))
    # Blank optional cells mean "not provided"
    present = {name: value for name, value in raw.items() if not _is_blank(value)}
    clean, problems = _coerce_fields(present, IMPORT_FIELDS)
    if problems:
        return _error(_invalid_fields_message(problems))
    clean.setdefault("source", "csv_import")
    return _ok(replace(command, raw_fields=clean))


def validate(command: BulkCommand) -> ValidationResult:
    """Check a single command before any mutation is attempted."""
    if isinstance(command, UpdateCommand):
        return _validate_update(command)
    if isinstance(command, StatusChangeCommand):
        return _validate_status_change(command)
    if isinstance(command, SoftDeleteCommand):
        return _validate_soft_delete(command)
    if isinstance(command, ImportRowCommand):
        return _validate_import_row(command)
    raise TypeError(f"Unsupported bulk command: {type(command).__name__}")
