"""User record store and audit log store.

PostgreSQL-backed implementations run on the shared asyncpg pool. In-memory
implementations are used when no DATABASE_URL is configured, the same way the
cache falls back to memory without Redis.
"""
import asyncio
import copy
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol

import asyncpg

from storefront.backend.core.bulk.exceptions import DuplicateRecordError, StoreUnavailableError
from storefront.backend.core.bulk.models import AuditEntry, UserFilters
from storefront.backend.core.database import DatabaseService

logger = logging.getLogger(__name__)

# Columns writable through create()/update(); flags only change via append_flag
_USER_COLUMNS = frozenset({
    "customer_id", "first_name", "last_name", "email", "phone", "date_of_birth",
    "gender", "address", "city", "state", "zip_code", "country", "tags",
    "source", "status", "email_verified", "phone_verified", "registration_date",
})

_CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.InterfaceError,
    asyncpg.PostgresConnectionError,
)


class UserStore(Protocol):
    async def find_by_id(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]: ...

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(
        self,
        user_id: str,
        fields: Dict[str, Any],
        append_flag: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]: ...

    async def search(self, filters: UserFilters, limit: int) -> List[Dict[str, Any]]: ...


class AuditStore(Protocol):
    async def append(self, entry: AuditEntry) -> None: ...

    async def read(
        self,
        limit: int = 100,
        action: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> List[AuditEntry]: ...


def _check_columns(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - _USER_COLUMNS
    if unknown:
        raise ValueError(f"Unknown user columns: {', '.join(sorted(unknown))}")


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _duplicate_message(constraint: Optional[str]) -> str:
    if constraint and "email" in constraint:
        return "Email already in use"
    if constraint and "customer_id" in constraint:
        return "Customer ID already in use"
    return "Duplicate user record"


# ── PostgreSQL ────────────────────────────────────────────────


def _db_row_to_user(row) -> Dict[str, Any]:
    user = dict(row)
    user["id"] = str(user["id"])
    flags = user.get("flags")
    if isinstance(flags, str):
        user["flags"] = json.loads(flags)
    user["tags"] = list(user.get("tags") or [])
    return user


class PostgresUserStore:
    """User records in the ``users`` table."""

    def __init__(self, db: DatabaseService):
        self._db = db

    @asynccontextmanager
    async def _connection(self):
        try:
            async with self._db.acquire() as conn:
                yield conn
        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError(_duplicate_message(e.constraint_name)) from e
        except RuntimeError as e:
            raise StoreUnavailableError(f"User store unavailable: {e}") from e
        except _CONNECTION_ERRORS as e:
            raise StoreUnavailableError(f"User store unavailable: {e}") from e

    async def find_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
            return _db_row_to_user(row) if row else None

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM users WHERE LOWER(email) = LOWER($1) LIMIT 1",
                email,
            )
            return _db_row_to_user(row) if row else None

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        _check_columns(fields)
        columns = ["id", *fields]
        params = [str(uuid.uuid4()), *fields.values()]
        placeholders = ", ".join(f"${i}" for i in range(1, len(params) + 1))
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"INSERT INTO users ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
                *params,
            )
            return _db_row_to_user(row)

    async def update(
        self,
        user_id: str,
        fields: Dict[str, Any],
        append_flag: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Apply field changes and an optional new flag in one statement."""
        _check_columns(fields)
        sets, params = [], []
        for column, value in fields.items():
            params.append(value)
            sets.append(f"{column} = ${len(params)}")
        if append_flag is not None:
            params.append(json.dumps([append_flag], default=_json_default))
            sets.append(f"flags = flags || ${len(params)}::jsonb")
        sets.append("updated_at = NOW()")
        params.append(user_id)
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE users SET {', '.join(sets)} WHERE id = ${len(params)} RETURNING *",
                *params,
            )
            return _db_row_to_user(row) if row else None

    async def search(self, filters: UserFilters, limit: int) -> List[Dict[str, Any]]:
        where_parts = []
        params: List[Any] = []

        def _param(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if filters.search:
            p = _param(f"%{filters.search}%")
            where_parts.append(
                f"(first_name ILIKE {p} OR last_name ILIKE {p} OR email ILIKE {p} OR customer_id ILIKE {p})"
            )
        if filters.status:
            where_parts.append(f"status = {_param(filters.status)}")
        if filters.registration_date_from:
            where_parts.append(f"registration_date::date >= {_param(filters.registration_date_from)}")
        if filters.registration_date_to:
            where_parts.append(f"registration_date::date <= {_param(filters.registration_date_to)}")
        if filters.has_flags is True:
            where_parts.append("jsonb_array_length(flags) > 0")
        elif filters.has_flags is False:
            where_parts.append("jsonb_array_length(flags) = 0")
        if filters.flag_type:
            where_parts.append(f"flags @> {_param(json.dumps([{'type': filters.flag_type}]))}::jsonb")
        if filters.tags:
            where_parts.append(f"tags && {_param(list(filters.tags))}::text[]")
        if filters.email_verified is not None:
            where_parts.append(f"email_verified = {_param(filters.email_verified)}")
        if filters.phone_verified is not None:
            where_parts.append(f"phone_verified = {_param(filters.phone_verified)}")

        where = f"WHERE {' AND '.join(where_parts)}" if where_parts else ""
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT * FROM users {where} ORDER BY created_at DESC LIMIT {_param(limit)}",
                *params,
            )
            return [_db_row_to_user(row) for row in rows]


class PostgresAuditStore:
    """Append-only writer/reader for ``admin_audit_log``."""

    def __init__(self, db: DatabaseService):
        self._db = db

    async def append(self, entry: AuditEntry) -> None:
        try:
            async with self._db.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO admin_audit_log
                        (admin_id, admin_username, action, resource, resource_id,
                         status, severity, changes, ip_address, user_agent, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10, $11)
                    """,
                    entry.admin_id, entry.admin_username, entry.action, entry.resource,
                    entry.resource_id, entry.status, entry.severity,
                    json.dumps(entry.changes, default=_json_default),
                    entry.ip_address, entry.user_agent, entry.created_at,
                )
        except RuntimeError as e:
            raise StoreUnavailableError(f"Audit store unavailable: {e}") from e
        except _CONNECTION_ERRORS as e:
            raise StoreUnavailableError(f"Audit store unavailable: {e}") from e

    async def read(
        self,
        limit: int = 100,
        action: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> List[AuditEntry]:
        where_parts = []
        params: List[Any] = []
        if action:
            params.append(action)
            where_parts.append(f"action = ${len(params)}")
        if resource_id:
            params.append(resource_id)
            where_parts.append(f"resource_id = ${len(params)}")
        where = f"WHERE {' AND '.join(where_parts)}" if where_parts else ""
        params.append(limit)
        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT * FROM admin_audit_log {where} ORDER BY id DESC LIMIT ${len(params)}",
                *params,
            )
        entries = []
        for row in rows:
            changes = row["changes"]
            entries.append(AuditEntry(
                admin_id=row["admin_id"],
                admin_username=row["admin_username"],
                action=row["action"],
                resource=row["resource"],
                resource_id=row["resource_id"],
                status=row["status"],
                changes=json.loads(changes) if isinstance(changes, str) else (changes or {}),
                severity=row["severity"],
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
                created_at=row["created_at"],
            ))
        return entries


# ── In-memory fallback ────────────────────────────────────────


class InMemoryUserStore:
    """Dict-backed user store (fallback when PostgreSQL is not configured)."""

    def __init__(self, users: Iterable[Dict[str, Any]] = ()):
        self._users: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        for user in users:
            record = copy.deepcopy(user)
            record.setdefault("id", str(uuid.uuid4()))
            record.setdefault("flags", [])
            record.setdefault("tags", [])
            self._users[record["id"]] = record

    def _email_taken(self, email: Optional[str], exclude_id: Optional[str] = None) -> bool:
        if not email:
            return False
        return any(
            (u.get("email") or "").lower() == email.lower() and uid != exclude_id
            for uid, u in self._users.items()
        )

    async def find_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user else None

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for user in self._users.values():
                if (user.get("email") or "").lower() == email.lower():
                    return copy.deepcopy(user)
            return None

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        _check_columns(fields)
        async with self._lock:
            if self._email_taken(fields.get("email")):
                raise DuplicateRecordError("Email already in use")
            now = datetime.now(timezone.utc)
            record = {
                "status": "active",
                "tags": [],
                "email_verified": False,
                "phone_verified": False,
                "registration_date": now,
                **copy.deepcopy(fields),
                "id": str(uuid.uuid4()),
                "flags": [],
                "created_at": now,
                "updated_at": now,
            }
            self._users[record["id"]] = record
            return copy.deepcopy(record)

    async def update(
        self,
        user_id: str,
        fields: Dict[str, Any],
        append_flag: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        _check_columns(fields)
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            if "email" in fields and self._email_taken(fields["email"], exclude_id=user_id):
                raise DuplicateRecordError("Email already in use")
            user.update(copy.deepcopy(fields))
            if append_flag is not None:
                user.setdefault("flags", []).append(copy.deepcopy(append_flag))
            user["updated_at"] = datetime.now(timezone.utc)
            return copy.deepcopy(user)

    async def search(self, filters: UserFilters, limit: int) -> List[Dict[str, Any]]:
        async with self._lock:
            matches = [u for u in self._users.values() if filters.matches(u)]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        matches.sort(key=lambda u: u.get("created_at") or epoch, reverse=True)
        return [copy.deepcopy(u) for u in matches[:limit]]


class InMemoryAuditStore:
    """List-backed audit log (fallback when PostgreSQL is not configured)."""

    def __init__(self):
        self._entries: List[AuditEntry] = []
        self._lock = asyncio.Lock()

    @property
    def entries(self) -> List[AuditEntry]:
        return list(self._entries)

    async def append(self, entry: AuditEntry) -> None:
        async with self._lock:
            self._entries.append(entry)

    async def read(
        self,
        limit: int = 100,
        action: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> List[AuditEntry]:
        async with self._lock:
            entries = [
                e for e in reversed(self._entries)
                if (action is None or e.action == action)
                and (resource_id is None or e.resource_id == resource_id)
            ]
        return entries[:limit]
