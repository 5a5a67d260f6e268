"""API dependencies for the admin back office."""
import logging
from dataclasses import dataclass, field
from typing import Optional, Set, Tuple

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from storefront.backend.core.bulk.coordinator import BatchCoordinator
from storefront.backend.core.bulk.models import AuditContext
from storefront.backend.core.bulk.stores import (
    AuditStore,
    InMemoryAuditStore,
    InMemoryUserStore,
    PostgresAuditStore,
    PostgresUserStore,
    UserStore,
)
from storefront.backend.core.config import get_web_settings
from storefront.backend.core.database import db_service
from storefront.backend.core.errors import api_error, E
from storefront.backend.core.security import decode_token

logger = logging.getLogger(__name__)
security = HTTPBearer()


@dataclass
class AdminUser:
    """Authenticated admin user with RBAC info."""

    admin_id: Optional[str] = None
    username: str = "admin"
    role: str = "admin"
    permissions: Set[Tuple[str, str]] = field(default_factory=set)

    def has_permission(self, resource: str, action: str) -> bool:
        """Check if this admin has a specific permission."""
        return (resource, action) in self.permissions


def _parse_permissions(raw) -> Set[Tuple[str, str]]:
    perms = set()
    for item in raw or ():
        if isinstance(item, str) and ":" in item:
            resource, action = item.split(":", 1)
            perms.add((resource, action))
    return perms


async def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AdminUser:
    """Dependency for verifying admin authentication."""
    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"detail": "Invalid or expired token", "code": E.INVALID_TOKEN.value},
            headers={"WWW-Authenticate": "Bearer"},
        )

    subject = payload.get("sub")
    if not subject:
        logger.warning("Access denied: token without subject")
        raise api_error(status.HTTP_403_FORBIDDEN, E.NOT_AN_ADMIN)

    return AdminUser(
        admin_id=str(subject),
        username=payload.get("username") or str(subject),
        role=payload.get("role", "admin"),
        permissions=_parse_permissions(payload.get("permissions")),
    )


# ── Permission-checking dependency factory ──────────────────────

def require_permission(resource: str, action: str):
    """Create a dependency that checks for a specific permission.

    Usage in endpoint:
        @router.post("/bulk/delete")
        async def bulk_delete(admin: AdminUser = Depends(require_permission("users", "delete"))):
            ...

    Admins with role "superadmin" bypass checks.
    """
    async def _check(admin: AdminUser = Depends(get_current_admin)) -> AdminUser:
        # Superadmin role bypasses all checks
        if admin.role == "superadmin":
            return admin

        if not admin.has_permission(resource, action):
            logger.warning(
                "Permission denied: %s (%s) -> %s:%s",
                admin.username, admin.role, resource, action,
            )
            raise api_error(
                status.HTTP_403_FORBIDDEN,
                E.FORBIDDEN,
                f"Permission denied: {resource}:{action}",
            )
        return admin

    return _check


# ── Utility helpers ─────────────────────────────────────────────

def get_client_ip(request: Request) -> str:
    """Extract client IP, respecting X-Forwarded-For behind a reverse proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def audit_context(request: Request, admin: AdminUser) -> AuditContext:
    """Who is acting and from where, for the audit trail."""
    return AuditContext(
        admin_id=admin.admin_id,
        admin_username=admin.username,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


# ── Stores ──────────────────────────────────────────────────────

# Used when DATABASE_URL is not configured (local development, demos)
_memory_users = InMemoryUserStore()
_memory_audit = InMemoryAuditStore()


async def get_user_store() -> UserStore:
    """Dependency for the user record store."""
    if db_service.is_connected:
        return PostgresUserStore(db_service)
    return _memory_users


async def get_audit_store() -> AuditStore:
    """Dependency for the audit log store."""
    if db_service.is_connected:
        return PostgresAuditStore(db_service)
    return _memory_audit


async def get_coordinator(
    users: UserStore = Depends(get_user_store),
    audit: AuditStore = Depends(get_audit_store),
) -> BatchCoordinator:
    """Dependency for the bulk operations coordinator."""
    settings = get_web_settings()
    return BatchCoordinator(
        users,
        audit,
        max_rows=settings.bulk_max_rows,
        import_max_rows=settings.import_max_rows,
        import_max_bytes=settings.import_max_bytes,
        export_max_rows=settings.export_max_rows,
    )
