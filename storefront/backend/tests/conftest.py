"""Shared test fixtures for backend tests.

Provides:
- FastAPI test app with dependency overrides (admin, in-memory stores)
- httpx AsyncClient for API testing
- Mock admin users with different permissions
- Seeded user records
"""
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Set, Tuple

import pytest
import pytest_asyncio

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Set required environment variables BEFORE any app imports
os.environ.setdefault("WEB_SECRET_KEY", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("WEB_DEBUG", "true")
os.environ.setdefault("WEB_LOG_DIR", os.path.join(tempfile.gettempdir(), "storefront-test-logs"))
os.environ.pop("DATABASE_URL", None)

# Clear the lru_cache so test env vars take effect
from storefront.backend.core.config import get_web_settings
get_web_settings.cache_clear()

from httpx import ASGITransport, AsyncClient
from jose import jwt
from storefront.backend.api.deps import AdminUser, get_audit_store, get_current_admin, get_user_store
from storefront.backend.core.bulk.models import AuditContext
from storefront.backend.core.bulk.stores import InMemoryAuditStore, InMemoryUserStore
from storefront.backend.core.rate_limit import limiter
from storefront.backend.main import create_app


# ── Seed data ─────────────────────────────────────────────────

ALICE_ID = "11111111-1111-4111-8111-111111111111"
BOB_ID = "22222222-2222-4222-8222-222222222222"
CAROL_ID = "33333333-3333-4333-8333-333333333333"
MISSING_ID = "99999999-9999-4999-8999-999999999999"


def seed_users():
    return [
        {
            "id": ALICE_ID,
            "customer_id": "CUST_ALICE0000001",
            "first_name": "Alice",
            "last_name": "Smith",
            "email": "alice@example.com",
            "phone": "+15550001",
            "status": "active",
            "tags": ["vip"],
            "email_verified": True,
            "phone_verified": False,
            "flags": [],
            "registration_date": datetime(2026, 1, 5, tzinfo=timezone.utc),
            "created_at": datetime(2026, 1, 5, tzinfo=timezone.utc),
        },
        {
            "id": BOB_ID,
            "customer_id": "CUST_BOB00000002",
            "first_name": "Bob",
            "last_name": "Jones",
            "email": "bob@example.com",
            "phone": None,
            "status": "active",
            "tags": [],
            "email_verified": False,
            "phone_verified": False,
            "flags": [],
            "registration_date": datetime(2026, 2, 10, tzinfo=timezone.utc),
            "created_at": datetime(2026, 2, 10, tzinfo=timezone.utc),
        },
        {
            "id": CAROL_ID,
            "customer_id": "CUST_CAROL0000003",
            "first_name": "Carol",
            "last_name": "White",
            "email": "carol@example.com",
            "phone": "+15550003",
            "status": "suspended",
            "tags": ["wholesale"],
            "email_verified": True,
            "phone_verified": True,
            "flags": [{"type": "manual_review", "severity": "medium", "resolved": False}],
            "registration_date": datetime(2026, 3, 15, tzinfo=timezone.utc),
            "created_at": datetime(2026, 3, 15, tzinfo=timezone.utc),
        },
    ]


# ── Admin user fixtures ───────────────────────────────────────

BULK_PERMISSIONS: Set[Tuple[str, str]] = {
    ("users", "view"),
    ("users", "bulk_operations"),
    ("users", "delete"),
    ("users", "import"),
    ("users", "export"),
}

VIEWER_PERMISSIONS: Set[Tuple[str, str]] = {
    ("users", "view"),
}

SUPPORT_PERMISSIONS: Set[Tuple[str, str]] = VIEWER_PERMISSIONS | {
    ("users", "bulk_operations"),
    ("users", "export"),
}


def issue_token(
    subject: str,
    username: str,
    role: str = "admin",
    permissions: Iterable[str] = (),
    expires_in: timedelta = timedelta(minutes=30),
) -> str:
    """Sign an access token the way the storefront auth service does."""
    settings = get_web_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "username": username,
        "role": role,
        "permissions": list(permissions),
        "exp": int((now + expires_in).timestamp()),
        "iat": int(now.timestamp()),
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def make_admin(
    role: str = "manager",
    username: str = "testadmin",
    admin_id: str = "admin-1",
    permissions: Set[Tuple[str, str]] = None,
) -> AdminUser:
    """Create a test AdminUser with specified role."""
    if permissions is None:
        perm_map = {
            "superadmin": set(),
            "manager": BULK_PERMISSIONS,
            "support": SUPPORT_PERMISSIONS,
            "viewer": VIEWER_PERMISSIONS,
        }
        permissions = perm_map.get(role, set())

    return AdminUser(
        admin_id=admin_id,
        username=username,
        role=role,
        permissions=permissions,
    )


@pytest.fixture()
def ctx():
    """Audit context for calling the engine directly."""
    return AuditContext(
        admin_id="admin-1",
        admin_username="testadmin",
        ip_address="10.0.0.1",
        user_agent="pytest",
    )


# ── Stores ────────────────────────────────────────────────────

@pytest.fixture()
def user_store():
    return InMemoryUserStore(seed_users())


@pytest.fixture()
def audit_store():
    return InMemoryAuditStore()


# ── App and client fixtures ──────────────────────────────────

@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """The limiter is module-global; every test starts with fresh counters."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
def app(user_store, audit_store):
    """Create a fresh FastAPI app for testing."""
    # Clear settings cache for each test
    get_web_settings.cache_clear()
    _app = create_app()
    _app.dependency_overrides[get_user_store] = lambda: user_store
    _app.dependency_overrides[get_audit_store] = lambda: audit_store
    yield _app
    # Clean up overrides
    _app.dependency_overrides.clear()


@pytest.fixture()
def manager():
    return make_admin("manager", "manager_user", admin_id="admin-2")


@pytest.fixture()
def support():
    return make_admin("support", "support_user", admin_id="admin-3")


@pytest.fixture()
def viewer():
    return make_admin("viewer", "viewer_user", admin_id="admin-4")


@pytest_asyncio.fixture()
async def client(app, manager):
    """Async HTTP client authenticated as a manager with all bulk permissions."""
    app.dependency_overrides[get_current_admin] = lambda: manager
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def support_client(app, support):
    """Async HTTP client that may run bulk updates and exports but not delete or import."""
    app.dependency_overrides[get_current_admin] = lambda: support
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def viewer_client(app, viewer):
    """Async HTTP client authenticated as viewer."""
    app.dependency_overrides[get_current_admin] = lambda: viewer
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def anon_client(app):
    """Unauthenticated HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
