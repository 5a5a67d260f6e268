"""
Database service for PostgreSQL integration.
Owns the asyncpg pool shared by the user record store and the audit log.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
from asyncpg import Pool

from storefront.backend.core.config import get_web_settings

logger = logging.getLogger(__name__)


# SQL schema for creating tables
SCHEMA_SQL = """
-- Storefront customers
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY,
    customer_id VARCHAR(64) UNIQUE,
    first_name VARCHAR(50) NOT NULL,
    last_name VARCHAR(50) NOT NULL,
    email VARCHAR(255) NOT NULL UNIQUE,
    phone VARCHAR(32),
    date_of_birth DATE,
    gender VARCHAR(32),
    address VARCHAR(200),
    city VARCHAR(200),
    state VARCHAR(200),
    zip_code VARCHAR(200),
    country VARCHAR(200),
    tags TEXT[] NOT NULL DEFAULT '{}',
    source VARCHAR(200),
    status VARCHAR(32) NOT NULL DEFAULT 'active',
    email_verified BOOLEAN NOT NULL DEFAULT FALSE,
    phone_verified BOOLEAN NOT NULL DEFAULT FALSE,
    flags JSONB NOT NULL DEFAULT '[]'::jsonb,
    registration_date TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_users_status ON users(status);
CREATE INDEX IF NOT EXISTS idx_users_registration_date ON users(registration_date DESC);
CREATE INDEX IF NOT EXISTS idx_users_tags ON users USING GIN (tags);

-- Append-only admin audit trail
CREATE TABLE IF NOT EXISTS admin_audit_log (
    id BIGSERIAL PRIMARY KEY,
    admin_id VARCHAR(64),
    admin_username VARCHAR(255),
    action VARCHAR(100) NOT NULL,
    resource VARCHAR(50),
    resource_id VARCHAR(255),
    status VARCHAR(20),
    severity VARCHAR(20) DEFAULT 'medium',
    changes JSONB,
    ip_address VARCHAR(64),
    user_agent TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_admin_audit_log_created ON admin_audit_log(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_admin_audit_log_action ON admin_audit_log(action);
CREATE INDEX IF NOT EXISTS idx_admin_audit_log_resource_id ON admin_audit_log(resource_id);
"""


class DatabaseService:
    """Holds the asyncpg pool; stores borrow connections through ``acquire``."""

    def __init__(self):
        self._pool: Optional[Pool] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._pool is not None and not self._pool._closed

    async def _open_pool(self, dsn: str) -> Pool:
        settings = get_web_settings()
        pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=30,
        )
        try:
            async with pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except BaseException:
            await pool.close()
            raise
        return pool

    async def connect(self, database_url: str = None, max_retries: int = 5, retry_delay: float = 2.0) -> bool:
        """Open the pool and bootstrap the schema.

        Retries with exponential backoff (capped at 30s). Returns False instead
        of raising so the app can fall back to in-memory stores.
        """
        dsn = database_url or get_web_settings().database_url
        if not dsn:
            logger.warning("DATABASE_URL not configured")
            return False

        async with self._lock:
            if self._pool is not None:
                return True

            delay = retry_delay
            for attempt in range(1, max_retries + 1):
                try:
                    self._pool = await self._open_pool(dsn)
                except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
                    if attempt == max_retries:
                        logger.error("PostgreSQL unreachable after %d attempts: %s", attempt, e)
                        return False
                    logger.warning("PostgreSQL attempt %d/%d failed (%s), retrying in %.0fs", attempt, max_retries, e, delay)
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, 30)
                else:
                    logger.info("PostgreSQL pool ready (%d-%d connections)",
                                self._pool.get_min_size(), self._pool.get_max_size())
                    return True
        return False

    async def disconnect(self) -> None:
        async with self._lock:
            if self._pool is not None:
                await self._pool.close()
                self._pool = None
                logger.info("PostgreSQL pool closed")

    @asynccontextmanager
    async def acquire(self):
        """Borrow a pooled connection. Raises RuntimeError when not connected."""
        if self._pool is None:
            raise RuntimeError("Database not connected")
        async with self._pool.acquire() as conn:
            yield conn


db_service = DatabaseService()
