"""Storefront users table.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
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
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_status ON users (status)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_registration_date ON users (registration_date DESC)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_tags ON users USING GIN (tags)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS users")
