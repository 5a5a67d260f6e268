"""Append-only admin audit log.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
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
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_admin_audit_log_created ON admin_audit_log (created_at DESC)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_admin_audit_log_action ON admin_audit_log (action)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_admin_audit_log_resource_id ON admin_audit_log (resource_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS admin_audit_log")
