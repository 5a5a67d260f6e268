"""
Alembic environment for the storefront admin database.

The schema is plain SQL (see storefront/backend/core/database.py), so there
is no target metadata. DATABASE_URL overrides the URL in alembic.ini.
"""
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

config = context.config

if config.config_file_name is not None:
    # Keep application loggers alive when migrations run in-process
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _database_url() -> str:
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    # Migrations run on psycopg2 even when the app DSN names asyncpg
    return url.replace("postgresql+asyncpg://", "postgresql://", 1)


def _migrate(**configure_kwargs) -> None:
    context.configure(target_metadata=None, **configure_kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    _migrate(url=_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_online() -> None:
    """Migrate over a caller-provided connection, or open one from the URL."""
    connection = config.attributes.get("connection")
    if connection is not None:
        _migrate(connection=connection)
        return

    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as conn:
        _migrate(connection=conn)


if context.is_offline_mode():
    run_offline()
else:
    run_online()
