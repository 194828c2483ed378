"""Alembic environment: runs migrations with the async engine."""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from eacz_registry.core.config import settings
from eacz_registry.core.database import Base

# Import models so every table is registered on Base.metadata
from eacz_registry.modules.applicants import models as _applicants  # noqa: F401
from eacz_registry.modules.applications import models as _applications  # noqa: F401
from eacz_registry.modules.documents import models as _documents  # noqa: F401
from eacz_registry.modules.members import models as _members  # noqa: F401
from eacz_registry.modules.naming_series import models as _naming_series  # noqa: F401
from eacz_registry.modules.status_history import models as _status_history  # noqa: F401
from eacz_registry.modules.users import models as _users  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
