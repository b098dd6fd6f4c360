import asyncio
import os
import sys
from logging.config import fileConfig

# Load .env before the settings module reads the environment
from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

# Make the referral_ledger package importable when alembic runs from the repo root
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from referral_ledger.core.config import settings
from referral_ledger.db.base_class import Base
from referral_ledger.models import *  # noqa: F401,F403 registers every ledger table on Base.metadata

config = context.config

# The application settings are the single source of the database URL
db_url = str(settings.DATABASE_URL)
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit the ledger schema as SQL without connecting to the database."""
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations over an asyncpg connection."""
    connectable = create_async_engine(db_url, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
