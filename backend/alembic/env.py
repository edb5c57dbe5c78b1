import sys
import os
from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from alembic import context

# backend/ on the path so migrations run without installing callplane
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from callplane.models import Base
from callplane.config.settings import settings

config = context.config
fileConfig(config.config_file_name)

target_metadata = Base.metadata

CALL_TABLES = {"call_sessions", "call_participants", "project_call_quotas"}


def sync_url() -> str:
    """Migration URL on a blocking driver: asyncpg becomes psycopg2, aiosqlite plain sqlite."""
    url = settings.database_url
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


def include_object(obj, name, type_, reflected, compare_to):
    # The database may be shared; autogenerate only looks at call tables
    if type_ == "table":
        return name in CALL_TABLES
    return True


def run_migrations_offline():
    """Emit SQL for the call tables without connecting."""
    context.configure(
        url=sync_url(),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = create_engine(sync_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
