"""
Alembic Migration Environment

What happens here:
------------------
1. Load application settings (DATABASE_URL)
2. Import all models so Base.metadata knows every table
3. Run migrations offline (emit SQL) or online (asyncpg connection)

Some indexes only exist in migrations (pgvector HNSW, full-text GIN over
expressions). ``include_object`` hides them from autogenerate so it never
proposes dropping them.
"""

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Add the project root to the Python path so migrations run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from talkarchive.core.config import settings  # noqa: E402
from talkarchive.db.base import Base  # noqa: E402

# Without these imports, Alembic won't detect the tables
from talkarchive.models import (  # noqa: F401, E402
    Channel,
    ErrorReport,
    IngestionLog,
    Tag,
    Transcript,
    TranscriptChunk,
    Video,
    VideoTag,
)

# ================================
# Alembic Config Object
# ================================

config = context.config

# Set the SQLAlchemy URL from our application settings
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

MIGRATION_ONLY_INDEXES = {
    "ix_transcript_chunks_embedding_hnsw",
    "ix_transcripts_raw_text_fts",
    "ix_videos_title_description_fts",
}


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    if type_ == "index" and reflected and name in MIGRATION_ONLY_INDEXES:
        return False
    return True


def run_migrations_offline() -> None:
    """Generate SQL statements without connecting to the database."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,  # Detect VARCHAR(50) → VARCHAR(100)
        compare_server_default=True,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Migrations use the same asyncpg driver as the application."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,  # Don't use connection pooling for migrations
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
