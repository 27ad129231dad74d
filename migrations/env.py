"""Alembic environment for the lesson assignment schema.

Migrations are plain SQL (no SQLAlchemy models), so target_metadata stays
None and autogenerate is not used.
"""

import os
from logging.config import fileConfig
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool
from alembic import context

# DATABASE_URL / DATABASE_PATH may live in the project's .env
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

config = context.config
target_metadata = None


def _database_url() -> str:
    """PostgreSQL when DATABASE_URL is set, otherwise the SQLite file."""
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgresql://"):
        return url
    return f"sqlite:///{os.getenv('DATABASE_PATH', 'lessonmatch.db')}"


# init_db() sets the URL and owns logging. The CLI reads both from the environment and alembic.ini
if not config.get_main_option("sqlalchemy.url") or config.cmd_opts is not None:
    config.set_main_option("sqlalchemy.url", _database_url())

if config.config_file_name is not None and config.cmd_opts is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _is_sqlite() -> bool:
    return config.get_main_option("sqlalchemy.url").startswith("sqlite")


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=_is_sqlite(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=_is_sqlite(),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
