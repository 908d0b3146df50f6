from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from db.base import Base
from db.config import normalize_postgres_url, resolve_database_url
from db.models import (  # noqa: F401 imports trigger Base.metadata registration
    JobRun,
    RentalIndexDaily,
    RentalIndexMonthly,
    RentalListing,
    RentalSnapshot,
    ScrapeQueueItem,
)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _migration_url() -> str:
    """
    `-x db_url=...` targets a one-off database; otherwise the same URL the
    pipeline uses.
    """

    override = context.get_x_argument(as_dictionary=True).get("db_url")
    url = normalize_postgres_url(override) if override else resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Rental pipeline migrations target PostgreSQL only.")
    return url


def run_migrations_offline() -> None:
    context.configure(
        url=_migration_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _migration_url()
    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
