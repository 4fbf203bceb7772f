"""Alembic environment for the Taleweave schema (plot states, packages, history, combat)."""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

from taleweave.config import Config
from taleweave.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def get_url() -> str:
    """URL passed in by init_db(), else the application's configured database."""
    return config.get_main_option("sqlalchemy.url") or Config.get_database_url()


def run_migrations_offline() -> None:
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # SQLite has no ALTER COLUMN
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = get_url()
    kwargs = {"pool_pre_ping": True} if not url.startswith("sqlite") else {}
    with create_engine(url, **kwargs).connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
