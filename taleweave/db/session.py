"""Database engine, session factory and schema initialization."""

import logging
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session as SQLAlchemySession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Config
from .models import Base

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _is_memory_url(url: str) -> bool:
    return ":memory:" in url or url in ("sqlite://", "sqlite:///")


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True, "echo": Config.DEBUG}
    kwargs = {"connect_args": {"check_same_thread": False}, "echo": Config.DEBUG}
    # One shared connection, otherwise every session sees its own empty :memory: DB
    if _is_memory_url(url):
        kwargs["poolclass"] = StaticPool
    return kwargs


def get_engine():
    """Process-wide engine for ``Config.get_database_url()``, created on first use."""
    global _engine
    if _engine is None:
        url = Config.get_database_url()
        _engine = create_engine(url, **_engine_kwargs(url))
    return _engine


def create_session() -> SQLAlchemySession:
    """New ORM session; the caller commits/rolls back and closes it."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _SessionLocal()


def init_db():
    """Bring the schema up to date.

    File and server databases go through Alembic (``upgrade head``); in-memory
    databases, and any database Alembic fails on, get ``create_all()``.
    """
    url = Config.get_database_url()
    if _is_memory_url(url):
        Base.metadata.create_all(bind=get_engine())
        logger.info("[DB] schema created in memory")
        return

    from alembic import command
    from alembic.config import Config as AlembicConfig

    alembic_cfg = AlembicConfig(str(_PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", url)
    try:
        command.upgrade(alembic_cfg, "head")
        logger.info(f"[DB] migrated to head: {url}")
    except Exception as e:
        logger.warning(f"[DB] Alembic upgrade failed ({e}), falling back to create_all()")
        Base.metadata.create_all(bind=get_engine())


def drop_db():
    """Drop every table. Tests only."""
    Base.metadata.drop_all(bind=get_engine())
    logger.info("[DB] tables dropped")


def reset_engine():
    """Dispose the engine and forget the session factory (tests switch URLs)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
