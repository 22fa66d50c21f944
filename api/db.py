"""Database Session Management.

Provides sync SQLAlchemy sessions for the file service.
Supports both PostgreSQL (production) and SQLite (development/testing).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from api.config.env import env_bool
from api.config.settings import get_database_url
from api.db_models import Base

log = logging.getLogger("filegate.db")

# Global engine and session factory
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def build_engine(db_url: str, *, echo: bool = False) -> Engine:
    is_sqlite = db_url.startswith("sqlite")

    engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        path = db_url.split("///", 1)[-1]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
    else:
        # PostgreSQL connection pool settings
        engine_kwargs.update(
            {
                "pool_size": _env_int("FG_DB_POOL_SIZE", 5),
                "max_overflow": _env_int("FG_DB_POOL_MAX_OVERFLOW", 10),
                "pool_timeout": _env_int("FG_DB_POOL_TIMEOUT", 30),
                "pool_recycle": _env_int("FG_DB_POOL_RECYCLE", 1800),
            }
        )

    engine = create_engine(db_url, **engine_kwargs)

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


def get_engine() -> Engine:
    """Get or create the process-wide engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_database_url(), echo=env_bool("FG_DB_ECHO", False))
    return _engine


def get_sessionmaker() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_sessionmaker(get_engine())
    return _session_factory


@contextmanager
def session_scope() -> Iterator[Session]:
    """Transactional scope on the process-wide engine.

    Usage:
        with session_scope() as session:
            FileRepository(session).add_group("Everyone", is_default=True)
    """
    factory = get_sessionmaker()
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def reset_engine_cache() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables if they don't exist."""
    target = engine or get_engine()
    Base.metadata.create_all(bind=target)
    log.info("database schema ready url=%s", target.url.render_as_string(hide_password=True))

