from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator
from typing import Any

from flask import Flask, current_app, g
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.crm.errors import ConflictError


def engine_options(db_url: str) -> dict[str, Any]:
    """create_engine() kwargs for a URL; shared by the app and the scripts."""
    opts: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        opts.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    elif db_url.startswith("sqlite"):
        # gunicorn threads share the pool; SQLite connections are per-thread by default.
        opts["connect_args"] = {"check_same_thread": False}
    return opts


def make_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **engine_options(db_url))
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = make_sessionmaker(engine)
    app.logger.debug("DB engine ready (%s)", engine.url.get_backend_name())


def dispose_db(app: Flask) -> None:
    engine: Engine | None = app.extensions.get("sqlalchemy_engine")
    if engine is not None:
        engine.dispose()


def create_schema(app: Flask) -> None:
    """Create any missing tables. Alembic owns schema changes in production."""
    from app.crm.models import Base

    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])


def db_session() -> Session:
    """One session per request, opened lazily and closed at teardown."""
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        s = current_app.extensions["sqlalchemy_sessionmaker"]()
        g.db_session = s
    return s


def teardown_db_session(exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is None:
        return
    if exc is not None:
        s.rollback()
    s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for startup, scripts and tests: commits on success,
    rolls back on error.
    """
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def flush_delete(s: Session, message: str) -> None:
    """
    Flush a pending delete. Where the database enforces foreign keys
    (Postgres, SQLite with the pragma on) a parent that still has children
    cannot go; that is rolled back and reported as a conflict.
    """
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise ConflictError(message)
