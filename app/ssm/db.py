from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator, Mapping
from typing import Any

from flask import Flask, current_app, g
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker


def engine_options(db_url: str, config: Mapping[str, Any]) -> dict[str, Any]:
    """Engine kwargs for `db_url`. Pool sizing only applies to server databases."""
    opts: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        return opts
    opts.update(
        pool_size=int(config.get("DB_POOL_SIZE", 5)),
        max_overflow=int(config.get("DB_MAX_OVERFLOW", 10)),
        pool_recycle=int(config.get("DB_POOL_RECYCLE", 1800)),
        pool_timeout=30,
    )
    return opts


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **engine_options(db_url, app.config))
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
    )
    app.logger.info("Database engine ready (%s)", engine.url.render_as_string(hide_password=True))


def db_session() -> Session:
    """Session bound to the current request; closed in teardown."""
    s: Session | None = g.get("db_session")
    if s is None:
        s = current_app.extensions["sqlalchemy_sessionmaker"]()
        g.db_session = s
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is not None:
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """Session for cron runs, scripts and tests. Commits on success, rolls back on error."""
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
