from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, g
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

# Postgres pool for a few gunicorn workers sharing one managed database.
_POSTGRES_POOL = {
    "pool_recycle": 1800,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 30,
}


def _configure_sqlite(engine: Engine) -> None:
    """
    Dev/test databases. Foreign keys are enforced so cascades and import reference checks
    behave as on Postgres, and transactions are begun explicitly so the per-record
    SAVEPOINTs of the data import nest inside them.
    """

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):  # type: ignore[no-redef]
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):  # type: ignore[no-redef]
        conn.exec_driver_sql("BEGIN")


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine_kwargs: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        engine_kwargs.update(_POSTGRES_POOL)
    engine = create_engine(db_url, **engine_kwargs)
    if db_url.startswith("sqlite"):
        _configure_sqlite(engine)

    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def db_session(app: Flask | None = None) -> Session:
    """One session per request, kept on g; blueprints commit it, teardown closes it."""
    if getattr(g, "db_session", None) is not None:
        return g.db_session
    if app is None:
        from flask import current_app

        app = current_app
    g.db_session = app.extensions["sqlalchemy_sessionmaker"]()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        try:
            s.close()
        finally:
            g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """Session outside a request (seed script, tests): commits on success, rolls back on error."""
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
