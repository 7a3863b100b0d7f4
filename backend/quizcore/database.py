"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` and provides small helpers used by the
application, the CLI scripts and tests. SQLite connections get foreign
key enforcement switched on so cascade/restrict rules behave the same as
on a server database.
"""

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from .config import settings
from . import models  # noqa: F401  (registers tables on SQLModel.metadata)

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for `url` with SQLite-specific tweaks applied.

    In-memory SQLite databases use a `StaticPool` so every session (and
    every thread of the test client) sees the same connection.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in _MEMORY_URLS:
        kwargs["poolclass"] = StaticPool
    eng = create_engine(url, echo=echo, **kwargs)
    event.listen(eng, "connect", _enable_sqlite_foreign_keys)
    return eng


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)


def create_db_and_tables(bind: Engine = None):
    """Create database tables using SQLModel metadata.

    Intended for local development, scripts and tests; production
    deployments should manage the schema with a migration tool.
    """
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
