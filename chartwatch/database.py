"""SQLModel database engine and session management."""

import logging

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from chartwatch.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        # SQLite needs check_same_thread=False; PostgreSQL does not
        connect_args["check_same_thread"] = False
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    new_engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        **kwargs,
    )

    if database_url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = make_engine(settings.database_url)


def create_db_and_tables(target_engine=None):
    """Create all tables. Called on startup."""
    import chartwatch.models  # noqa: F401  (populate metadata)

    SQLModel.metadata.create_all(target_engine or engine)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
