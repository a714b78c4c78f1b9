"""SQLAlchemy engine and session factory utilities."""

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from outreach_queue.core.db.models import Base


def create_db_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine from a connection URL.

    Configures SQLite-specific settings (WAL, busy_timeout) when the URL
    targets SQLite, and creates missing tables.
    """
    connect_args = {}
    pool_kwargs = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    else:
        pool_kwargs.update({"pool_size": 5, "max_overflow": 10, "pool_recycle": 3600})

    engine = create_engine(url, connect_args=connect_args, **pool_kwargs)

    if url.startswith("sqlite"):

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a sessionmaker bound to the given engine."""
    return sessionmaker(bind=engine)
