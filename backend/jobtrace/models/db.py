import os

from loguru import logger
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jobtrace.core.config import settings
from jobtrace.models.tables import Base


def _ensure_sqlite_path(url: str) -> None:
    if url.startswith("sqlite:///") and ":memory:" not in url:
        # Convert sqlite:///./data/dev.db -> ./data/dev.db
        path = url[len("sqlite:///") :]
        # Only create directory if path points to a file
        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)


def _serialize_sqlite_writers(engine: Engine) -> None:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so a read-then-insert is not
    atomic. Taking the write lock up front makes concurrent appends queue on
    the database lock (bounded by the driver's busy timeout).
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> Engine:
    _ensure_sqlite_path(url)
    if url.startswith("sqlite") and ":memory:" in url:
        # one shared connection, otherwise every connection sees an empty database
        engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    elif url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, pool_pre_ping=True)
    else:
        return create_engine(url, pool_pre_ping=True, pool_recycle=3600)
    _serialize_sqlite_writers(engine)
    return engine


def init_db(bind: Engine) -> None:
    """Create the event tables if missing. Production schemas go through Alembic."""
    Base.metadata.create_all(bind=bind)
    logger.debug("Event tables ensured on {}", bind.url.render_as_string(hide_password=True))


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Developer convenience: for SQLite dev DBs, ensure tables exist
if engine.dialect.name == "sqlite":
    init_db(engine)
