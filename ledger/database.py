"""SQLAlchemy engine, session factory and declarative base."""
from typing import Any, Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from .config import get_settings

settings = get_settings()

# execution option marking a unit of work that will write bookings
RESERVE_WRITES = "ledger_reserve_writes"


def _connect_args(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        # busy timeout bounds how long a writer waits on the SQLite file lock
        return {"check_same_thread": False, "timeout": settings.lock_timeout_seconds}
    return {}


def _begin_immediate(conn: Connection) -> None:
    """Take SQLite's write lock when a writing transaction starts.

    pysqlite only opens a transaction at the first INSERT/UPDATE, which would
    leave the capacity check outside it. Only one connection can hold the
    RESERVED lock, so writers in other processes wait on the busy timeout.
    """
    if conn.get_execution_options().get(RESERVE_WRITES):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url),
    pool_pre_ping=True,
)
if engine.dialect.name == "sqlite":
    event.listen(engine, "begin", _begin_immediate)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


class Base(DeclarativeBase):
    pass
