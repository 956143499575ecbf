from __future__ import annotations

from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

SQLITE_BUSY_TIMEOUT_MS = 5000


def _tune_sqlite(dbapi_connection: Any, _connection_record: Any) -> None:
    # Persistence workers write while the pipeline session reads.
    cursor = dbapi_connection.cursor()
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def build_engine(db_url: str) -> Engine:
    if not db_url.startswith("sqlite"):
        return create_engine(db_url, future=True)
    engine = create_engine(db_url, future=True, connect_args={"check_same_thread": False})
    if db_url not in ("sqlite://", "sqlite:///:memory:"):
        event.listen(engine, "connect", _tune_sqlite)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def init_db(engine: Engine) -> sessionmaker[Session]:
    """Create missing cluster and event tables; return a session factory."""
    Base.metadata.create_all(engine)
    return build_session_factory(engine)
