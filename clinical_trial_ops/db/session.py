"""
Database engine and session management
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from clinical_trial_ops.api.config import get_settings
from clinical_trial_ops.db.models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(database_url: str, echo: bool = False) -> Engine:
    connect_args = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        # FastAPI runs sync endpoints in a threadpool
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, echo=echo, connect_args=connect_args)
    if is_sqlite:
        # SQLite leaves foreign key enforcement off per connection
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_engine() -> Engine:
    """Get or create the process-wide engine from settings"""
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        _engine = make_engine(settings.database_url, echo=settings.database_echo)
        _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
        logger.info(f"Database engine created for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def get_session_factory() -> sessionmaker:
    get_engine()
    return _session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet"""
    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def session_scope() -> Iterator[Session]:
    """Transactional scope for scripts: commit on success, rollback on error"""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request"""
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()
