# File: src/archivemind/infrastructure/db/uow.py
"""
Unit of Work: engine, session factory and the transactional `session_scope`.

Services receive a `session_scope` callable through their constructor. The module-level
one below is bound to `settings.DATABASE_URL`; `make_session_scope(engine)` builds an
equivalent for any other engine (tests, scripts).

Each scope gets its own Session. The service layer is asyncio-based, so a scope must
never be held across an `await`: open it, do the DB work, leave it.
"""

import logging
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from archivemind.config import settings
from archivemind.domain.errors import PersistenceFailureError
from .base import build_engine
from .models import Base

log = logging.getLogger(__name__)

SessionScopeFactory = Callable[[], ContextManager[Session]]


def create_tables(target: Optional[Engine] = None):
    """Creates all tables defined in the models package."""
    target = target or engine
    log.info("Creating database tables if they do not exist...")
    try:
        Base.metadata.create_all(target)
        log.info("Database tables checked/created successfully.")
    except Exception as e:
        log.critical(f"Failed to create database tables: {e}", exc_info=True)
        raise


def make_session_scope(bind: Engine) -> SessionScopeFactory:
    """
    Provide a transactional scope around a series of operations.
    This handles session creation, commit, rollback, and closing.
    Database errors leave the scope as PersistenceFailureError with the original as __cause__.
    """
    factory = sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)

    @contextmanager
    def _scope() -> Generator[Session, None, None]:
        session = factory()
        log.debug(f"Session {id(session)} opened.")
        try:
            yield session
            session.commit()
            log.debug(f"Session {id(session)} committed.")
        except Exception as e:
            log.error(f"Session {id(session)} rollback due to exception: {e}")
            session.rollback()
            if isinstance(e, SQLAlchemyError):
                raise PersistenceFailureError(f"Database error: {e}") from e
            raise
        finally:
            session.close()
            log.debug(f"Session {id(session)} closed.")

    return _scope


# --- Database Engine & Default Unit of Work ---

try:
    log.info(f"Initializing database engine for URL: ...{settings.DATABASE_URL[-20:]}")
    engine = build_engine(settings.DATABASE_URL)
    session_scope = make_session_scope(engine)
except Exception as e:
    log.critical(f"Failed to initialize database engine: {e}", exc_info=True)
    # This is a fatal error, the application cannot run.
    raise
