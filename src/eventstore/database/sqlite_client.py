from contextlib import contextmanager
from typing import Callable, Generator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .schema import create_all

T = TypeVar("T")


def get_engine(sqlite_path: str):
    engine_url = f"sqlite:///{sqlite_path}"
    engine = create_engine(engine_url, future=True)
    create_all(engine_url)
    return engine


def get_session_factory(sqlite_path: str) -> sessionmaker:
    """Build a session factory bound to one engine, for long-lived consumers."""
    return sessionmaker(bind=get_engine(sqlite_path), autoflush=False, autocommit=False)


def get_session(sqlite_path: str) -> Session:
    """Get a SQLAlchemy session (caller must close it)."""
    return get_session_factory(sqlite_path)()


@contextmanager
def session_context(sqlite_path: str) -> Generator[Session, None, None]:
    """
    Context manager for SQLAlchemy sessions.
    
    Ensures rollback on error and session cleanup. Callers commit explicitly.
    
    Usage:
        with session_context(sqlite_path) as session:
            # use session
            session.commit()
    """
    session = get_session(sqlite_path)
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_in_transaction(session_factory: Callable[[], Session], work: Callable[[Session], T]) -> T:
    """
    Run ``work`` inside a single transaction.

    Commits when ``work`` returns, rolls back and re-raises on any error.
    """
    session = session_factory()
    try:
        result = work(session)
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
