import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from config import get_settings
from errors import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    from sqlalchemy import create_engine

    eng = create_engine(settings.database_url, connect_args=connect_args)
    if settings.database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Run the enclosed writes as one all-or-nothing unit of work.

    Everything staged inside the block is committed together on exit. Any
    error rolls the whole unit back; store errors are translated so that
    callers only ever see the ledger error taxonomy.
    """
    try:
        yield session
        session.commit()
    except (StaleDataError, IntegrityError) as exc:
        session.rollback()
        logger.warning(f"atomic_conflict: {exc.__class__.__name__}: {exc}")
        raise ConflictError(
            "The record was modified concurrently, please retry"
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"atomic_failed: {exc.__class__.__name__}: {exc}")
        raise StoreUnavailableError(
            "The store is unavailable, please try again"
        ) from exc
    except Exception:
        session.rollback()
        raise


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        with atomic(session):
            yield session
    finally:
        session.close()
