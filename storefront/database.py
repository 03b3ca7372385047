import logging
import time
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storefront import config
from storefront.errors import DatabaseError, PoolTimeoutError, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ======================================================
# DATABASE CONNECTION
# ======================================================

def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Local development and tests; the dialect picks its own pool.
        return {"connect_args": {"check_same_thread": False, "timeout": 5}}

    connect_args = {"connect_timeout": 10}
    if config.DB_SSLMODE:
        connect_args["sslmode"] = config.DB_SSLMODE

    return {
        "pool_pre_ping": True,                   # drops stale connections
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,  # 0 keeps the pool strictly bounded
        "pool_timeout": config.DB_POOL_TIMEOUT,  # seconds a caller queues for a connection
        "pool_recycle": config.DB_POOL_RECYCLE,
        "connect_args": connect_args,
    }


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE rules unless asked per connection
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)

Base = declarative_base()


# ======================================================
# DEPENDENCY
# ======================================================

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ======================================================
# QUERY / TRANSACTION INTERFACE
# ======================================================

def translate_error(exc: sa_exc.SQLAlchemyError) -> DatabaseError:
    if isinstance(exc, sa_exc.TimeoutError):
        return PoolTimeoutError("Timed out waiting for a database connection")
    return DatabaseError("Database operation failed")


def query(
    sql: str,
    params: Optional[Mapping[str, Any]] = None,
    bind: Optional[Engine] = None,
) -> list[dict]:
    """
    Execute one parameterised statement and return its rows as dicts.

    Values must travel as bound parameters (``:name`` placeholders); the
    statement text itself is never interpolated.
    """
    if params is not None and not isinstance(params, Mapping):
        raise TypeError("query parameters must be a mapping of bind names to values")

    start = time.perf_counter()
    try:
        with (bind or engine).begin() as conn:
            result = conn.execute(text(sql), dict(params or {}))
            rows = [dict(row._mapping) for row in result] if result.returns_rows else []
    except sa_exc.SQLAlchemyError as exc:
        logger.exception("Query failed: %s", sql.strip()[:80])
        raise translate_error(exc) from exc

    logger.debug(
        "Query executed in %.1fms: %s",
        (time.perf_counter() - start) * 1000,
        sql.strip()[:50],
    )
    return rows


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success; roll back and re-raise on any exception."""
    try:
        yield db
        db.commit()
    except StoreError:
        db.rollback()
        raise
    except sa_exc.SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Transaction rolled back")
        raise translate_error(exc) from exc
    except Exception:
        db.rollback()
        raise


def with_transaction(fn: Callable[[Session], T], db: Optional[Session] = None) -> T:
    """
    Run ``fn(session)`` inside a single transaction.

    With ``db`` the caller's session is used; otherwise a dedicated session
    (and pooled connection) is checked out for the duration of the call.
    """
    if db is not None:
        with transaction(db):
            return fn(db)

    session = SessionLocal()
    try:
        with transaction(session):
            return fn(session)
    finally:
        session.close()


# ======================================================
# DATABASE BOOTSTRAP
# ======================================================

def init_database(bind: Optional[Engine] = None) -> None:
    """
    Idempotent schema creation, run on every startup.

    Tables, indexes (including the partial unique index on default
    addresses) and check constraints all come from the ORM metadata.
    """
    import storefront.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema verified", extra={"tables": len(Base.metadata.tables)})


def check_connection() -> bool:
    try:
        query("SELECT 1 AS ok")
    except DatabaseError:
        return False
    return True
