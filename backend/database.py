import logging
import os
from pathlib import Path
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from errors import ConcurrencyConflict, RegistrationError

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)


def _load_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required and must be set in environment")
    return url


DATABASE_URL = _load_database_url()
DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 5))
DB_MAX_OVERFLOW = int(os.environ.get("DB_MAX_OVERFLOW", 5))
DB_LOCK_TIMEOUT_MS = int(os.environ.get("DB_LOCK_TIMEOUT_MS", 5000))
TRANSACTION_MAX_ATTEMPTS = int(os.environ.get("TRANSACTION_MAX_ATTEMPTS", 3))

# serialization_failure, deadlock_detected, lock_not_available, unique_violation
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03", "23505"}

# execution option read by the sqlite "begin" listener
SQLITE_BEGIN_IMMEDIATE = "sqlite_begin_immediate"

T = TypeVar("T")


def _sqlite_begin(conn) -> None:
    # pysqlite only emits BEGIN before the first write and ignores FOR UPDATE,
    # so serializable units take the database write lock before their first read
    if conn.get_execution_options().get(SQLITE_BEGIN_IMMEDIATE):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _make_engine(url: str):
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": DB_LOCK_TIMEOUT_MS / 1000},
        )
        event.listen(sqlite_engine, "begin", _sqlite_begin)
        return sqlite_engine
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
    )


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


def is_transaction_conflict(exc: Exception) -> bool:
    if isinstance(exc, IntegrityError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in CONFLICT_SQLSTATES:
        return True
    # sqlite reports writer contention this way
    return "database is locked" in str(orig or "").lower()


def _begin_serializable(db: Session) -> None:
    dialect = db.get_bind().dialect.name
    options = {"isolation_level": "SERIALIZABLE"}
    if dialect == "sqlite":
        options[SQLITE_BEGIN_IMMEDIATE] = True
    db.connection(execution_options=options)
    if dialect == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = {int(DB_LOCK_TIMEOUT_MS)}"))


def run_serializable(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    attempts: Optional[int] = None,
) -> T:
    """Run ``work`` inside one SERIALIZABLE transaction and commit it.

    Store-detected conflicts (serialization failures, deadlocks, lock
    timeouts, unique violations) roll the transaction back and rerun the
    whole unit of work, up to ``attempts`` times. When attempts run out a
    retryable ``ConcurrencyConflict`` is raised. Domain errors raised by
    ``work`` roll back and propagate untouched.

    On SQLite the transaction opens with ``BEGIN IMMEDIATE``, so units of
    work run one at a time against the database file.
    """
    max_attempts = max(1, attempts or TRANSACTION_MAX_ATTEMPTS)
    for attempt in range(1, max_attempts + 1):
        db = session_factory()
        try:
            _begin_serializable(db)
            result = work(db)
            db.commit()
            return result
        except RegistrationError:
            db.rollback()
            raise
        except DBAPIError as exc:
            db.rollback()
            if not is_transaction_conflict(exc):
                raise
            logger.warning(
                "Transaction conflict on attempt %s/%s: %s",
                attempt,
                max_attempts,
                exc.__class__.__name__,
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    raise ConcurrencyConflict("Registration conflict. Please try again.")
