from typing import Callable, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool
from loguru import logger

from touchin.core.config import DATABASE_URL, LEDGER_MAX_RETRIES
from touchin.core.errors import LedgerConflictError

T = TypeVar("T")

# --- Base (single source of truth) ---
Base = declarative_base()


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    # in-memory sqlite must share one connection or every session sees an empty db
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


# --- Engine ---
engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
    **_engine_kwargs(DATABASE_URL),
)

# --- Session factory ---
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)

# --- SQL query logging ---
@event.listens_for(engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    logger.debug(f"SQL: {statement} | params={parameters}")

# --- FastAPI dependency ---
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# --- Transactions with retry on write conflict ---
CONFLICT_ERRORS = (IntegrityError, OperationalError, StaleDataError)


def run_transaction(
    fn: Callable[[Session], T],
    session_factory: Callable[[], Session] = SessionLocal,
    max_retries: int = LEDGER_MAX_RETRIES,
) -> T:
    """Run ``fn`` in its own transaction, retrying on write conflicts.

    Every attempt opens a fresh session, so ``fn`` always reads current state
    and must compute its writes from what it read. Raises LedgerConflictError
    once ``max_retries`` attempts have failed.
    """
    attempts = max(1, max_retries)
    last_exc: Exception | None = None

    for attempt in range(1, attempts + 1):
        session = session_factory()
        try:
            with session.begin():
                result = fn(session)
            return result
        except CONFLICT_ERRORS as exc:
            last_exc = exc
            logger.warning(f"Transaction conflict (attempt {attempt}/{attempts}): {exc.__class__.__name__}")
        finally:
            session.close()

    logger.error(f"Transaction failed after {attempts} attempts")
    raise LedgerConflictError(f"transaction failed after {attempts} attempts") from last_exc
