import logging
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from grantflow.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}

engine = create_async_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    echo=False,
    future=True,
    pool_size=10,
    max_overflow=20,
    pool_recycle=3600,   # Recycle connections after 1 hour
    pool_reset_on_return='commit',
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def is_retryable_conflict(exc: BaseException) -> bool:
    """True for storage conflicts that a fresh transaction may resolve."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in RETRYABLE_SQLSTATES:
            return True
        if "database is locked" in str(orig).lower():
            return True
    return False


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int | None = None,
) -> T:
    """
    Run ``fn`` inside a single transaction on a fresh session.

    Any exception rolls the whole transaction back. Storage conflicts are
    retried with a new session; everything else propagates unchanged.
    """
    attempts = attempts or settings.TRANSACTION_RETRY_ATTEMPTS
    for attempt in range(1, attempts + 1):
        async with session_factory() as session:
            try:
                async with session.begin():
                    if session.bind is not None and session.bind.dialect.name == "postgresql":
                        await session.connection(
                            execution_options={"isolation_level": settings.TRANSACTION_ISOLATION_LEVEL}
                        )
                    return await fn(session)
            except Exception as exc:
                if not is_retryable_conflict(exc) or attempt == attempts:
                    raise
                logger.warning(
                    "Transaction conflict (attempt %s/%s), retrying: %s", attempt, attempts, exc
                )
    raise RuntimeError("unreachable")
