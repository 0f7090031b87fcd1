from collections.abc import AsyncGenerator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.core.errors import StoreUnavailableError
from app.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    """Pool options per backend; SQLite (local dev) does not take pool sizing."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 280,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except (OperationalError, InterfaceError) as e:
            logger.bind(error=str(e)).error("database_unavailable")
            await session.rollback()
            raise StoreUnavailableError(str(e.orig) if e.orig else str(e)) from e
        except Exception as e:
            logger.bind(error=str(e)).debug("database_transaction_rollback")
            await session.rollback()
            raise
