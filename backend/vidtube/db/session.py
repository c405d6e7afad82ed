import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vidtube.config import settings
from vidtube.core.errors import FatalError
from vidtube.db.base import Base

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    import vidtube.models  # noqa: F401 - register all tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def committing(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Commit writes made inside the block; storage failures become FatalError.

    Callers return results only after this block exits, so nothing reaches the
    client unless the write is durable.
    """
    try:
        yield
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Database write failed during %s", operation)
        raise FatalError(f"Could not complete {operation}") from e
