from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

if TYPE_CHECKING:
    from originwatch.config import Settings


class Base(DeclarativeBase):
    pass


def create_engine(settings: "Settings") -> AsyncEngine:
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
    )


def create_session_factory(engine: AsyncEngine) -> Callable[[], AsyncSession]:
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables."""
    import originwatch.models  # noqa: F401  registers the mappers on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
