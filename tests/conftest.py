import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

import originwatch.models  # noqa: F401
from originwatch.db.database import Base
from originwatch.exceptions import NotificationError


class RecordingNotifier:
    """In-memory notifier that records every delivered message."""

    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    async def notify(self, topic: str, subject: str, message: str) -> None:
        if self.fail:
            raise NotificationError("channel unavailable", topic=topic)
        self.sent.append((topic, subject, message))


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine so every session sees the same database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'originwatch.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def count_rows(session_factory):
    """Return an async helper counting the rows of a model."""

    async def _count(model) -> int:
        async with session_factory() as session:
            return await session.scalar(select(func.count()).select_from(model))

    return _count
