"""Database configuration and session management."""
import os
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from summary_chat.config import DATABASE_URL
from summary_chat.db.models import Base


def create_engine(url: Optional[str] = None, **kwargs) -> AsyncEngine:
    """Create the async engine, making sure a local SQLite directory exists."""
    url = url or DATABASE_URL

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        directory = os.path.dirname(parsed.database)
        if directory:
            os.makedirs(directory, exist_ok=True)

    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create tables if they don't exist. Migrations are handled elsewhere."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
