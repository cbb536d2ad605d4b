"""
Database Connection and Session Management
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_detached_session() -> AsyncIterator[AsyncSession]:
    """
    סשן עצמאי לעבודה שרצה אחרי שהתשובה כבר נשלחה (BackgroundTasks).

    הסשן של הבקשה נסגר ע"י get_db לפני שה-background task רץ,
    לכן כתיבה מאוחרת חייבת סשן משלה.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
