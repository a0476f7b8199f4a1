"""Database engine, session factory and FastAPI dependencies"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from callinsight.config import settings


def _engine_options(url: str) -> dict:
    """Driver specific engine options"""
    if url.startswith("postgresql+asyncpg"):
        return {
            "pool_pre_ping": True,
            "connect_args": {"command_timeout": settings.database_command_timeout},
        }
    return {}


engine = create_async_engine(
    settings.database_url,
    echo=settings.api_debug,
    **_engine_options(settings.database_url),
)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a request-scoped session"""
    async with SessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """Session factory for work that outlives a single request"""
    return SessionLocal


def dialect_name(db: AsyncSession) -> str:
    """Name of the dialect the session is bound to"""
    return db.get_bind().dialect.name
