"""Async database bootstrap helpers."""

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from stkpay.common.config import settings


# Single async SQLAlchemy engine per process.
engine = create_async_engine(settings.database_dsn, pool_pre_ping=True)
# `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
SessionLocal = async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


async def init_db(bind=None) -> None:
    """Create tables that do not exist yet (local runs and tests)."""

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
