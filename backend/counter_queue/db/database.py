from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from counter_queue.core.config import settings


def _engine_options(database_url: str) -> dict:
    # SQLite (local runs and tests) does not take the pool sizing options
    if database_url.startswith("sqlite"):
        return {"echo": False}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,    # Recycle connections every 30 minutes
        "pool_pre_ping": True,   # Test connections before using them
        "echo": False,
    }


def create_engine_for(database_url: str):
    return create_async_engine(database_url, **_engine_options(database_url))


def create_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


# DATABASE_URL is already validated in settings
engine = create_engine_for(settings.DATABASE_URL)
AsyncSessionLocal = create_session_factory(engine)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
