from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from cookie_consent.config import settings


def _engine_options(database_url: str) -> dict:
    # SQLite pools do not take sizing arguments
    if database_url.startswith("sqlite"):
        return {"echo": settings.debug}
    if settings.environment == "production":
        return {"pool_size": 20, "max_overflow": 50, "pool_timeout": 60, "pool_recycle": 1800}
    return {"echo": settings.debug, "pool_size": 10, "max_overflow": 20, "pool_timeout": 30}


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()
