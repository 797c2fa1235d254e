"""
Async database access for the EliteVault storefront.

SQLite (aiosqlite) is the default; a postgresql:// DATABASE_URL is mapped to
asyncpg by Settings.async_database_url. Tables are created at startup by
init_db(); there are no migrations.
"""
import logging

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_async_engine(
    settings.async_database_url,
    echo=settings.database_echo,
    **_engine_options(settings.async_database_url),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create missing tables. Called once from the app lifespan."""
    import db_models  # noqa: F401  (registers the models on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    safe_url = make_url(settings.async_database_url).render_as_string(hide_password=True)
    logger.info(f"Database ready: {safe_url}")


async def get_db():
    """FastAPI dependency: one AsyncSession per request, rolled back if left open."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
