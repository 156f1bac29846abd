from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from app.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def init_db(bind=None):
    """Create any missing tables. Never ALTERs existing ones."""
    from app import models  # noqa: F401 – registers tables with Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
