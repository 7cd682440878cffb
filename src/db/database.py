from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from src.config.settings import settings


class Base(DeclarativeBase):
    pass


_connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # Concurrent writers queue on the file lock instead of failing at once
    _connect_args["timeout"] = settings.DB_BUSY_TIMEOUT_SECONDS

engine = create_async_engine(
    settings.DATABASE_URL, echo=settings.SQL_ECHO, connect_args=_connect_args
)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    # Import for side effect: registers every table on Base.metadata
    import src.models.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
