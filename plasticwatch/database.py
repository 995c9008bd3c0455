from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool

from plasticwatch.config import settings

_ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def normalize_database_url(url: str) -> str:
    """Point plain provider URLs at the async driver SQLAlchemy needs."""
    for prefix, replacement in _ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"echo": False, "pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}
    # In-memory databases live and die with their single connection; file
    # connections must not outlive the event loop that opened them
    poolclass = StaticPool if ":memory:" in url else NullPool
    return {"echo": False, "poolclass": poolclass}


def enable_sqlite_foreign_keys(sync_engine) -> None:
    @event.listens_for(sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


_database_url = normalize_database_url(settings.database_url)

engine = create_async_engine(_database_url, **engine_options(_database_url))
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

if engine.dialect.name == "sqlite":
    enable_sqlite_foreign_keys(engine.sync_engine)


class Base(DeclarativeBase):
    pass


async def create_tables():
    async with engine.begin() as conn:
        from plasticwatch.models import contribution, classification, review_history  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with async_session() as session:
        yield session
