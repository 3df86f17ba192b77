from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..models import Base

SessionFactory = async_sessionmaker[AsyncSession]


def to_async_url(database_url: str) -> str:
    """For SQLite, we need to use the aiosqlite driver."""
    return database_url.replace("sqlite:///", "sqlite+aiosqlite:///")


def create_engine_and_sessions(
    database_url: str, echo: bool = False
) -> tuple[AsyncEngine, SessionFactory]:
    """Create the async engine and its session factory."""
    engine = create_async_engine(to_async_url(database_url), echo=echo)
    sessions = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    return engine, sessions


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables asynchronously."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
