"""Async SQLAlchemy engine and session management."""

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fitgame.db.base import Base


class Database:
    """Engine plus session factory, constructed once per process and passed explicitly."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        backend = make_url(url).get_backend_name()
        if backend == "postgresql":
            self.engine: AsyncEngine = create_async_engine(
                url,
                pool_size=20,
                max_overflow=10,
                pool_pre_ping=True,
                echo=echo,
                connect_args={"statement_cache_size": 0},
            )
        else:
            self.engine = create_async_engine(url, echo=echo)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def create_all(self) -> None:
        """Create every table from the ORM metadata (tests and local tooling only)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Dispose of the database engine."""
        await self.engine.dispose()

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an async database session."""
        async with self.session_factory() as session:
            yield session
