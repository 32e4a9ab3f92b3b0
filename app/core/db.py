from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def _async_url(database_url: str) -> tuple[str, bool]:
    """Return (async url, is_postgres).

    asyncpg does not accept psycopg params like sslmode/channel_binding, so the
    scheme is converted and incompatible query params are stripped; SSL is
    enabled via connect_args instead. Other URLs (sqlite+aiosqlite) pass through.
    """
    parsed = urlparse(database_url)
    if parsed.scheme not in ("postgresql", "postgresql+asyncpg", "postgres"):
        return database_url, False
    query = parse_qs(parsed.query, keep_blank_values=True)
    query.pop("sslmode", None)
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    url = urlunparse(("postgresql+asyncpg", parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment))
    return url, True


async_database_url, _is_postgres = _async_url(settings.database_url)

_engine_kwargs: dict[str, Any] = {"echo": settings.env == "development"}
if _is_postgres:
    _engine_kwargs.update(
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        connect_args={"ssl": True},
    )

engine = create_async_engine(async_database_url, **_engine_kwargs)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
