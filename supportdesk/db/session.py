from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from supportdesk.core.config import settings

_ASYNC_SCHEME = "postgresql+asyncpg://"


def async_database_url(raw: str) -> str:
    """Coerce plain postgres URLs (as handed out by hosting providers) to asyncpg."""
    url = str(raw or "").strip()
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return _ASYNC_SCHEME + url[len(prefix) :]
    return url


def build_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(
        async_database_url(url or settings.database_url),
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        echo=settings.database_echo,
    )


engine = build_engine()
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
