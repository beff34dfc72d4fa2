"""Storage settings and client factories (async SQLAlchemy engines, pymongo client)."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo import AsyncMongoClient
from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="CRUDFORGE_", extra="ignore")

    database_url: str = "postgresql+asyncpg://localhost/crudforge"
    # per-engine overrides; fall back to database_url
    sequence_database_url: str | None = None
    identity_database_url: str | None = None

    mongo_url: str = "mongodb://localhost:27017"
    mongo_database: str = "crudforge"

    pool_size: int = Field(default=10, gt=0)
    pool_timeout: float = Field(default=30.0, gt=0)
    query_timeout: float | None = 30.0  # seconds; None disables

    batch_chunk_size: int = Field(default=1000, gt=0)
    insert_flush_size: int = Field(default=1000, gt=0)
    default_page_size: int = Field(default=20, gt=0)
    max_page_size: int = Field(default=1000, gt=0)

    @property
    def sequence_url(self) -> str:
        return self.sequence_database_url or self.database_url

    @property
    def identity_url(self) -> str:
        return self.identity_database_url or self.database_url


def create_engine(url: str, settings: Settings) -> AsyncEngine:
    """Async engine with pooling for server databases; SQLite uses its default pool."""
    kwargs: dict[str, object] = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.pool_size
        kwargs["pool_timeout"] = settings.pool_timeout
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def create_mongo_client(settings: Settings) -> AsyncMongoClient:
    timeout_ms = int(settings.query_timeout * 1000) if settings.query_timeout else None
    return AsyncMongoClient(
        settings.mongo_url,
        tz_aware=True,
        maxPoolSize=settings.pool_size,
        waitQueueTimeoutMS=int(settings.pool_timeout * 1000),
        timeoutMS=timeout_ms,
    )


def create_metadata() -> MetaData:
    """Fresh MetaData with a naming convention so unique constraints get stable names."""
    return MetaData(
        naming_convention={
            "pk": "pk_%(table_name)s",
            "uq": "uq_%(table_name)s_%(column_0_N_name)s",
        }
    )
