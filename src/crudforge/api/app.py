"""FastAPI application factory: one generated router per registered entity."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from crudforge.infrastructure.registry import EntityRegistry

from .errors import install_exception_handlers
from .routes import build_router


def create_app(registry: EntityRegistry, *, title: str = "crudforge") -> FastAPI:
    """Build the app; storage is initialised on startup and released on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await registry.initialize()
        try:
            yield
        finally:
            await registry.close()

    app = FastAPI(title=title, lifespan=lifespan)
    app.state.registry = registry
    install_exception_handlers(app)
    for entry in registry:
        app.include_router(build_router(entry, registry.settings))
    return app
