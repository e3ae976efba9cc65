"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fieldwise.api.routes import fill, health, profiles
from fieldwise.core.config import AppSettings
from fieldwise.core.exceptions import (
    DocumentNotFoundError,
    InvalidFieldDescriptorError,
    ProfileNotFoundError,
    StorageError,
)
from fieldwise.services.container import Services, build_services


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``services`` overrides the container the lifespan would otherwise build
    from ``AppSettings``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Initialize and tear down application resources."""
        container = services or build_services(AppSettings())
        app.state.settings = container.settings
        app.state.services = container
        yield

    app = FastAPI(
        title="Fieldwise Form Resolution Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health.router)
    app.include_router(fill.router)
    app.include_router(profiles.router)
    app.include_router(profiles.edits_router)

    app.add_exception_handler(ProfileNotFoundError, _error_handler(404))
    app.add_exception_handler(DocumentNotFoundError, _error_handler(404))
    app.add_exception_handler(InvalidFieldDescriptorError, _error_handler(400))
    app.add_exception_handler(StorageError, _error_handler(503))
    return app
