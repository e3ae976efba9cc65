"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from fieldwise.api.dependencies import get_services
from fieldwise.core.exceptions import StorageError
from fieldwise.services.container import Services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def ready(services: Services = Depends(get_services)):
    try:
        services.profile_store.list_all()
        services.cache_backend.keys(services.settings.cache.key_prefix)
    except StorageError as exc:
        return JSONResponse(status_code=503, content={"status": "unavailable", "detail": str(exc)})
    return {"status": "ready"}
