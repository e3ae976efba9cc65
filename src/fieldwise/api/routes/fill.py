"""Fill resolution and session endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fieldwise.api.dependencies import get_services
from fieldwise.matching.classifier import classify_form
from fieldwise.models.form import FormSignature
from fieldwise.orchestration.coordinator import FillOutcome
from fieldwise.services.container import Services

router = APIRouter(tags=["fill"])


class FillRequest(BaseModel):
    context_id: str
    profile_id: str
    url: str
    fields: list[dict[str, Any]] = Field(default_factory=list)
    form_index: int = 0
    use_cache: bool = True
    options: dict[str, Any] = Field(default_factory=dict)


class FillResult(BaseModel):
    form: FormSignature
    outcome: FillOutcome


@router.post("/fill")
async def fill(body: FillRequest, services: Services = Depends(get_services)) -> FillResult:
    """Classify the detected fields and run a fill session for them."""
    form = classify_form(body.url, body.fields, body.form_index)
    outcome = await services.coordinator.trigger_fill(
        body.context_id, body.profile_id, form, body.use_cache, body.options,
    )
    return FillResult(form=form, outcome=outcome)


@router.post("/sessions/{context_id}/confirm")
async def confirm(context_id: str, services: Services = Depends(get_services)) -> FillOutcome:
    return await services.coordinator.confirm_fill(context_id)


@router.post("/sessions/{context_id}/cancel")
async def cancel(context_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    cancelled = services.coordinator.cancel(context_id)
    return {"context_id": context_id, "cancelled": cancelled}


@router.get("/status")
async def status(services: Services = Depends(get_services)) -> dict[str, Any]:
    return services.coordinator.status()
