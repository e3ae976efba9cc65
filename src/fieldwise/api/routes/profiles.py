"""Profile, ingestion and learning endpoints."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fieldwise.api.dependencies import get_services
from fieldwise.models.form import FieldMapping, FormSignature
from fieldwise.models.profile import ContextDocument, ContextField, LearnedExample, Profile, URLBinding
from fieldwise.services.container import Services

router = APIRouter(prefix="/profiles", tags=["profiles"])


class CreateProfileRequest(BaseModel):
    name: str
    fields: list[ContextField] = Field(default_factory=list)
    documents: list[ContextDocument] = Field(default_factory=list)
    url_bindings: list[URLBinding] = Field(default_factory=list)


class KnowledgeBaseRequest(BaseModel):
    text: str
    chunk_size: Optional[int] = None


class DocumentIngestRequest(BaseModel):
    document_id: str
    chunk_size: Optional[int] = None


class EditRequest(BaseModel):
    profile_id: str
    form: FormSignature
    original: FieldMapping
    corrected_value: str


@router.post("", status_code=201)
async def create_profile(
    body: CreateProfileRequest, services: Services = Depends(get_services)
) -> Profile:
    profile = services.profiles.create(
        body.name,
        static_context={"fields": body.fields, "documents": body.documents},
        url_bindings=body.url_bindings,
    )
    return profile


@router.get("/{profile_id}")
async def get_profile(profile_id: str, services: Services = Depends(get_services)) -> Profile:
    return services.profiles.require(profile_id)


@router.delete("/{profile_id}", status_code=204)
async def delete_profile(profile_id: str, services: Services = Depends(get_services)) -> None:
    services.profiles.require(profile_id)
    services.profiles.delete(profile_id)
    services.cache.invalidate_profile(profile_id)


@router.post("/{profile_id}/knowledge-base")
async def ingest_knowledge_base(
    profile_id: str, body: KnowledgeBaseRequest, services: Services = Depends(get_services)
) -> dict[str, Any]:
    chunks = await services.coordinator.ingest_knowledge_base(profile_id, body.text, body.chunk_size)
    return {"profile_id": profile_id, "chunks": chunks}


@router.post("/{profile_id}/documents")
async def ingest_document(
    profile_id: str, body: DocumentIngestRequest, services: Services = Depends(get_services)
) -> dict[str, Any]:
    chunks = await services.coordinator.ingest_document(profile_id, body.document_id, body.chunk_size)
    return {"profile_id": profile_id, "document_id": body.document_id, "chunks": chunks}


@router.post("/{profile_id}/edits/commit")
async def commit_edits(
    profile_id: str,
    context_id: Optional[str] = None,
    services: Services = Depends(get_services),
) -> Optional[LearnedExample]:
    return await services.coordinator.commit_edits(profile_id, context_id)


@router.delete("/{profile_id}/edits")
async def cancel_edits(profile_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"profile_id": profile_id, "discarded": services.coordinator.cancel_edits(profile_id)}


edits_router = APIRouter(tags=["learning"])


@edits_router.post("/edits")
async def report_edit(body: EditRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    recorded = services.coordinator.report_edit(
        body.profile_id, body.form, body.original, body.corrected_value,
    )
    return {
        "recorded": recorded,
        "pending": services.learning.pending_edit_count(body.profile_id),
    }
