"""Approval queue: list drafts awaiting review and approve (optionally edited) ones."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from backend.deps import get_services
from replygate.schemas import Generation, GenerationStatus, Violation
from replygate.services import Services

router = APIRouter()


class ApproveRequest(BaseModel):
    approver_id: str = Field(min_length=1)
    edited_message: Optional[str] = None


class GenerationDetail(BaseModel):
    generation: Generation
    violations: list[Violation]


@router.get("/generations/pending", response_model=list[Generation], summary="Drafts awaiting approval")
def pending_generations(
    tenant_id: str = Query(..., description="Tenant whose drafts to list"),
    status: GenerationStatus = Query(GenerationStatus.PENDING_APPROVAL),
    limit: int = Query(50, ge=1, le=500),
    svc: Services = Depends(get_services),
):
    return svc.orchestrator.list_pending_approvals(tenant_id, status=status, limit=limit)


@router.get("/generations/{generation_id}", response_model=GenerationDetail, summary="Draft with its violations")
def get_generation(generation_id: str, svc: Services = Depends(get_services)):
    generation = svc.store.get_generation(generation_id)
    if generation is None:
        raise HTTPException(status_code=404, detail=f"Generation not found: {generation_id}")
    return GenerationDetail(generation=generation, violations=svc.store.list_violations(generation_id))


@router.post("/generations/{generation_id}/approve", response_model=Generation, summary="Approve and send a draft")
def approve_generation(generation_id: str, req: ApproveRequest, svc: Services = Depends(get_services)):
    return svc.orchestrator.approve_and_send(generation_id, req.approver_id, req.edited_message)
