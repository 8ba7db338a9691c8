"""Prompt registry: list, create and activate prompt versions."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from backend.deps import get_services
from replygate.schemas import Prompt, PromptCreate
from replygate.services import Services

router = APIRouter()


@router.get("/prompts", response_model=list[Prompt], summary="List prompt versions")
def list_prompts(
    tenant_id: Optional[str] = Query(None, description="Tenant (omit for global prompts)"),
    name: Optional[str] = Query(None),
    svc: Services = Depends(get_services),
):
    return svc.resolver.list_prompts(tenant_id, name)


@router.post("/prompts", response_model=Prompt, status_code=status.HTTP_201_CREATED, summary="Create an inactive prompt version")
def create_prompt(req: PromptCreate, svc: Services = Depends(get_services)):
    return svc.resolver.create_prompt(req)


@router.post("/prompts/{prompt_id}/activate", response_model=Prompt, summary="Activate a prompt version")
def activate_prompt(prompt_id: str, svc: Services = Depends(get_services)):
    return svc.resolver.activate_prompt(prompt_id)
