"""Inbound message intake: records messages and enqueues AI reply drafting.

POST /api/inbound-messages
  → Records the inbound message on its conversation.
  → Opt-out keywords ("STOP", ...) are recorded and never trigger a draft.
  → Otherwise, when the tenant has AI enabled, enqueues one ``ai_generation``
    job keyed by ``ai_generation:{conversation_id}:{message_id}`` so a
    redelivered webhook cannot produce a second draft.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from backend.deps import get_services
from replygate.safety import detect_opt_out
from replygate.schemas import Direction, JobOptions, JobType, Message
from replygate.services import Services

logger = logging.getLogger(__name__)
router = APIRouter()


class InboundMessageRequest(BaseModel):
    conversation_id: str
    body: str = Field(min_length=1)
    message_id: Optional[str] = None
    sender_id: Optional[str] = None
    provider_message_id: Optional[str] = None
    priority: int = Field(default=0, ge=-500, le=500)


class InboundMessageResponse(BaseModel):
    message_id: str
    opted_out: bool = False
    job_id: Optional[str] = None
    duplicate: bool = False


@router.post(
    "/inbound-messages",
    response_model=InboundMessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record an inbound message and enqueue an AI draft",
)
def receive_inbound_message(req: InboundMessageRequest, svc: Services = Depends(get_services)):
    conversation = svc.store.get_conversation(req.conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {req.conversation_id}")

    message = Message(
        conversation_id=conversation.id,
        direction=Direction.INBOUND,
        body=req.body,
        sender_id=req.sender_id,
        provider_message_id=req.provider_message_id,
    )
    if req.message_id:
        message.id = req.message_id
    svc.store.insert_message(message)
    svc.store.save_conversation(
        conversation.model_copy(
            update={"last_message_at": message.sent_at, "last_direction": Direction.INBOUND}
        )
    )

    tenant = svc.store.get_tenant_settings(conversation.tenant_id)
    policy = tenant.policy() if tenant else None
    if detect_opt_out(svc.store, conversation.tenant_id, conversation.whatsapp_number, req.body, policy):
        return InboundMessageResponse(message_id=message.id, opted_out=True)

    if tenant is None or not tenant.ai_enabled:
        return InboundMessageResponse(message_id=message.id)

    key = f"ai_generation:{conversation.id}:{message.id}"
    job = svc.queue.add_job(
        JobType.AI_GENERATION,
        {
            "conversation_id": conversation.id,
            "message_id": message.id,
            "tenant_id": conversation.tenant_id,
        },
        JobOptions(priority=req.priority, idempotency_key=key),
    )
    if job is None:
        return InboundMessageResponse(message_id=message.id, duplicate=True)
    logger.info("Inbound %s queued job %s", message.id, job.id)
    return InboundMessageResponse(message_id=message.id, job_id=job.id)
