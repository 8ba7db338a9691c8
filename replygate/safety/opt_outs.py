"""Consent tracking: keyword opt-outs on inbound messages, manual opt-out and opt-in."""

from __future__ import annotations

import logging
import re

from replygate.schemas import OptOut, SafetyPolicy, utcnow
from replygate.store.base import Store

logger = logging.getLogger(__name__)

DEFAULT_OPT_OUT_KEYWORDS = (
    "stop",
    "unsubscribe",
    "opt out",
    "opt-out",
    "optout",
    "إلغاء",
    "توقف",
    "إيقاف",
)


def match_opt_out_keyword(body: str, keywords: list[str] | tuple[str, ...]) -> str | None:
    """Return the keyword the message consists of or starts with, else None.

    "STOP" and "stop please" opt out; "don't stop sending me listings" does not.
    """
    normalized = body.strip().lower()
    if not normalized:
        return None
    for keyword in sorted({k.strip().lower() for k in keywords if k.strip()}, key=len, reverse=True):
        if normalized == keyword or re.match(rf"{re.escape(keyword)}(?!\w)", normalized):
            return keyword
    return None


def record_opt_out(store: Store, tenant_id: str, phone: str, reason: str | None = None) -> OptOut:
    """Mark a number opted out. Re-opting-out clears any previous opt-in."""
    existing = store.get_opt_out(tenant_id, phone)
    now = utcnow()
    if existing is None:
        opt_out = OptOut(tenant_id=tenant_id, phone=phone, reason=reason, opted_out_at=now)
    else:
        opt_out = existing.model_copy(
            update={"reason": reason or existing.reason, "opted_out_at": now, "opted_in_at": None}
        )
    store.save_opt_out(opt_out)
    logger.info("Opt-out recorded for %s (tenant %s): %s", phone, tenant_id, reason or "-")
    return opt_out


def record_opt_in(store: Store, tenant_id: str, phone: str) -> OptOut | None:
    """Re-enable messaging to a number. Returns None if it never opted out."""
    existing = store.get_opt_out(tenant_id, phone)
    if existing is None:
        return None
    if existing.opted_in_at is not None:
        return existing
    opt_in = existing.model_copy(update={"opted_in_at": utcnow()})
    store.save_opt_out(opt_in)
    logger.info("Opt-in recorded for %s (tenant %s)", phone, tenant_id)
    return opt_in


def detect_opt_out(
    store: Store,
    tenant_id: str,
    phone: str,
    body: str,
    policy: SafetyPolicy | None = None,
) -> bool:
    """Check an inbound message for an opt-out keyword and record it if found."""
    keywords = list(DEFAULT_OPT_OUT_KEYWORDS)
    if policy is not None:
        if not policy.respect_opt_out:
            return False
        keywords.extend(policy.opt_out_keywords)
    keyword = match_opt_out_keyword(body, keywords)
    if keyword is None:
        return False
    record_opt_out(store, tenant_id, phone, reason=f"keyword: {keyword}")
    return True
