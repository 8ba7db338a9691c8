"""Keyword intent detection for inbound lead messages.

Best-effort: classifies into a closed set so the safety allow-list and the
auto-send rule have something to compare against. Not a hard dependency for
correctness.
"""

from __future__ import annotations

import re

from pydantic import BaseModel

VIEWING_REQUEST = "viewing_request"
PRICE_INQUIRY = "price_inquiry"
INQUIRY = "inquiry"
AVAILABILITY_CHECK = "availability_check"
FOLLOW_UP = "follow_up"

# (intent, keywords, sentiment, urgency), checked in order; ties go to the earlier row
INTENT_TABLE: tuple[tuple[str, tuple[str, ...], str, str], ...] = (
    (VIEWING_REQUEST, ("viewing", "visit", "tour", "see the property", "come and see"), "positive", "high"),
    (PRICE_INQUIRY, ("price", "cost", "aed", "how much", "rent"), "neutral", "medium"),
    (INQUIRY, ("interested", "looking for", "details", "more information"), "positive", "medium"),
    (AVAILABILITY_CHECK, ("available", "availability", "still on the market"), "neutral", "medium"),
)

_INTENT_RES = [
    (intent, re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")\b", re.IGNORECASE), sentiment, urgency)
    for intent, keywords, sentiment, urgency in INTENT_TABLE
]

FALLBACK_CONFIDENCE = 0.5


class Intent(BaseModel):
    type: str
    confidence: float
    sentiment: str
    urgency: str


def _confidence(hits: int) -> float:
    if hits >= 3:
        return 0.95
    if hits == 2:
        return 0.8
    return 0.65


def detect_intent(message: str) -> Intent:
    """Pick the intent with the most keyword hits; ``follow_up`` when none match."""
    best: tuple[str, int, str, str] | None = None
    for intent, pattern, sentiment, urgency in _INTENT_RES:
        hits = len(pattern.findall(message or ""))
        if hits and (best is None or hits > best[1]):
            best = (intent, hits, sentiment, urgency)
    if best is None:
        return Intent(type=FOLLOW_UP, confidence=FALLBACK_CONFIDENCE, sentiment="neutral", urgency="low")
    intent, hits, sentiment, urgency = best
    return Intent(type=intent, confidence=_confidence(hits), sentiment=sentiment, urgency=urgency)
