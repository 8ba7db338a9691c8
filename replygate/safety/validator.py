"""Safety validator: gates AI drafts before they can be sent.

Runs an ordered table of independent rules over a candidate reply. Every
rule runs (no early exit) so that simultaneous violations are all reported:

1. **Length** over the tenant maximum (low, +5).
2. **Price / currency amounts** (critical, +50 per distinct mention).
3. **Legal advice** phrasing (high, +30).
4. **Financial advice** phrasing (high, +30).
5. **Personal data**: e-mail addresses and phone numbers (medium, +20 each).
6. **High-pressure sales** phrasing (medium, +15).
7. **Competitor names** (low, +10).
8. **Absolute availability claims** (medium, +20).
9. **Opt-out keyword echo** (low, +5).
10. **Intent outside the tenant allow-list** (medium, +25).

A reply is blocked when any violation is critical or the summed risk
exceeds the tenant's ``max_risk_score``. Any internal error fails closed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from replygate.errors import SafetyValidationError
from replygate.schemas import (
    SafetyCheckResult,
    SafetyPolicy,
    Severity,
    ViolationDetail,
    ViolationType,
)
from replygate.store.base import Store

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns and keyword tables
# ---------------------------------------------------------------------------

# Digits with optional thousands separators, never ending on a separator
_AMOUNT = r"\d(?:[\d,]*\d)?(?:\.\d+)?"
_CURRENCY_CODES = r"aed|usd|eur|gbp"
_CURRENCY_WORDS = r"dirhams?|dollars?|euros?|pounds?"

_PRICE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"\d+(?:\.\d+)?\s*(?:million|m|k)\s*(?:{_CURRENCY_CODES}|{_CURRENCY_WORDS})\b", re.IGNORECASE
    ),
    re.compile(rf"\b(?:{_CURRENCY_CODES})\s*{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"{_AMOUNT}\s*(?:{_CURRENCY_CODES}|{_CURRENCY_WORDS})\b", re.IGNORECASE),
    re.compile(rf"\bprice\b.*?{_AMOUNT}", re.IGNORECASE),
    re.compile(rf"[$€£]\s*{_AMOUNT}"),
)

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
# International format, or one unbroken run of 10+ digits; dates and times stay out
_PHONE_RE = re.compile(r"(?<![\w+])\+\d[\d\s-]{8,}\d|\b\d{10,}\b")

LEGAL_KEYWORDS = (
    "legally", "legal advice", "contract guarantees", "sue", "sued", "suing",
    "court", "courts", "jurisdiction", "liability insurance",
)
# Matched with any word ending: lawyers, attorneys, litigation
LEGAL_STEMS = ("lawyer", "attorney", "lawsuit", "litigat")

FINANCIAL_KEYWORDS = (
    "investment advice", "guaranteed returns", "tax benefits",
    "mortgage approval", "loan guarantee", "financial planning",
)
# investment, investing, investor
FINANCIAL_STEMS = ("invest",)

AGGRESSIVE_KEYWORDS = (
    "must buy", "you have to", "limited time only", "act now or lose",
    "don't miss out", "final offer", "urgent decision",
)

COMPETITORS = (
    "emaar", "damac", "nakheel", "dubai properties", "meraas",
    "aldar", "sobha", "azizi",
)

AVAILABILITY_CLAIMS = (
    "definitely available", "guaranteed available", "100% available",
    "still available for sure",
)


def _phrase_re(
    phrases: tuple[str, ...] | list[str],
    stems: tuple[str, ...] = (),
) -> re.Pattern[str] | None:
    """Case-insensitive whole-word match for any of *phrases*.

    *stems* must start on a word boundary but may carry any word ending.
    """
    cleaned = [p.strip() for p in phrases if p and p.strip()]
    if not cleaned and not stems:
        return None
    alternatives = []
    if cleaned:
        words = "|".join(re.escape(p) for p in sorted(cleaned, key=len, reverse=True))
        alternatives.append(rf"(?:{words})(?!\w)")
    if stems:
        prefixes = "|".join(re.escape(s) for s in sorted(stems, key=len, reverse=True))
        alternatives.append(rf"(?:{prefixes})\w*")
    return re.compile(rf"(?<!\w)(?:{'|'.join(alternatives)})", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

RuleCheck = Callable[[str, "str | None", SafetyPolicy], list[ViolationDetail]]


@dataclass(frozen=True)
class SafetyRule:
    """One row of the rule table: a check plus the risk added per violation."""

    name: str
    weight: int
    check: RuleCheck = field(repr=False)


def _check_length(text: str, intent: str | None, policy: SafetyPolicy) -> list[ViolationDetail]:
    if len(text) <= policy.max_message_length:
        return []
    return [
        ViolationDetail(
            type=ViolationType.OFF_TOPIC,
            severity=Severity.LOW,
            detected_text=text[:100] + "...",
            rule_matched="MAX_LENGTH_EXCEEDED",
            explanation=f"Message exceeds max length of {policy.max_message_length} characters",
        )
    ]


def _check_price(text: str, intent: str | None, policy: SafetyPolicy) -> list[ViolationDetail]:
    spans: list[tuple[int, int]] = []
    found: list[ViolationDetail] = []
    for pattern in _PRICE_PATTERNS:
        for m in pattern.finditer(text):
            # Overlapping matches describe the same mention
            if any(m.start() < end and start < m.end() for start, end in spans):
                continue
            spans.append(m.span())
            found.append(
                ViolationDetail(
                    type=ViolationType.PRICE_MENTION,
                    severity=Severity.CRITICAL,
                    detected_text=m.group().strip(),
                    rule_matched="PRICE_PATTERN",
                    explanation="AI must never mention specific prices or property values",
                )
            )
    return found


def _keyword_rule(
    phrases: tuple[str, ...],
    violation_type: ViolationType,
    severity: Severity,
    rule_matched: str,
    explanation: str,
    stems: tuple[str, ...] = (),
) -> RuleCheck:
    """Build a check that reports the first matching phrase, once."""
    pattern = _phrase_re(phrases, stems)

    def _check(text: str, intent: str | None, policy: SafetyPolicy) -> list[ViolationDetail]:
        m = pattern.search(text) if pattern else None
        if not m:
            return []
        return [
            ViolationDetail(
                type=violation_type,
                severity=severity,
                detected_text=m.group(),
                rule_matched=rule_matched,
                explanation=explanation,
            )
        ]

    return _check


def _check_personal_data(text: str, intent: str | None, policy: SafetyPolicy) -> list[ViolationDetail]:
    found = []
    email = _EMAIL_RE.search(text)
    if email:
        found.append(
            ViolationDetail(
                type=ViolationType.PERSONAL_DATA_LEAK,
                severity=Severity.MEDIUM,
                detected_text=email.group(),
                rule_matched="EMAIL_PATTERN",
                explanation="Message contains email address which may be a data leak",
            )
        )
    phone = _PHONE_RE.search(text)
    if phone and sum(c.isdigit() for c in phone.group()) >= 10:
        found.append(
            ViolationDetail(
                type=ViolationType.PERSONAL_DATA_LEAK,
                severity=Severity.MEDIUM,
                detected_text=phone.group(),
                rule_matched="PHONE_PATTERN",
                explanation="Message contains phone number which may be a data leak",
            )
        )
    return found


def _check_opt_out_echo(text: str, intent: str | None, policy: SafetyPolicy) -> list[ViolationDetail]:
    pattern = _phrase_re(policy.opt_out_keywords)
    m = pattern.search(text) if pattern else None
    if not m:
        return []
    return [
        ViolationDetail(
            type=ViolationType.SPAM_PATTERN,
            severity=Severity.LOW,
            detected_text=m.group(),
            rule_matched="OPT_OUT_ECHO",
            explanation="Message echoes opt-out keyword which is confusing",
        )
    ]


def _check_intent(text: str, intent: str | None, policy: SafetyPolicy) -> list[ViolationDetail]:
    if not intent or intent in policy.allowed_intents:
        return []
    return [
        ViolationDetail(
            type=ViolationType.OFF_TOPIC,
            severity=Severity.MEDIUM,
            detected_text=intent,
            rule_matched="INTENT_NOT_ALLOWED",
            explanation=f'Intent "{intent}" is not in allowed intents list',
        )
    ]


DEFAULT_RULES: tuple[SafetyRule, ...] = (
    SafetyRule("max_length", 5, _check_length),
    SafetyRule("price_mention", 50, _check_price),
    SafetyRule(
        "legal_advice",
        30,
        _keyword_rule(
            LEGAL_KEYWORDS, ViolationType.LEGAL_ADVICE, Severity.HIGH, "LEGAL_KEYWORD",
            "AI cannot provide legal advice or legal interpretations",
            stems=LEGAL_STEMS,
        ),
    ),
    SafetyRule(
        "financial_advice",
        30,
        _keyword_rule(
            FINANCIAL_KEYWORDS, ViolationType.FINANCIAL_ADVICE, Severity.HIGH, "FINANCIAL_KEYWORD",
            "AI cannot provide financial or investment advice",
            stems=FINANCIAL_STEMS,
        ),
    ),
    SafetyRule("personal_data", 20, _check_personal_data),
    SafetyRule(
        "aggressive_language",
        15,
        _keyword_rule(
            AGGRESSIVE_KEYWORDS, ViolationType.AGGRESSIVE_LANGUAGE, Severity.MEDIUM,
            "AGGRESSIVE_KEYWORD", "Message uses high-pressure or aggressive sales language",
        ),
    ),
    SafetyRule(
        "competitor_mention",
        10,
        _keyword_rule(
            COMPETITORS, ViolationType.COMPETITOR_MENTION, Severity.LOW, "COMPETITOR_NAME",
            "Message mentions competitor by name",
        ),
    ),
    SafetyRule(
        "availability_claim",
        20,
        _keyword_rule(
            AVAILABILITY_CLAIMS, ViolationType.AVAILABILITY_CLAIM, Severity.MEDIUM,
            "AVAILABILITY_ABSOLUTE",
            "AI should not make absolute availability claims without verification",
        ),
    ),
    SafetyRule("opt_out_echo", 5, _check_opt_out_echo),
    SafetyRule("intent_allowed", 25, _check_intent),
)


def _fail_closed(reason: str) -> SafetyCheckResult:
    return SafetyCheckResult(
        passed=False,
        risk_score=100,
        violations=[
            ViolationDetail(
                type=ViolationType.OFF_TOPIC,
                severity=Severity.CRITICAL,
                detected_text="Error during validation",
                rule_matched="VALIDATION_ERROR",
                explanation=f"Safety check failed due to error - blocking for safety ({reason})",
            )
        ],
        should_escalate=True,
        should_block=True,
    )


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class SafetyValidator:
    """Validate AI drafts against the rule table and a tenant policy."""

    def __init__(self, store: Store | None = None, rules: tuple[SafetyRule, ...] = DEFAULT_RULES):
        self._store = store
        self._rules = rules

    def validate(self, text: str, intent: str | None, policy: SafetyPolicy) -> SafetyCheckResult:
        try:
            violations: list[ViolationDetail] = []
            risk_score = 0
            for rule in self._rules:
                try:
                    hits = rule.check(text, intent, policy)
                except Exception as e:
                    raise SafetyValidationError(f"rule '{rule.name}' failed: {e}") from e
                violations.extend(hits)
                risk_score += rule.weight * len(hits)

            escalate_re = _phrase_re(policy.escalate_keywords)
            should_escalate = bool(escalate_re and escalate_re.search(text))
            has_critical = any(v.severity == Severity.CRITICAL for v in violations)
            should_block = has_critical or risk_score > policy.max_risk_score
            result = SafetyCheckResult(
                passed=not should_block and not violations,
                risk_score=risk_score,
                violations=violations,
                should_escalate=should_escalate,
                should_block=should_block,
            )
        except Exception as e:
            logger.exception("Safety validation failed; blocking draft")
            return _fail_closed(str(e)[:200])

        if violations:
            logger.info(
                "Safety: %d violation(s), risk=%d, block=%s",
                len(violations),
                risk_score,
                should_block,
            )
        return result

    def is_opted_out(self, tenant_id: str, phone: str) -> bool:
        """True if the number has an opt-out with no later opt-in.

        Fails safe: an unknown consent state counts as opted out.
        """
        if self._store is None:
            logger.error("Opt-out lookup without a store; treating %s as opted out", phone)
            return True
        try:
            opt_out = self._store.get_opt_out(tenant_id, phone)
        except Exception:
            logger.exception("Opt-out lookup failed for %s; treating as opted out", phone)
            return True
        opted_out = opt_out is not None and opt_out.opted_in_at is None
        if opted_out:
            logger.info("Phone number is opted out: %s", phone)
        return opted_out
