"""Tests for the safety validator and opt-out tracking."""

import pytest

from replygate.safety import (
    DEFAULT_RULES,
    SafetyRule,
    SafetyValidator,
    detect_opt_out,
    match_opt_out_keyword,
    record_opt_in,
    record_opt_out,
)
from replygate.schemas import SafetyPolicy, Severity, ViolationType

TENANT = "tenant_acme"
PHONE = "+971501234567"


@pytest.fixture
def policy():
    return SafetyPolicy(
        allowed_intents=["viewing_request", "inquiry", "price_inquiry", "availability_check", "follow_up"],
        escalate_keywords=["complaint", "manager"],
    )


@pytest.fixture
def validator():
    return SafetyValidator()


def _rules(result):
    return [v.rule_matched for v in result.violations]


class TestValidate:

    def test_clean_reply_passes(self, validator, policy):
        result = validator.validate("Happy to arrange a viewing this week. What time suits you?", "viewing_request", policy)
        assert result.passed is True
        assert result.risk_score == 0
        assert result.should_block is False
        assert result.violations == []

    def test_price_blocks_on_its_own(self, validator):
        lenient = SafetyPolicy(max_risk_score=1000)
        result = validator.validate("This one is AED 1,200,000.", None, lenient)
        assert result.should_block is True
        assert result.risk_score == 50
        assert result.violations[0].type == ViolationType.PRICE_MENTION
        assert result.violations[0].severity == Severity.CRITICAL

    def test_each_distinct_price_counts(self, validator, policy):
        result = validator.validate("Options at AED 1,000,000 or $270,000 are open.", None, policy)
        prices = [v for v in result.violations if v.type == ViolationType.PRICE_MENTION]
        assert len(prices) == 2
        assert result.risk_score == 100

    @pytest.mark.parametrize(
        "text",
        [
            "Prices around 2.5M AED",
            "It costs 950,000 dirhams",
            "The price is 1,500,000",
            "The villa is listed at 500,000 USD.",
            "Units start from USD 450,000.",
            "Around EUR 300,000 for the studio",
            "Asking GBP 1,200,000 freehold",
            "Listed at £850,000",
            "Roughly 1.2m dollars",
        ],
    )
    def test_price_formats(self, validator, policy, text):
        result = validator.validate(text, None, policy)
        assert ViolationType.PRICE_MENTION in [v.type for v in result.violations]

    def test_price_span_excludes_trailing_punctuation(self, validator, policy):
        result = validator.validate("The apartment is AED 2,500,000, guaranteed available.", None, policy)
        assert result.violations[0].detected_text == "AED 2,500,000"

    @pytest.mark.parametrize(
        "text,rule",
        [
            ("A great investment with strong investing potential.", "FINANCIAL_KEYWORD"),
            ("Our investors love this tower.", "FINANCIAL_KEYWORD"),
            ("Please check with your lawyers first.", "LEGAL_KEYWORD"),
            ("That went to the courts last year.", "LEGAL_KEYWORD"),
        ],
    )
    def test_inflected_keywords(self, validator, policy, text, rule):
        assert rule in _rules(validator.validate(text, None, policy))

    def test_inflection_keeps_leading_boundary(self, validator, policy):
        text = "The courtyard has no issue with pursuit of shade, and owners often reinvest in upkeep."
        result = validator.validate(text, None, policy)
        assert result.violations == []

    @pytest.mark.parametrize(
        "text",
        [
            "I can book your viewing on 2025-03-14 15:00.",
            "Handover is 2026 Q1, building 12 12 12.",
            "Viewing slots 10-12 or 14-16 on 03-14-2025.",
        ],
    )
    def test_dates_and_times_are_not_phone_numbers(self, validator, policy, text):
        result = validator.validate(text, "viewing_request", policy)
        assert "PHONE_PATTERN" not in _rules(result)

    def test_bare_phone_number(self, validator, policy):
        assert _rules(validator.validate("Call 0501234567 today.", None, policy)) == ["PHONE_PATTERN"]

    def test_price_and_availability_claim(self, validator, policy):
        result = validator.validate("The apartment is AED 2,500,000, guaranteed available.", "inquiry", policy)
        assert result.should_block is True
        assert result.risk_score >= 70
        assert {v.type for v in result.violations} == {
            ViolationType.PRICE_MENTION,
            ViolationType.AVAILABILITY_CLAIM,
        }

    def test_all_violations_reported(self, validator, policy):
        text = "Talk to a lawyer before you invest, Emaar has similar units."
        result = validator.validate(text, "inquiry", policy)
        assert set(_rules(result)) == {"LEGAL_KEYWORD", "FINANCIAL_KEYWORD", "COMPETITOR_NAME"}
        assert result.risk_score == 70
        assert result.should_block is True

    def test_keyword_rule_reports_once(self, validator, policy):
        result = validator.validate("A lawyer and an attorney, then court.", None, policy)
        assert _rules(result) == ["LEGAL_KEYWORD"]
        assert result.risk_score == 30

    def test_whole_words_only(self, validator, policy):
        result = validator.validate("No issue at all, the pursuit of a great home continues.", None, policy)
        assert result.violations == []

    def test_personal_data(self, validator, policy):
        result = validator.validate("Email sales@agency.ae or call +971 50 123 4567.", None, policy)
        assert set(_rules(result)) == {"EMAIL_PATTERN", "PHONE_PATTERN"}
        assert result.risk_score == 40

    def test_under_threshold_not_blocked_but_not_passed(self, validator, policy):
        result = validator.validate("Don't miss out, Damac is busy too.", None, policy)
        assert result.risk_score == 25
        assert result.should_block is False
        assert result.passed is False

    def test_over_threshold_blocks(self, validator, policy):
        result = validator.validate("Don't miss out, Damac units are definitely available.", None, policy)
        assert result.risk_score == 45
        assert result.should_block is True

    def test_length(self, validator):
        result = validator.validate("x" * 50, None, SafetyPolicy(max_message_length=20))
        assert _rules(result) == ["MAX_LENGTH_EXCEEDED"]
        assert result.risk_score == 5

    def test_opt_out_echo(self, validator, policy):
        result = validator.validate("Reply STOP to unsubscribe.", None, policy)
        assert _rules(result) == ["OPT_OUT_ECHO"]
        assert result.risk_score == 5

    def test_intent_not_allowed(self, validator):
        result = validator.validate("Sure!", "price_inquiry", SafetyPolicy(allowed_intents=["inquiry"]))
        assert _rules(result) == ["INTENT_NOT_ALLOWED"]
        assert result.risk_score == 25

    def test_escalation(self, validator, policy):
        result = validator.validate("I will pass your complaint to the team.", None, policy)
        assert result.should_escalate is True
        assert result.passed is True

    def test_fails_closed_when_a_rule_errors(self, policy):
        def broken(text, intent, policy):
            raise RuntimeError("regex engine exploded")

        validator = SafetyValidator(rules=DEFAULT_RULES + (SafetyRule("broken", 10, broken),))
        result = validator.validate("Happy to help.", None, policy)
        assert result.should_block is True
        assert result.should_escalate is True
        assert result.passed is False
        assert result.risk_score == 100
        assert result.violations[0].rule_matched == "VALIDATION_ERROR"
        assert result.violations[0].severity == Severity.CRITICAL


class TestOptOuts:

    def test_unknown_number_not_opted_out(self, store):
        assert SafetyValidator(store).is_opted_out(TENANT, PHONE) is False

    def test_opt_out_then_opt_in(self, store):
        validator = SafetyValidator(store)
        record_opt_out(store, TENANT, PHONE, reason="manual")
        assert validator.is_opted_out(TENANT, PHONE) is True
        assert validator.is_opted_out("tenant_other", PHONE) is False

        record_opt_in(store, TENANT, PHONE)
        assert validator.is_opted_out(TENANT, PHONE) is False

        record_opt_out(store, TENANT, PHONE)
        assert validator.is_opted_out(TENANT, PHONE) is True
        assert store.get_opt_out(TENANT, PHONE).reason == "manual"

    def test_opt_in_without_opt_out(self, store):
        assert record_opt_in(store, TENANT, PHONE) is None

    def test_lookup_failure_counts_as_opted_out(self):
        class BrokenStore:
            def get_opt_out(self, tenant_id, phone):
                raise ConnectionError("database unavailable")

        assert SafetyValidator(BrokenStore()).is_opted_out(TENANT, PHONE) is True
        assert SafetyValidator().is_opted_out(TENANT, PHONE) is True

    @pytest.mark.parametrize(
        "body,expected",
        [
            ("STOP", "stop"),
            ("  Stop please ", "stop"),
            ("unsubscribe", "unsubscribe"),
            ("Opt out", "opt out"),
            ("إلغاء", "إلغاء"),
            ("Don't stop sending listings", None),
            ("stopped by the office", None),
            ("", None),
        ],
    )
    def test_match_opt_out_keyword(self, body, expected):
        assert match_opt_out_keyword(body, ["stop", "unsubscribe", "opt out", "إلغاء"]) == expected

    def test_detect_records_opt_out(self, store):
        assert detect_opt_out(store, TENANT, PHONE, "STOP") is True
        assert store.get_opt_out(TENANT, PHONE).reason == "keyword: stop"

    def test_detect_uses_tenant_keywords(self, store):
        policy = SafetyPolicy(opt_out_keywords=["remove me"])
        assert detect_opt_out(store, TENANT, PHONE, "remove me from this list", policy) is True

    def test_detect_ignores_normal_messages(self, store):
        assert detect_opt_out(store, TENANT, PHONE, "Can I visit on Saturday?") is False
        assert store.get_opt_out(TENANT, PHONE) is None

    def test_detect_disabled_by_policy(self, store):
        policy = SafetyPolicy(respect_opt_out=False)
        assert detect_opt_out(store, TENANT, PHONE, "STOP", policy) is False
