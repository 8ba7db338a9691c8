"""Tests for intent detection, cost estimates and template rendering."""

import pytest

from replygate.generation import detect_intent, estimate_cost, render_template


class TestIntent:

    @pytest.mark.parametrize(
        "message,intent",
        [
            ("Can I book a viewing?", "viewing_request"),
            ("How much is the 2 bed?", "price_inquiry"),
            ("I'm looking for a villa", "inquiry"),
            ("Is it still available?", "availability_check"),
            ("Hello again", "follow_up"),
        ],
    )
    def test_classification(self, message, intent):
        assert detect_intent(message).type == intent

    def test_confidence_grows_with_hits(self):
        assert detect_intent("Can I visit?").confidence == 0.65
        assert detect_intent("Can I visit for a viewing?").confidence == 0.8
        assert detect_intent("Viewing, visit or a tour?").confidence == 0.95
        assert detect_intent("Hi").confidence == 0.5

    def test_most_hits_wins(self):
        intent = detect_intent("Interested. What's the price and how much are service costs?")
        assert intent.type == "price_inquiry"

    def test_tie_goes_to_earlier_intent(self):
        assert detect_intent("Interested in a viewing").type == "viewing_request"

    def test_sentiment_and_urgency(self):
        intent = detect_intent("Can we tour it tomorrow?")
        assert intent.sentiment == "positive"
        assert intent.urgency == "high"

    def test_whole_words(self):
        # "current" contains "rent"
        assert detect_intent("What is the current status?").type == "follow_up"


class TestCost:

    def test_gpt4_rates(self):
        assert estimate_cost("openai", "gpt-4-turbo", 1000, 1000) == pytest.approx(0.09)

    def test_other_openai_rates(self):
        assert estimate_cost("openai", "gpt-3.5-turbo", 1000, 1000) == pytest.approx(0.0035)

    def test_anthropic_rates(self):
        assert estimate_cost("anthropic", "claude-3-5-sonnet-20241022", 1000, 1000) == pytest.approx(0.018)

    def test_unknown_provider_is_free(self):
        assert estimate_cost("gemini", "gemini-pro", 1000, 1000) == 0.0


class TestTemplate:

    def test_substitutes_scalars(self):
        out = render_template("Hi {{lead_name}}, {{ bedrooms }} beds, {{count}} left", {"lead_name": "Sara", "bedrooms": "2", "count": 3})
        assert out == "Hi Sara, 2 beds, 3 left"

    def test_unmatched_placeholders_kept(self):
        assert render_template("Hi {{lead_name}} {{unknown}}", {"lead_name": "Sara"}) == "Hi Sara {{unknown}}"

    def test_non_scalars_kept(self):
        context = {"history": [{"body": "hi"}], "missing": None, "flag": True}
        assert render_template("{{history}} {{missing}} {{flag}}", context) == "{{history}} {{missing}} {{flag}}"

    def test_repeated_placeholder(self):
        assert render_template("{{x}}-{{x}}", {"x": "a"}) == "a-a"
