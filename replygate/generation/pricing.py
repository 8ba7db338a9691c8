"""Per-provider, per-model token rates used for cost estimates."""

# (provider, model substring) -> (input, output) USD per 1k tokens; first match wins
RATE_TABLE: tuple[tuple[str, str, float, float], ...] = (
    ("openai", "gpt-4o-mini", 0.00015, 0.0006),
    ("openai", "gpt-4o", 0.005, 0.015),
    ("openai", "gpt-4", 0.03, 0.06),
    ("openai", "", 0.0015, 0.002),
    ("anthropic", "haiku", 0.00025, 0.00125),
    ("anthropic", "opus", 0.015, 0.075),
    ("anthropic", "", 0.003, 0.015),
)


def estimate_cost(provider: str, model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost of one completion; 0.0 for unknown providers."""
    provider = provider.lower()
    model = (model or "").lower()
    for rate_provider, fragment, input_rate, output_rate in RATE_TABLE:
        if rate_provider == provider and fragment in model:
            return (input_tokens * input_rate + output_tokens * output_rate) / 1000
    return 0.0
