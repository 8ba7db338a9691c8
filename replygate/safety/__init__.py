"""Safety gate for AI drafts and consent (opt-out) tracking."""

from replygate.safety.opt_outs import (
    DEFAULT_OPT_OUT_KEYWORDS,
    detect_opt_out,
    match_opt_out_keyword,
    record_opt_in,
    record_opt_out,
)
from replygate.safety.validator import DEFAULT_RULES, SafetyRule, SafetyValidator

__all__ = [
    "DEFAULT_OPT_OUT_KEYWORDS",
    "DEFAULT_RULES",
    "SafetyRule",
    "SafetyValidator",
    "detect_opt_out",
    "match_opt_out_keyword",
    "record_opt_in",
    "record_opt_out",
]
