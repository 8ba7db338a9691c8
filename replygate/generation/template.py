"""``{{key}}`` placeholder substitution for prompt templates."""

from __future__ import annotations

import re
from typing import Any

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_template(template: str, context: dict[str, Any]) -> str:
    """Replace ``{{key}}`` with scalar context values.

    Unknown keys and non-scalar values (lists, dicts, None) leave the
    placeholder verbatim.
    """

    def _sub(m: re.Match[str]) -> str:
        value = context.get(m.group(1))
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return m.group(0)
        return str(value)

    return _PLACEHOLDER.sub(_sub, template)
