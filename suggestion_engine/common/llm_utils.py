"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*$")


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response.

    Code fences and preamble text are tolerated. Anything that does not
    decode to a JSON object yields an empty dict.
    """
    if not raw:
        return {}

    text = "\n".join(line for line in raw.splitlines() if not _FENCE_RE.match(line))
    for candidate in (text, _outer_braces(raw)):
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    return {}


def _outer_braces(raw: str) -> str:
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        return raw[start:end]
    return ""


def clamp_unit(value, default: float = 0.0) -> float:
    """Coerce an LLM-provided number into [0, 1]."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))
