"""Helpers for turning raw LLM output into Python data."""

from __future__ import annotations

import json
from typing import Any


def strip_code_fences(raw: str) -> str:
    """Drop ``` fence lines that models like to wrap JSON in."""
    if not raw.lstrip().startswith("```"):
        return raw
    return "\n".join(
        line for line in raw.split("\n") if not line.strip().startswith("```")
    )


def parse_llm_json(raw: str) -> Any:
    """Parse a JSON object out of an LLM response.

    Raises ValueError when nothing parseable is found, so callers can count
    the failure instead of silently treating it as "no results".
    """
    if not raw or not raw.strip():
        raise ValueError("empty LLM response")

    text = strip_code_fences(raw).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Preamble or trailing prose around the object
    start = text.find("{")
    end = text.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            return json.loads(text[start:end])
        except json.JSONDecodeError:
            pass

    raise ValueError(f"LLM response is not valid JSON: {raw[:200]!r}")
