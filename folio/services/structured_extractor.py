"""
Pull a JSON object out of free-form model output.

Models wrap JSON in code fences, add a sentence before or after it, or leave a
trailing comma.  ``extract_object`` tolerates all of that and returns either
the parsed object or ``None``; it never raises.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def extract_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Return the JSON object embedded in *text*, or ``None``.

    Strategy:
      1. strip markdown code fences,
      2. slice from the first ``{`` to the last ``}`` (whole text otherwise),
      3. ``json.loads``,
      4. on failure, repair trailing commas and Python literals and parse again.

    Only dicts count as success; a top-level array or scalar is ``None``.
    """
    if not text or not isinstance(text, str):
        return None

    candidate = _slice_object(_strip_code_fences(text.strip()))

    ok, value = _try_json(candidate)
    if not ok:
        ok, value = _try_json(_fix_json_issues(candidate))
    if ok and isinstance(value, dict):
        return value

    logger.debug("extract_object: no JSON object found. Preview: %s", text[:200])
    return None


def _strip_code_fences(text: str) -> str:
    """Remove ```json / ``` delimiters, wherever the fenced block sits."""
    fenced = re.search(r"```(?:json|javascript|js|text)?\s*\n?(.*?)```", text, flags=re.IGNORECASE | re.DOTALL)
    if fenced:
        return fenced.group(1).strip()
    text = re.sub(r"^```(?:json|javascript|js|text)?\s*\n?", "", text, flags=re.IGNORECASE)
    return text.strip()


def _slice_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text.strip()


def _try_json(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def _fix_json_issues(text: str) -> str:
    """Repair the most common JSON mangling patterns from LLMs."""
    # Trailing commas before ] or }
    text = re.sub(r",(\s*[}\]])", r"\1", text)
    # Python → JSON literals
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    text = re.sub(r"\bNone\b", "null", text)
    return text.strip()
