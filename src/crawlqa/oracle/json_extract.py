"""
Tolerant JSON extraction from model responses that wrap JSON in prose or
markdown fences.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

FENCE_OPEN_RE = re.compile(r'^```(?:json|javascript|js)?\s*\n?', re.IGNORECASE)
FENCE_CLOSE_RE = re.compile(r'\n?\s*```\s*$')
OBJECT_RE = re.compile(r'\{[\s\S]*\}')
ARRAY_RE = re.compile(r'\[[\s\S]*\]')


def extract_json(text: str) -> Any:
    """
    Parse the first JSON object or array found in `text`.

    Raises ValueError when no JSON structure can be recovered.
    """
    if not text or not isinstance(text, str):
        raise ValueError("Response text is empty")

    cleaned = text.strip()
    if cleaned.startswith('```'):
        cleaned = FENCE_CLOSE_RE.sub('', FENCE_OPEN_RE.sub('', cleaned)).strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for pattern in (OBJECT_RE, ARRAY_RE):
        match = pattern.search(cleaned)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                continue

    balanced = _balanced_span(cleaned)
    if balanced is None:
        raise ValueError("No JSON structure found in response")
    try:
        return json.loads(balanced)
    except json.JSONDecodeError as e:
        raise ValueError(f"Could not parse JSON from response: {e}") from e


def _balanced_span(text: str):
    """The first bracket-balanced {...} or [...] span, ignoring brackets in strings."""
    starts = [i for i in (text.find('{'), text.find('[')) if i != -1]
    if not starts:
        return None

    start = min(starts)
    open_char = text[start]
    close_char = '}' if open_char == '{' else ']'
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        char = text[i]
        if escape:
            escape = False
            continue
        if char == '\\':
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    logger.debug("Unbalanced JSON in response")
    return None
