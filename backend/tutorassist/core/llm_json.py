"""LLM JSON — tolerant extraction of JSON payloads from model output.

Fallback levels:
    1. Direct json.loads
    2. Regex: outermost {...} or [...] block (handles ```json fences and prose)
    3. None — callers decide whether that is an error or a default
"""

import json
import re
from typing import Any

_OBJECT_BLOCK = re.compile(r"\{[\s\S]*\}")
_ARRAY_BLOCK = re.compile(r"\[[\s\S]*\]")


def extract_json(text: str | None) -> Any | None:
    if not text:
        return None
    text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for pattern in (_OBJECT_BLOCK, _ARRAY_BLOCK):
        match = pattern.search(text)
        if match:
            try:
                return json.loads(match.group())
            except json.JSONDecodeError:
                continue
    return None
