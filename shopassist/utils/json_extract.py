# =============================================
# File: shopassist/utils/json_extract.py
# Purpose: Locate the first complete JSON object inside free-form model output
# =============================================
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Union

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


@dataclass(frozen=True)
class JsonObject:
    value: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NoMatch:
    pass


@dataclass(frozen=True)
class Malformed:
    reason: str
    fragment: str = ""


ParseResult = Union[JsonObject, NoMatch, Malformed]


def _balanced_end(text: str, start: int) -> int:
    """Index one past the brace closing the object opened at `start`, or -1."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def extract_json_object(text: str) -> ParseResult:
    """
    Strip markdown fences, find the first '{', scan to its balancing '}' (braces
    inside string literals ignored) and decode that slice.
    """
    if not text:
        return NoMatch()
    cleaned = _FENCE_RE.sub("", text).strip()
    start = cleaned.find("{")
    if start == -1:
        return NoMatch()

    end = _balanced_end(cleaned, start)
    if end == -1:
        return Malformed("unbalanced braces", cleaned[start:start + 200])

    raw = cleaned[start:end]
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        return Malformed(f"invalid json: {e.msg}", raw[:200])
    if not isinstance(data, dict):
        return Malformed("not an object", raw[:200])
    return JsonObject(data)
