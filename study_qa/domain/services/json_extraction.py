"""Layered JSON extraction from free-form model text.

Three independent strategies, tried in order by ``extract_json``:

1. ``parse_direct``: the whole response is JSON.
2. ``parse_fenced``: the JSON sits inside a Markdown code fence.
3. ``parse_balanced``: the first balanced ``{...}`` or ``[...]`` substring.

Each strategy returns ``None`` when it does not apply so callers can chain them.
"""

from __future__ import annotations

import json
import re
from typing import Any

from study_qa.domain.errors import MalformedModelOutput

_FENCE = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\n?(.*?)```", re.DOTALL)
_MISSING = object()


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, TypeError, RecursionError):
        # RecursionError: pathologically nested input
        return _MISSING


def parse_direct(text: str) -> Any | None:
    value = _loads(text.strip())
    return None if value is _MISSING else value


def strip_code_fences(text: str) -> list[str]:
    """Bodies of all fenced blocks, in order. Unterminated fences are opened up too."""
    bodies = [m.group(1).strip() for m in _FENCE.finditer(text)]
    if not bodies and text.lstrip().startswith("```"):
        body = text.lstrip()[3:]
        body = re.sub(r"^(?:json|JSON)?[ \t]*\n?", "", body)
        bodies.append(body.strip().rstrip("`").strip())
    return bodies


def parse_fenced(text: str) -> Any | None:
    for body in strip_code_fences(text):
        value = _loads(body)
        if value is not _MISSING:
            return value
    return None


def find_balanced(text: str) -> str | None:
    """First substring starting at ``{`` or ``[`` whose brackets balance.

    String literals are honoured, so brackets inside quoted values do not count.
    """
    pairs = {"{": "}", "[": "]"}
    for start, ch in enumerate(text):
        if ch not in pairs:
            continue
        stack = [pairs[ch]]
        in_string = False
        escaped = False
        for pos in range(start + 1, len(text)):
            c = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif c == "\\":
                    escaped = True
                elif c == '"':
                    in_string = False
                continue
            if c == '"':
                in_string = True
            elif c in pairs:
                stack.append(pairs[c])
            elif c in "}]":
                if c != stack[-1]:
                    break
                stack.pop()
                if not stack:
                    return text[start : pos + 1]
    return None


def parse_balanced(text: str) -> Any | None:
    candidate = find_balanced(text)
    if candidate is None:
        return None
    value = _loads(candidate)
    return None if value is _MISSING else value


def extract_json(text: str) -> Any:
    """Run the strategies in order; raise ``MalformedModelOutput`` if all fail."""
    if text is None or not text.strip():
        raise MalformedModelOutput("empty model response", raw=text or "")
    for strategy in (parse_direct, parse_fenced, parse_balanced):
        value = strategy(text)
        if value is not None:
            return value
    raise MalformedModelOutput("no JSON found in model response", raw=text)
