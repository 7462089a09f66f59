"""Pull a JSON payload out of free-form vendor text.

Vendors wrap JSON in markdown fences or surround it with prose even when
asked not to. Extraction tries, in order: the first fenced block that holds
a balanced span, the outermost balanced object or array in the whole text,
then the stripped text as-is.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_BLOCK_PATTERN = re.compile(r"```[A-Za-z]*[ \t]*\n?([\s\S]*?)\n?```")


def balanced_span(text: str) -> str | None:
    """Return the outermost balanced {...} or [...] span, ignoring brackets in strings."""
    start = next((i for i, ch in enumerate(text) if ch in "{["), None)
    if start is None:
        return None

    closers = {"{": "}", "[": "]"}
    stack: list[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
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
        elif ch in closers:
            stack.append(closers[ch])
        elif ch in "}]":
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return text[start : index + 1]
    return None


def extract_json(raw: str) -> Any:
    """Parse the JSON payload of a vendor answer.

    Raises:
        json.JSONDecodeError: If no parseable JSON is present
    """
    text = raw.strip()

    for fenced in _FENCED_BLOCK_PATTERN.finditer(text):
        span = balanced_span(fenced.group(1))
        if span is not None:
            return json.loads(span)

    # A fence holding code or prose must not hide JSON elsewhere in the answer
    span = balanced_span(_FENCED_BLOCK_PATTERN.sub("", text))
    if span is None:
        span = balanced_span(text)
    return json.loads(span if span is not None else text)
