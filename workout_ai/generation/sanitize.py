"""Prompt-injection mitigation for user-supplied free text.

Every free-text profile field passes through sanitize_user_input before it
is embedded in a vendor prompt:

1. Truncate to a field-specific maximum length.
2. Replace known instruction-injection phrases with a placeholder.
3. Replace fenced code blocks and JSON-shaped fragments with a placeholder.
4. Wrap the result in [USER_INPUT_START] / [USER_INPUT_END] markers; the
   system prompt tells the model that marked text is data, never instructions.

Matches are replaced rather than deleted so the prompt stays auditable.

This is a best-effort layer. The pattern list is fixed and cannot anticipate
novel phrasings, so it reduces but does not eliminate prompt-injection risk.
"""

from __future__ import annotations

import re

INJECTION_PLACEHOLDER = "[removed]"
CODE_BLOCK_PLACEHOLDER = "[code block removed]"
JSON_PLACEHOLDER = "[json removed]"

USER_INPUT_START = "[USER_INPUT_START]"
USER_INPUT_END = "[USER_INPUT_END]"

# Field length limits (characters)
MAX_GOALS_LENGTH = 300
MAX_INJURIES_LENGTH = 1000
MAX_MEDICATIONS_LENGTH = 500
MAX_DEFAULT_LENGTH = 300
MAX_LIST_ITEM_LENGTH = 100

INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"ignore\s+(?:all\s+)?(?:the\s+)?(?:previous|above|prior)(?:\s+instructions?)?", re.IGNORECASE),
    re.compile(r"disregard\s+(?:all\s+)?(?:the\s+)?(?:previous|above|prior)(?:\s+instructions?)?", re.IGNORECASE),
    re.compile(r"forget\s+(?:everything|all)", re.IGNORECASE),
    re.compile(r"new\s+instructions?\s*:", re.IGNORECASE),
    re.compile(r"\bsystem\s*:", re.IGNORECASE),
    re.compile(r"\bassistant\s*:", re.IGNORECASE),
)

_CODE_BLOCK_PATTERN = re.compile(r"```[\s\S]*?```")
# Braces enclosing at least one quoted string look like JSON
_JSON_FRAGMENT_PATTERN = re.compile(r"\{[^{}]*\"[^\"]*\"[^{}]*\}")
# User text must never be able to close or open its own boundary
_MARKER_PATTERN = re.compile(r"\[\s*USER_INPUT_(?:START|END)\s*\]", re.IGNORECASE)


def strip_injection_patterns(text: str) -> str:
    for pattern in INJECTION_PATTERNS:
        text = pattern.sub(INJECTION_PLACEHOLDER, text)
    return text


def strip_code_and_json(text: str) -> str:
    text = _CODE_BLOCK_PATTERN.sub(CODE_BLOCK_PLACEHOLDER, text)
    # Nested objects collapse one level per pass
    previous = None
    while previous != text:
        previous = text
        text = _JSON_FRAGMENT_PATTERN.sub(JSON_PLACEHOLDER, text)
    return text


def sanitize_user_input(value: str | None, max_length: int = MAX_DEFAULT_LENGTH) -> str:
    """Neutralize a free-text field for embedding in a prompt.

    Args:
        value: Raw user text (may be None)
        max_length: Field-specific maximum length, applied before stripping

    Returns:
        Sanitized text, or an empty string when nothing usable remains
    """
    if not value or not isinstance(value, str):
        return ""

    sanitized = value[:max_length]
    sanitized = _MARKER_PATTERN.sub(INJECTION_PLACEHOLDER, sanitized)
    sanitized = strip_injection_patterns(sanitized)
    sanitized = strip_code_and_json(sanitized)
    return sanitized.strip()


def sanitize_list(values: list[str] | None, max_item_length: int = MAX_LIST_ITEM_LENGTH) -> str:
    """Sanitize each item of a list field and join the survivors."""
    if not values:
        return ""
    items = [sanitize_user_input(v, max_item_length) for v in values]
    return ", ".join(item for item in items if item)


def mark_user_input(sanitized: str) -> str:
    return f"{USER_INPUT_START}{sanitized}{USER_INPUT_END}"


def wrap_user_input(label: str, value: str | None, max_length: int = MAX_DEFAULT_LENGTH) -> str:
    """Render a labelled, sanitized, boundary-marked profile line."""
    sanitized = sanitize_user_input(value, max_length)
    if not sanitized:
        return f"{label}: None reported"
    return f"{label}: {mark_user_input(sanitized)}"
