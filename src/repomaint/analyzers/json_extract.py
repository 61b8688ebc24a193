"""Best-effort recovery of a JSON object from free-form model output.

Models asked for "pure JSON" still wrap it in markdown fences, add commentary
around it, or leave trailing commas. ``extract_json_candidate`` tries a fixed
sequence of strategies and returns the first plausible object text. It never
raises; callers find out about unusable output when they ``json.loads`` it.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable

logger = logging.getLogger(__name__)

EMPTY_OBJECT = "{}"

_FENCE_RE = re.compile(r"^[ \t]*```[\w+-]*[ \t]*$\n?", re.MULTILINE)
_TRAILING_COMMA_RE = re.compile(r",\s*[}\]]")
_ESCAPED_QUOTE_RE = re.compile(r"(?<!\\)\\'")

# A field that only appears inside the community section of a response.
ANCHOR_FIELD = '"responsiveness"'


def strip_fences(text: str) -> str:
    """Remove ``` and ```json fence lines, keeping what was between them.

    Only lines that consist of a fence marker are removed; backticks inside
    string values are left alone.
    """
    return _FENCE_RE.sub("", text).strip()


def find_balanced_object(text: str) -> str | None:
    """Return the first complete ``{...}`` in text.

    Braces inside double-quoted strings are ignored, and backslash escapes
    inside strings are honored.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def drop_trailing_commas(text: str) -> str:
    """Remove commas directly before a closing bracket, outside of strings."""
    kept = []
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "," and _TRAILING_COMMA_RE.match(text, index):
            continue
        kept.append(char)
    return "".join(kept)


def repair(candidate: str) -> str:
    """Fix the syntax slips models commonly make."""
    fixed = candidate
    # A whole object emitted as an escaped string literal: {\"a\": 1}
    if fixed.startswith('{\\"'):
        fixed = fixed.replace('\\"', '"')
    fixed = _ESCAPED_QUOTE_RE.sub("'", fixed)
    return drop_trailing_commas(fixed)


def parses(candidate: str) -> bool:
    try:
        json.loads(candidate)
    except (ValueError, RecursionError):
        return False
    return True


def looks_like_object(candidate: str) -> bool:
    """Cheap plausibility check before handing text to a JSON parser."""
    return (
        candidate.count("{") == candidate.count("}")
        and candidate.count('"') >= 4
        and len(candidate) > 10
    )


def balanced_strategy(text: str) -> str | None:
    candidate = find_balanced_object(text)
    if candidate is None:
        return None
    if not parses(candidate):
        candidate = repair(candidate)
    return candidate if looks_like_object(candidate) else None


def anchor_strategy(text: str) -> str | None:
    """Retry from the object that follows a known field name."""
    position = text.find(ANCHOR_FIELD)
    if position == -1:
        return None
    colon = text.find(":", position + len(ANCHOR_FIELD))
    if colon == -1:
        return None
    remainder = text[colon + 1 :].lstrip()
    if not remainder.startswith("{"):
        return None
    return balanced_strategy(remainder)


def widest_span_strategy(text: str) -> str | None:
    """Repair the span from the first ``{`` to the last ``}``, unvalidated."""
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None
    candidate = text[first : last + 1]
    return candidate if parses(candidate) else repair(candidate)


STRATEGIES: tuple[Callable[[str], str | None], ...] = (
    balanced_strategy,
    anchor_strategy,
    widest_span_strategy,
)


def extract_json_candidate(raw: str | None) -> str:
    """Find the most plausible JSON object in model output.

    Args:
        raw: Text returned by the model.

    Returns:
        A JSON object candidate, or ``"{}"`` if nothing resembling one exists.
        The result is not guaranteed to parse.
    """
    if not raw or not raw.strip():
        return EMPTY_OBJECT

    text = strip_fences(raw)
    for strategy in STRATEGIES:
        try:
            candidate = strategy(text)
        except Exception as e:  # noqa: BLE001 - extraction must not raise
            logger.debug(f"JSON strategy {strategy.__name__} failed: {e}")
            continue
        if candidate:
            return candidate

    logger.debug(f"No JSON object found in model output: {raw[:200]!r}")
    return EMPTY_OBJECT
