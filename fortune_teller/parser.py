"""Model output parsing into a structured fortune reply.

parse() turns the raw body returned by the chat endpoint into a
ParseSuccess or a ParseFailure. Local models rarely follow the schema
perfectly, so extraction falls through several layers:

  1. strict envelope     — ChatCompletion, read choices[0].message.content
  2. permissive envelope — JsonValue tree, walk the same path by hand
  3. JSON block          — first balanced {...} in the content, quote-aware
  4. strict block        — FortuneJson; canonical JSON is the block itself
  5. permissive block    — JsonValue tree; canonical JSON is re-serialized
  6. enumerated list     — "1. ..." / "- ..." lines when there is no block

Failure reasons are for diagnostics only.
"""

from __future__ import annotations

import logging
import re

from pydantic import JsonValue, TypeAdapter, ValidationError

from fortune_teller.choices import CHOICE_COUNT, normalize
from fortune_teller.models import (
    ChatCompletion,
    FortuneJson,
    FortuneResponse,
    ParseFailure,
    ParseOutcome,
    ParseSuccess,
)
from fortune_teller.sanitizer import sanitize

logger = logging.getLogger(__name__)

_json_value = TypeAdapter(JsonValue)

_ENUMERATED_LINE = re.compile(r"^\s*(?:\d+[.)]|-\s|\*\s)(.+)$")
_LINE_BREAKS = re.compile(r"[\r\n]+")

ENUMERATED_FILLER = "Contemplate your fate in silence"
ENUMERATED_SPOKEN_DEFAULT = "The fortune teller gestures for you to choose."


def parse(raw: str) -> ParseOutcome:
    """Extract a fortune reply from a raw chat-completion body."""
    if not raw or not raw.strip():
        return ParseFailure(reason="empty response body")

    content = _strict_content(raw)
    if not content:
        content = _permissive_content(raw)
    if content is None:
        return ParseFailure(reason="response has no choices[0].message.content")

    block = extract_json_block(content)
    if block is None:
        return _parse_enumerated(content)

    strict = _strict_block(block)
    if strict is not None:
        return strict
    return _permissive_block(block)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

def _strict_content(raw: str) -> str | None:
    try:
        completion = ChatCompletion.model_validate_json(raw)
    except ValidationError as e:
        logger.debug("strict envelope decode failed: %d errors", e.error_count())
        return None
    if not completion.choices:
        return None
    return completion.choices[0].message.content


def _permissive_content(raw: str) -> str | None:
    try:
        tree = _json_value.validate_json(raw)
    except ValidationError:
        logger.debug("response body is not JSON")
        return None

    if not isinstance(tree, dict):
        return None
    choices = tree.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


# ---------------------------------------------------------------------------
# Embedded JSON block
# ---------------------------------------------------------------------------

def extract_json_block(text: str) -> str | None:
    """Return the first balanced {...} block outside quoted strings, or None."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
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
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _strict_block(block: str) -> ParseSuccess | None:
    try:
        fortune = FortuneJson.model_validate_json(block)
    except ValidationError:
        logger.debug("strict block decode failed, trying permissive decode")
        return None

    spoken = sanitize(fortune.spoken)
    if not spoken:
        return None
    response = FortuneResponse(spoken=spoken, choices=normalize(fortune.choices))
    return ParseSuccess(response=response, canonical_json=block)


def _permissive_block(block: str) -> ParseOutcome:
    try:
        tree = _json_value.validate_json(block)
    except ValidationError:
        return ParseFailure(reason="embedded block is not valid JSON")
    if not isinstance(tree, dict):
        return ParseFailure(reason="embedded block is not an object")
    if "spoken" not in tree:
        return ParseFailure(reason="embedded block has no 'spoken' field")

    raw_spoken = tree["spoken"]
    spoken = sanitize(raw_spoken if isinstance(raw_spoken, str) else None)
    if not spoken:
        return ParseFailure(reason="'spoken' is empty after sanitization")

    candidates: list[str] = []
    raw_choices = tree.get("choices")
    if isinstance(raw_choices, list):
        candidates = [c for c in raw_choices if isinstance(c, str) and c.strip()]

    response = FortuneResponse(spoken=spoken, choices=normalize(candidates))
    return ParseSuccess(response=response, canonical_json=response.model_dump_json())


# ---------------------------------------------------------------------------
# Enumerated-list fallback
# ---------------------------------------------------------------------------

def _parse_enumerated(content: str) -> ParseOutcome:
    lines = [line for line in _LINE_BREAKS.split(content) if line]
    first_choice_line = -1
    choices: list[str] = []
    for i, line in enumerate(lines):
        match = _ENUMERATED_LINE.match(line)
        if not match:
            continue
        if first_choice_line == -1:
            first_choice_line = i
        text = sanitize(match.group(1))
        if text:
            choices.append(text)

    if not choices:
        return ParseFailure(reason="no JSON block or enumerated choices in content")

    while len(choices) < CHOICE_COUNT:
        choices.append(ENUMERATED_FILLER)

    spoken = sanitize("\n".join(lines[:first_choice_line])) or ENUMERATED_SPOKEN_DEFAULT
    response = FortuneResponse(spoken=spoken, choices=normalize(choices))
    return ParseSuccess(response=response, canonical_json=response.model_dump_json())
