"""Two-phase parsing of oracle output.

Phase one tolerantly locates a single JSON object in the raw text (a fenced
block or a balanced ``{...}`` span surrounded by prose). Phase two validates
that object strictly against the stage's pydantic model. Anything ambiguous or
mismatched raises ``OutputParseError``; nothing is coerced into a guess.
"""

from __future__ import annotations

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*(.*?)```", re.DOTALL)


class OutputParseError(ValueError):
    pass


def _balanced_objects(text: str) -> list[str]:
    objects: list[str] = []
    depth = 0
    start = -1
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
            continue
        if char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                objects.append(text[start : index + 1])
    return objects


def extract_json_payload(text: str) -> str:
    stripped = (text or "").strip()
    if not stripped:
        raise OutputParseError("Empty response")

    fenced = [block.strip() for block in _FENCE_RE.findall(stripped) if block.strip().startswith("{")]
    if len(fenced) == 1:
        return fenced[0]
    if len(fenced) > 1:
        raise OutputParseError(f"Expected one JSON payload, found {len(fenced)} fenced blocks")

    candidates = _balanced_objects(stripped)
    if not candidates:
        raise OutputParseError("No JSON object found in response")
    if len(candidates) > 1:
        raise OutputParseError(f"Expected one JSON payload, found {len(candidates)} objects")
    return candidates[0]


def _summarize(exc: ValidationError, limit: int = 5) -> str:
    parts = []
    for error in exc.errors()[:limit]:
        location = ".".join(str(item) for item in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def parse_structured(text: str, model: type[M]) -> M:
    payload = extract_json_payload(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise OutputParseError(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise OutputParseError("JSON payload is not an object")

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise OutputParseError(f"{model.__name__} schema mismatch: {_summarize(exc)}") from exc
