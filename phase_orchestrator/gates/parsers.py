from __future__ import annotations

import json
import re
from typing import Any, Iterable, Iterator

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.DOTALL | re.IGNORECASE)
_JSON_START_RE = re.compile(r"[\[{]")


def _unfenced(text: str) -> str:
    blocks = _FENCE_RE.findall(text)
    return "\n".join(blocks) if blocks else text


def _candidates(raw_text: str) -> Iterator[str]:
    yield raw_text
    body = _unfenced(raw_text)
    yield body
    for match in _JSON_START_RE.finditer(body):
        yield body[match.start():]


def _snippet(raw_text: str, limit: int = 200) -> str:
    flat = raw_text.strip().replace("\n", " ")
    return (flat[:limit] + "...") if len(flat) > limit else flat


def extract_json(raw_text: str) -> Any:
    """Pull the first JSON document out of a model response.

    Accepts bare JSON, fenced ```json blocks and JSON trailing some prose.
    Raises ValueError when nothing parses.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Response was empty; expected JSON.")

    for candidate in _candidates(raw_text):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    # Trailing prose after a complete document.
    decoder = json.JSONDecoder()
    for candidate in _candidates(raw_text):
        try:
            parsed, _ = decoder.raw_decode(candidate.lstrip())
            return parsed
        except json.JSONDecodeError:
            continue

    raise ValueError(f"No JSON object found in response. Snippet: {_snippet(raw_text)}")


def extract_json_object(raw_text: str, expected_keys: Iterable[str] = ()) -> dict:
    """Like extract_json, but insists on an object carrying expected_keys.

    A single-key wrapper such as {"result": {...}} is unwrapped when the inner
    object is the one holding the expected keys.
    """
    expected = set(expected_keys)
    parsed = extract_json(raw_text)
    if not isinstance(parsed, dict):
        raise ValueError(
            f"Expected a JSON object, got {type(parsed).__name__}. Snippet: {_snippet(raw_text)}"
        )
    if expected and not expected.issubset(parsed.keys()) and len(parsed) == 1:
        inner = next(iter(parsed.values()))
        if isinstance(inner, dict) and expected.issubset(inner.keys()):
            parsed = inner
    missing = expected.difference(parsed.keys())
    if missing:
        raise ValueError(f"JSON object missing keys: {', '.join(sorted(missing))}")
    return parsed
