"""Turn a raw model completion into a validated :class:`Palette`.

Models wrap their JSON in markdown fences, prepend chatter ("Sure! Here is
your palette...") and different backends return different payload shapes.
The pipeline below is deterministic:

1. extract text from the payload (``str``, ``{"response": ...}``,
   ``{"text": ...}``, or anything else serialized as a last resort)
2. strip code fences
3. isolate the ``{...}`` span
4. decode JSON
5. check that a non-empty ``colors`` list is present
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping

from .errors import EmptyColors, EmptyModelOutput, MalformedOutput, MissingColors
from .types import Palette

logger = logging.getLogger(__name__)

# Ordered, closed set of fields known to carry completion text.
TEXT_FIELDS = ("response", "text")

DEFAULT_NAME = "Untitled Palette"

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_DECODER = json.JSONDecoder()


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def extract_text(payload: Any) -> str:
    """Return the completion text carried by ``payload``."""
    if payload is None:
        raise EmptyModelOutput("No completion payload was returned")

    if isinstance(payload, (str, bytes, bytearray)):
        text = _to_text(payload)
    else:
        text = None
        for field in TEXT_FIELDS:
            if isinstance(payload, Mapping):
                value = payload.get(field)
            else:
                value = getattr(payload, field, None)
            if value is not None:
                text = _to_text(value)
                break
        if text is None:
            if isinstance(payload, (Mapping, list, tuple)):
                text = _to_text(payload)
            else:
                text = str(payload)

    if not text.strip():
        raise EmptyModelOutput("Completion text is empty")
    return text


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def isolate_json(text: str) -> str:
    """Return the first complete JSON object starting at the first ``{``.

    Falls back to the first ``{`` .. last ``}`` span when no object decodes
    there, and to ``text`` when there are no braces at all.
    """
    start = text.find("{")
    if start == -1:
        return text
    try:
        _, end = _DECODER.raw_decode(text, start)
    except json.JSONDecodeError:
        end = text.rfind("}") + 1
        if end <= start:
            return text
    return text[start:end]


def normalize_completion(payload: Any) -> Palette:
    """Extract a :class:`Palette` from a model completion or raise a classified error."""
    text = extract_text(payload)
    candidate = isolate_json(strip_code_fences(text))

    try:
        decoded = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Model output is not valid JSON (%s); preview=%r", e, candidate[:80])
        raise MalformedOutput(candidate, details=str(e)) from e

    colors = decoded.get("colors") if isinstance(decoded, dict) else None
    if not isinstance(colors, list):
        raise MissingColors(decoded)
    if not colors:
        raise EmptyColors("Decoded model output has an empty 'colors' list")

    name = decoded.get("name")
    name = "" if name is None else str(name).strip()
    description = decoded.get("description")

    return {
        "name": name or DEFAULT_NAME,
        "colors": list(colors),
        "description": "" if description is None else str(description),
    }
