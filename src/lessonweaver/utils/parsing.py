"""Parsing helpers for raw model output.

Models are told to return bare JSON or bare source, and sometimes wrap it in markdown fences or
add a sentence of prose anyway. These helpers recover the payload or return ``None``.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from lessonweaver.logging import get_logger

logger = get_logger(__name__)

_OPEN_FENCE = re.compile(r"^```(?:tsx|typescript|ts|javascript|js|jsx|json)?[ \t]*\n?", re.IGNORECASE)
_CLOSE_FENCE = re.compile(r"\n?[ \t]*```\s*$")
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


def strip_markdown_fences(text: str) -> str:
    """Remove one leading and one trailing markdown fence, if present."""

    cleaned = text.strip()
    cleaned = _OPEN_FENCE.sub("", cleaned, count=1)
    cleaned = _CLOSE_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span, skipping braces inside JSON strings."""

    start = text.find("{")
    while start != -1:
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
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Extract a JSON object from model output.

    Strategies, strictest first:
        1. The content of a fenced code block.
        2. The whole text.
        3. The first balanced ``{...}`` span in the text.
    """

    if not text:
        return None

    cleaned = text.strip()

    m = _FENCED_BLOCK.search(cleaned)
    if m:
        inner = m.group(1).strip()
        if inner.startswith("{") and inner.endswith("}"):
            try:
                obj = json.loads(inner)
                if isinstance(obj, dict):
                    return obj
            except json.JSONDecodeError:
                logger.debug("extract_json_object: fenced JSON parse failed")

    if cleaned.startswith("{") and cleaned.endswith("}"):
        try:
            obj = json.loads(cleaned)
            if isinstance(obj, dict):
                return obj
        except json.JSONDecodeError:
            logger.debug("extract_json_object: whole-text JSON parse failed")

    candidate = _first_balanced_object(cleaned)
    if candidate is not None:
        try:
            obj = json.loads(candidate)
            if isinstance(obj, dict):
                return obj
        except json.JSONDecodeError:
            logger.debug("extract_json_object: embedded JSON parse failed")

    return None


def preview(text: str, limit: int = 200) -> str:
    """Shorten text for logs and error metadata."""

    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
