"""Recovering JSON from model output that may be fenced or cut off mid-way.

Model responses are capped by an output token limit, so a long array can stop
in the middle of an element. :func:`repair_truncated_array` keeps every element
that was fully closed before the cut and drops the partial tail.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Optional

from .errors import MalformedResponseError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fence(text: str) -> str:
    text = (text or "").strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def _scan_array(text: str, start: int) -> tuple[Optional[int], Optional[int]]:
    """Scan the array whose ``[`` sits at ``start``.

    Returns ``(close_index, last_element_end)``: the index of the matching
    ``]`` if the array is closed, and the index of the last character of the
    last fully closed element otherwise.
    """
    depth = 0
    in_string = False
    escaped = False
    last_end: Optional[int] = None
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                if depth == 1:
                    last_end = i
            continue
        if ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return i, last_end
            if depth == 1:
                last_end = i
    return None, last_end


def repair_truncated_array(text: str) -> str:
    trimmed = (text or "").strip()
    if trimmed.startswith("{"):
        # Bare objects without the enclosing bracket
        trimmed = "[" + trimmed
    start = trimmed.find("[")
    if start == -1:
        return "[]"
    close, last_end = _scan_array(trimmed, start)
    if close is not None:
        if start == 0 and close == len(trimmed) - 1:
            return trimmed
        return trimmed[start : close + 1]
    if last_end is None:
        return "[]"
    body = trimmed[start + 1 : last_end + 1].strip().rstrip(",")
    return "[" + body + "]"


def parse_array(text: str) -> List[Any]:
    """Parse a possibly fenced, possibly truncated JSON array. Never raises."""
    repaired = repair_truncated_array(strip_code_fence(text))
    try:
        data = json.loads(repaired)
    except json.JSONDecodeError as exc:
        logger.warning("JSON parse failed after repair, treating chunk as empty: %s", exc)
        return []
    if not isinstance(data, list):
        return []
    return data


def extract_json_object(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except (TypeError, json.JSONDecodeError):
        pass
    code_block = re.search(r"```json\s*([\s\S]*?)\s*```", text or "")
    if code_block:
        try:
            data = json.loads(code_block.group(1))
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass
    first = (text or "").find("{")
    last = (text or "").rfind("}")
    if first != -1 and last != -1 and last > first:
        try:
            data = json.loads(text[first : last + 1])
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass
    raise MalformedResponseError("Model did not return a valid JSON object")
