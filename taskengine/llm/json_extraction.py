import json
import re
from typing import Any, Optional

from taskengine.errors import JSONExtractionError

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def find_json_span(text: str) -> Optional[str]:
    """Return the first balanced {...} or [...] span, skipping brackets inside strings.

    An opener that is never closed yields everything from it to the end of the
    text, so a truncated response can still go through repair.
    """
    start = None
    for i, ch in enumerate(text):
        if ch in "{[":
            start = i
            break
    if start is None:
        return None

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
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def repair_json(malformed: str) -> str:
    """Best-effort fixes for the usual model slips. Applied once, after a failed parse."""
    repaired = malformed
    repaired = re.sub(r"/\*[\s\S]*?\*/", "", repaired)
    repaired = re.sub(r"(^|\s)//.*$", r"\1", repaired, flags=re.MULTILINE)
    repaired = re.sub(r",(\s*[}\]])", r"\1", repaired)
    repaired = re.sub(r"([{,]\s*)(\w+)(\s*:)", r'\1"\2"\3', repaired)
    repaired = repaired.replace("'", '"')

    open_braces, close_braces = repaired.count("{"), repaired.count("}")
    open_brackets, close_brackets = repaired.count("["), repaired.count("]")
    if open_brackets > close_brackets:
        repaired += "]" * (open_brackets - close_brackets)
    if open_braces > close_braces:
        repaired += "}" * (open_braces - close_braces)
    return repaired


def extract_json(text: str) -> Any:
    cleaned = strip_code_fences(text)
    candidate = find_json_span(cleaned) or cleaned
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as first_error:
        try:
            return json.loads(repair_json(candidate))
        except json.JSONDecodeError:
            raise JSONExtractionError(str(first_error)) from first_error
