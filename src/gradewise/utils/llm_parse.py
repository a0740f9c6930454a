"""LLM output parsing utilities.

Shared helpers for recovering JSON (and a few legacy free-text shapes) from
model replies. Every failure is raised as an ``LLMResponseError`` subclass so
call sites can substitute their documented fallback.
"""

import json
import re
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from gradewise.exceptions import ExtractionError, PayloadValidationError

T = TypeVar("T")

_THINK_PAIR_RE = re.compile(r"<think>.*?</think>", re.DOTALL)
_THINK_OPEN_RE = re.compile(r"<think>.*", re.DOTALL)
_THINK_CLOSE_RE = re.compile(r"^.*?</think>", re.DOTALL)

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_LEADING_SCORE_RE = re.compile(
    r"^\s*(?:score\s*:?\s*)?\d+(?:\.\d+)?\s*(?:/\s*\d+)?\s*[.:\-]?\s*", re.IGNORECASE
)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def strip_think_tags(text: str) -> str:
    """Remove <think>...</think> tags from LLM output."""
    text = _THINK_PAIR_RE.sub("", text)
    text = _THINK_OPEN_RE.sub("", text)
    text = _THINK_CLOSE_RE.sub("", text)
    return text


def _json_candidates(text: str) -> list[str]:
    """Return first-opener..last-closer substrings, earliest opener first.

    The span runs to the *last* closer rather than a balanced match, so two
    top-level values or a stray closer after the JSON yield a corrupt
    candidate. That is reported as ``malformed-json``.
    """
    spans: list[tuple[int, int]] = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start >= 0 and end > start:
            spans.append((start, end))
    spans.sort()
    return [text[start : end + 1] for start, end in spans]


def extract_json(text: str, *, lenient: bool = False) -> Any:
    """Recover the JSON object or array embedded in *text*.

    Raises ``ExtractionError("no-json")`` when the text has no delimiters
    (unless *lenient*, which parses the whole string as a last resort) and
    ``ExtractionError("malformed-json")`` when no candidate parses.
    """
    if "<think>" in text or "</think>" in text:
        text = strip_think_tags(text)

    candidates = _json_candidates(text)
    if not candidates:
        if not lenient:
            raise ExtractionError("no-json", text)
        candidates = [text.strip()]

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ExtractionError("malformed-json", candidates[0])


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract a JSON object from LLM output."""
    value = extract_json(text)
    if not isinstance(value, dict):
        raise PayloadValidationError(f"expected JSON object, got {type(value).__name__}")
    return value


def extract_json_array(text: str) -> list[Any]:
    """Extract a JSON array from LLM output.

    The model may wrap the array in an object like ``{"items": [...]}``; a
    single list-valued field is unwrapped.
    """
    value = extract_json(text)
    if isinstance(value, dict):
        lists = [v for v in value.values() if isinstance(v, list)]
        if len(lists) == 1:
            value = lists[0]
    if not isinstance(value, list):
        raise PayloadValidationError(f"expected JSON array, got {type(value).__name__}")
    return value


def parse_payload(text: str, schema: type[T]) -> T:
    """Extract JSON from *text* and validate it against *schema*.

    *schema* is anything pydantic can adapt: a ``BaseModel`` subclass or a
    generic such as ``list[Model]``.
    """
    data = extract_json(text)
    try:
        return TypeAdapter(schema).validate_python(data)
    except ValidationError as e:
        raise PayloadValidationError(str(e)) from e


def extract_leading_score(text: str, scale: float = 10.0) -> float | None:
    """Read the first number in a free-text reply, normalized to 0-1."""
    match = _NUMBER_RE.search(text)
    if match is None:
        return None
    return min(max(float(match.group(0)) / scale, 0.0), 1.0)


def strip_leading_score(text: str) -> str:
    """Drop a leading ``7/10`` style score prefix from free-text feedback."""
    return _LEADING_SCORE_RE.sub("", text, count=1).strip()


def extract_labeled_number(text: str, label: str) -> int | None:
    """Read ``Label: 42`` style values (case-insensitive)."""
    match = re.search(rf"{re.escape(label)}\s*:\s*(\d+)", text, re.IGNORECASE)
    return int(match.group(1)) if match else None


def extract_labeled_fields(text: str) -> dict[str, Any]:
    """Fallback parser for ``feedback: ... suggestions: ... score: ...`` prose."""
    labels = ("feedback", "suggestions", "score")
    fields: dict[str, Any] = {}
    for label in labels:
        others = "|".join(other for other in labels if other != label)
        match = re.search(
            rf"{label}\s*:(.+?)(?=(?:{others})\s*:|$)", text, re.IGNORECASE | re.DOTALL
        )
        if match:
            fields[label] = match.group(1).strip()

    if "suggestions" in fields:
        parts = re.split(r"[-*•\n]", fields["suggestions"])
        fields["suggestions"] = [p.strip() for p in parts if p.strip()]
    if "score" in fields:
        number = _NUMBER_RE.search(fields["score"])
        fields["score"] = int(float(number.group(0))) if number else None
    return fields


def extract_bullet_sections(text: str, headings: list[str]) -> dict[str, list[str]]:
    """Parse ``Heading:`` blocks followed by bulleted items."""
    sections: dict[str, list[str]] = {}
    alternation = "|".join(re.escape(h) for h in headings)
    for heading in headings:
        match = re.search(
            rf"{re.escape(heading)}\s*:(.*?)(?=(?:{alternation})\s*:|$)",
            text,
            re.IGNORECASE | re.DOTALL,
        )
        items: list[str] = []
        if match:
            for line in match.group(1).splitlines():
                item = _BULLET_RE.sub("", line).strip()
                if item:
                    items.append(item)
        sections[heading] = items
    return sections
