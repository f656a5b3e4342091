"""
Response Parser Module

Turns free-form model text into a TurnResponse. Models wrap their JSON in
prose, leave trailing commas, use single quotes or bare keys, and sometimes
truncate mid-object, so decoding walks a repair ladder and only gives up when
the text contains no object at all.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import logging
import re

from shapes import DrawingPrimitive, validate_primitives

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_BARE_WORD = re.compile(r"[^\W\d]\w*")
_SHAPE_OBJECT = re.compile(r"\{[^{}]*\}")
_ESCAPES = {'"': '"', "\\": "\\", "/": "/", "n": "\n", "r": "\r", "t": "\t"}


class ParseError(ValueError):
    """Raised when model output contains no JSON-like object at all."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


@dataclass
class TurnResponse:
    """One parsed model reply."""
    shapes: List[Any] = field(default_factory=list)
    intent: str = ""
    notes: Optional[str] = None
    hypothesis: str = ""
    next_test: str = ""
    decode_path: str = "direct"

    @property
    def primitives(self) -> List[DrawingPrimitive]:
        """Shapes that pass validation, in their original order."""
        return validate_primitives(self.shapes)

    def to_dict(self) -> Dict:
        """Convert to the model-facing JSON shape."""
        data = {
            "shapes": [
                s.to_dict() if hasattr(s, "to_dict") else s
                for s in self.shapes
            ],
            "intent": self.intent,
            "hypothesis": self.hypothesis,
            "next_test": self.next_test
        }
        if self.notes is not None:
            data["notes"] = self.notes
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def _text_field(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _from_mapping(data: Dict, decode_path: str) -> TurnResponse:
    shapes = data.get("shapes")
    notes = data.get("notes")
    return TurnResponse(
        shapes=list(shapes) if isinstance(shapes, list) else [],
        intent=_text_field(data.get("intent", data.get("rationale"))),
        notes=None if notes is None else _text_field(notes),
        hypothesis=_text_field(data.get("hypothesis")),
        next_test=_text_field(data.get("next_test")),
        decode_path=decode_path
    )


def _locate_object(text: str) -> Optional[str]:
    """Return the span from the first '{' to the last '}' (or to the end if unclosed)."""
    start = text.find("{")
    if start < 0:
        return None
    end = text.rfind("}")
    if end < start:
        return text[start:]
    return text[start:end + 1]


def _strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede `}` or `]` outside double-quoted strings."""
    out = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            out.append(text[i:j + 1])
            i = j + 1
            continue
        if ch == ",":
            k = i + 1
            while k < n and text[k].isspace():
                k += 1
            if k < n and text[k] in "}]":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _normalize_quotes(text: str) -> str:
    """
    Rewrite JavaScript-style object text as JSON.

    Single-quoted strings become double-quoted and bare identifier keys are
    quoted. Double-quoted strings pass through untouched, so apostrophes and
    colons inside them are safe.
    """
    out = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            out.append(text[i:j + 1])
            i = j + 1
        elif ch == "'":
            j = i + 1
            chars = []
            while j < n and text[j] != "'":
                if text[j] == "\\" and j + 1 < n:
                    chars.append("'" if text[j + 1] == "'" else text[j:j + 2])
                    j += 2
                    continue
                chars.append('\\"' if text[j] == '"' else text[j])
                j += 1
            out.append('"' + "".join(chars) + '"')
            i = j + 1
        elif ch.isalpha() or ch == "_":
            match = _BARE_WORD.match(text, i)
            if match is None:
                out.append(ch)
                i += 1
                continue
            word = match.group(0)
            k = i + len(word)
            while k < n and text[k].isspace():
                k += 1
            out.append(f'"{word}"' if k < n and text[k] == ":" else word)
            i += len(word)
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _loads(text: str) -> Any:
    return json.loads(text, strict=False)


def _decode_repaired(span: str) -> Optional[Any]:
    stripped = _CONTROL_CHARS.sub("", span)
    candidates = (
        _strip_trailing_commas(stripped),
        _strip_trailing_commas(_normalize_quotes(stripped))
    )
    for candidate in candidates:
        try:
            return _loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"', strict=False)
    except json.JSONDecodeError:
        return re.sub(r'\\(["\\/nrt])', lambda m: _ESCAPES[m.group(1)], value)


def _string_field(text: str, *keys: str) -> Optional[str]:
    for key in keys:
        match = re.search(
            rf'["\']?{key}["\']?\s*:\s*"((?:[^"\\]|\\.)*)"',
            text
        )
        if match:
            return _unescape(match.group(1))
    return None


def _shapes_field(text: str) -> List[Any]:
    start = re.search(r'["\']?shapes["\']?\s*:\s*\[', text)
    if not start:
        return []

    tail = text[start.end() - 1:]
    closed = re.match(r"\[[\s\S]*?\](?=\s*[,}]|\s*$)", tail)
    array_text = closed.group(0) if closed else tail

    decoded = _decode_repaired(array_text)
    if isinstance(decoded, list):
        return decoded

    shapes = []
    for candidate in _SHAPE_OBJECT.findall(array_text):
        item = _decode_repaired(candidate)
        if isinstance(item, dict):
            shapes.append(item)
    logger.debug(f"Recovered {len(shapes)} shape objects individually")
    return shapes


def _extract_fields(span: str) -> TurnResponse:
    return TurnResponse(
        shapes=_shapes_field(span),
        intent=_string_field(span, "intent", "rationale") or "",
        notes=_string_field(span, "notes"),
        hypothesis=_string_field(span, "hypothesis") or "",
        next_test=_string_field(span, "next_test") or "",
        decode_path="fields"
    )


def parse(raw_text: str) -> TurnResponse:
    """
    Parse model output into a TurnResponse.

    Tries, in order: a strict decode of the first object span; a decode after
    stripping control characters and trailing commas (then also normalizing
    quotes); and finally field-by-field regex extraction.

    Args:
        raw_text: Text returned by the provider

    Returns:
        Parsed TurnResponse (possibly with no shapes)

    Raises:
        ParseError: If the text contains no '{' at all
    """
    text = raw_text or ""
    span = _locate_object(text)
    if span is None:
        raise ParseError(f"No JSON object in response: {text[:100]!r}", raw_text=text)

    try:
        decoded = json.loads(span)
        if isinstance(decoded, dict):
            return _from_mapping(decoded, "direct")
    except json.JSONDecodeError as e:
        logger.debug(f"Strict decode failed: {e}")

    decoded = _decode_repaired(span)
    if isinstance(decoded, dict):
        logger.info("Parsed response after cleanup")
        return _from_mapping(decoded, "cleaned")

    # Fields may follow the last closing brace when the reply was cut off
    response = _extract_fields(text[text.find("{"):])
    logger.warning(
        f"Falling back to field extraction: {len(response.shapes)} shapes, "
        f"notes {'found' if response.notes is not None else 'missing'}"
    )
    return response
