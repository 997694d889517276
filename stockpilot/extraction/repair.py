"""Best-effort recovery of malformed JSON returned by a text-generation model.

Each stage is a plain ``str -> str`` function. :func:`repair` applies them
cumulatively, trial-parsing after every stage, and the first stage whose
output parses as a JSON object wins. When no structural fix works, known
fields are salvaged with regexes, and as a last resort a zero-value object
is returned. :func:`repair` never raises.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

FALLBACK_OBJECT: dict = {
    "vendor": "Unknown Vendor",
    "totalAmount": 0,
    "items": [],
    "confidence": 0.1,
}

SALVAGE_CONFIDENCE = 0.5

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)
_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?```", re.DOTALL)
_UNTERMINATED_RE = re.compile(r'"\s*:\s*"[^"]*$')
_OPEN_SINGLE_RE = re.compile(r"(?<=[{\[,:])(\s*)'")
_CLOSE_SINGLE_RE = re.compile(r"'(\s*)(?=[:,}\]])")
_TRAILING_COMMA_RE = re.compile(r",(\s*[\]}])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)(\s*):")
_BARE_VALUE_RE = re.compile(r":([A-Za-z][\w\-]*)(?=[,}\]])")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")

_STRING_FIELDS = ("vendor", "name", "invoiceNumber", "date", "description")
_NUMBER_FIELDS = ("totalAmount", "amount", "taxAmount")


@dataclass(frozen=True)
class RepairOutcome:
    text: str
    stage: str

    @property
    def is_fallback(self) -> bool:
        """True when nothing in the input could be recovered."""
        return self.stage == "fallback"


def _reject_constant(name: str) -> float:
    raise ValueError(f"{name} is not valid JSON")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"{text} is out of range")
    return value


def _try_parse(text: str) -> dict | None:
    try:
        parsed = json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
    except (ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _dump(obj: dict) -> str:
    return json.dumps(obj, allow_nan=False)


# -- structural stages -------------------------------------------------------


def strip_wrappers(text: str) -> str:
    """Drop <think> blocks and markdown code fences around the payload."""
    cleaned = _THINK_RE.sub("", text).strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def extract_object_span(text: str) -> str:
    """Keep the first ``{`` through the last ``}``, discarding prose."""
    start = text.find("{")
    if start == -1:
        return text
    end = text.rfind("}")
    if end < start:
        # Truncated output; keep the tail so later stages can close it
        return text[start:]
    return text[start:end + 1]


def close_unterminated_string(text: str) -> str:
    """Terminate a string value cut off at the end of the text."""
    if _UNTERMINATED_RE.search(text):
        return text + '"'
    return text


def normalize_quotes(text: str) -> str:
    """Turn single-quote string delimiters into double quotes.

    Only quotes next to JSON punctuation are treated as delimiters, so
    apostrophes inside words ("Macy's") survive.
    """
    text = _OPEN_SINGLE_RE.sub(r'\1"', text)
    return _CLOSE_SINGLE_RE.sub(r'"\1', text)


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def quote_bare_keys(text: str) -> str:
    """``{vendor: ...}`` → ``{"vendor": ...}``."""
    return _BARE_KEY_RE.sub(r'\1"\2"\3:', text)


def quote_bare_values(text: str) -> str:
    """Quote unquoted word values in compacted JSON (``:Acme,`` → ``:"Acme",``)."""

    def _quote(m: re.Match) -> str:
        word = m.group(1)
        if word in ("true", "false", "null"):
            return m.group(0)
        return f':"{word}"'

    return _BARE_VALUE_RE.sub(_quote, text)


def compact(text: str) -> str:
    """Remove whitespace and control characters outside string literals.

    Control characters inside strings are dropped (whitespace ones become a
    space). An unterminated trailing string is closed and unbalanced
    brackets are closed in nesting order.
    """
    out: list[str] = []
    stack: list[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
                out.append(ch)
            elif ch == "\\":
                escaped = True
                out.append(ch)
            elif ch == '"':
                in_string = False
                out.append(ch)
            elif ch in "\n\r\t":
                out.append(" ")
            elif not _CONTROL_RE.match(ch):
                out.append(ch)
            continue

        if ch.isspace() or _CONTROL_RE.match(ch):
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]":
            if stack and stack[-1] == ch:
                stack.pop()
            else:
                # Stray closer with no matching opener
                continue
        out.append(ch)

    if in_string:
        if escaped:
            out.pop()
        out.append('"')

    result = "".join(out).rstrip(",:")
    return result + "".join(reversed(stack))


def aggressive_repair(text: str) -> str:
    """Second, more destructive pass for badly malformed output."""
    text = compact(text)
    text = strip_trailing_commas(text)
    text = quote_bare_keys(text)
    text = quote_bare_values(text)
    return strip_trailing_commas(text)


STAGES: list[tuple[str, Callable[[str], str]]] = [
    ("span", extract_object_span),
    ("unterminated", close_unterminated_string),
    ("quotes", normalize_quotes),
    ("commas", strip_trailing_commas),
    ("keys", quote_bare_keys),
    ("aggressive", aggressive_repair),
]


# -- salvage -----------------------------------------------------------------


def salvage_known_fields(text: str) -> dict | None:
    """Regex-extract well-known fields into a minimal object.

    Returns None when none of the fields can be found.
    """
    found: dict = {}
    for key in _STRING_FIELDS:
        m = re.search(
            rf"(?<!\w)[\"']?{key}[\"']?\s*:\s*[\"']([^\"'\n]+)[\"']?", text
        )
        if m and m.group(1).strip():
            found[key] = m.group(1).strip()
    for key in _NUMBER_FIELDS:
        m = re.search(
            rf"(?<!\w)[\"']?{key}[\"']?\s*:\s*[\"']?[^\d\-\"',}}]?(\d[\d,]*(?:\.\d+)?)", text
        )
        if m:
            value = float(m.group(1).replace(",", ""))
            if math.isfinite(value):
                found[key] = value
    if not found:
        return None
    found["confidence"] = SALVAGE_CONFIDENCE
    return found


# -- entry points ------------------------------------------------------------


def repair_with_stage(text: str | None) -> RepairOutcome:
    """Repair model output and report which stage produced the result."""
    if not text or not text.strip():
        logger.warning("Empty model response, using zero-value object")
        return RepairOutcome(_dump(FALLBACK_OBJECT), "fallback")

    candidate = strip_wrappers(text)
    parsed = _try_parse(candidate)
    if parsed is not None:
        return RepairOutcome(_dump(parsed), "direct")

    for name, stage in STAGES:
        candidate = stage(candidate)
        parsed = _try_parse(candidate)
        if parsed is not None:
            logger.info("Model JSON repaired at stage %r", name)
            return RepairOutcome(_dump(parsed), name)

    logger.warning("Structural JSON repair failed, salvaging known fields")
    salvaged = salvage_known_fields(text)
    if salvaged is not None:
        return RepairOutcome(_dump(salvaged), "salvage")

    logger.error("All JSON repair attempts failed, using zero-value object")
    return RepairOutcome(_dump(FALLBACK_OBJECT), "fallback")


def repair(text: str | None) -> str:
    """Return valid JSON text for any input. Never raises."""
    return repair_with_stage(text).text
