from __future__ import annotations

import json
import re
import unicodedata
from typing import Any, Dict, Optional

_PUNCTUATION_RE = re.compile(r"[¿?¡!;:\"()]+")
_COMMA_RE = re.compile(r"(?<!\d),|,(?!\d)")
_TRAILING_DOT_RE = re.compile(r"\.(?=\s|$)")
_WHITESPACE_RE = re.compile(r"\s+")
_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def normalize_message(text: str) -> str:
    """Purpose: Normalize a chat message the way every matcher expects it.
    Inputs/Outputs: Input is raw user text; output is lower-cased, trimmed text with
        line breaks and repeated spaces collapsed and sentence punctuation dropped.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by the pattern matcher.
    Failure Modes: Returns an empty string for falsy input.
    If Removed: Greeting, verb and quantity detection stop matching free text.
    Testing Notes: "  Hola!\\n" becomes "hola"; "2.5 kg." keeps the decimal point.
    """
    # NFC first so accented letters stay a single character.
    if not text:
        return ""
    lowered = unicodedata.normalize("NFC", str(text)).lower()
    cleaned = _PUNCTUATION_RE.sub(" ", lowered)
    cleaned = _COMMA_RE.sub(" ", cleaned)
    cleaned = _TRAILING_DOT_RE.sub(" ", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def fold_text(text: str) -> str:
    """Purpose: Strip diacritics so "cuánto" and "cuanto" compare equal.
    Inputs/Outputs: Input is any string; output is lower-cased text without accents.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata; called by the matcher and the product resolver.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Accented and unaccented spellings stop matching each other.
    Testing Notes: Word count is preserved, so tokens of normalize_message and
        fold_text output line up one to one.
    """
    # Drop combining marks only; spacing is left untouched.
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", str(text).lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped)


def strip_code_fence(text: str) -> str:
    """Return the body of the first markdown code fence, or the text unchanged."""
    if not text:
        return ""
    match = _CODE_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json_block(text: str) -> Optional[str]:
    """Slice from the first "{" to the last "}"; None when there is no such span.

    Model replies often wrap the object in prose ("Claro, acá va: {...}"), and
    nested objects such as comandoSugerido stay inside the slice.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from a model output string safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses strip_code_fence, extract_json_block and json.loads.
    Failure Modes: Returns None on JSONDecodeError, missing block or non-object JSON.
    If Removed: The sanitizer crashes on chatty or fenced model output.
    Testing Notes: Validate fenced JSON parses and malformed JSON returns None.
    """
    # Parse only the extracted JSON block to avoid non-JSON prefixes/suffixes.
    block = extract_json_block(strip_code_fence(text))
    if not block:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return data


def coerce_number(value: Any) -> Optional[float]:
    """Coerce ints, floats and numeric strings ("2", "2,5") to a number; else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        candidate = value.strip().replace(",", ".")
        try:
            number = float(candidate)
        except ValueError:
            return None
    else:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def format_quantity(value: Optional[float]) -> str:
    """Render 2.0 as "2" and 2.5 as "2.5" for user-facing messages."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
