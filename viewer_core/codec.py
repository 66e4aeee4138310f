"""
Tolerant JSON decoding for server payloads.

The results endpoint can emit bare Infinity / -Infinity / NaN tokens.
They are decoded to the NON_FINITE marker so a field-level decoder can
turn them into "unavailable" instead of letting a float NaN leak out.
"""

import json
import math
from datetime import datetime, timezone

from .errors import DecodeFailure


class _NonFinite:
    __slots__ = ()

    def __repr__(self):
        return "NON_FINITE"


NON_FINITE = _NonFinite()

_NON_FINITE_STRINGS = frozenset({"infinity", "-infinity", "+infinity", "inf", "-inf", "nan"})


def _parse_float(text):
    value = float(text)
    if not math.isfinite(value):      # e.g. 1e999
        return NON_FINITE
    return value


def loads(text):
    """json.loads that maps non-finite numbers to NON_FINITE. Raises DecodeFailure."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    try:
        return json.loads(
            text,
            parse_constant=lambda _token: NON_FINITE,
            parse_float=_parse_float,
        )
    except (ValueError, TypeError) as e:
        raise DecodeFailure(f"Malformed JSON: {e}") from e


def decode_object(text, what):
    """Decode a JSON body that must be an object."""
    data = loads(text)
    if not isinstance(data, dict):
        raise DecodeFailure(f"{what} response is not a JSON object")
    return data


def pick(data, *keys, default=None):
    """First present key; lets snake_case and camelCase payloads share a decoder."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def finite_or_none(value, field):
    """Float for a finite number, None for NON_FINITE or a non-finite string."""
    if value is None or value is NON_FINITE:
        return None
    if isinstance(value, str):
        if value.strip().lower() in _NON_FINITE_STRINGS:
            return None
        try:
            value = float(value)
        except ValueError:
            raise DecodeFailure(f"{field} is not a number: {value!r}")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeFailure(f"{field} is not a number: {value!r}")
    value = float(value)
    return value if math.isfinite(value) else None


def parse_timestamp(value, field="timestamp"):
    """ISO-8601 string (or epoch seconds) to an aware UTC datetime."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        raise DecodeFailure(f"{field} missing or not a string")
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 0, 3 or 6 fractional digits
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for i, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[i:]
                break
            digits += ch
        text = f"{head}.{(digits + '000000')[:6]}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise DecodeFailure(f"{field} is not ISO-8601: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value):
    """Inverse of parse_timestamp for persisted state."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
