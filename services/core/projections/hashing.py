"""
Input fingerprint for projection audit correlation.

sanitize_input → stable_stringify → FNV-1a (32 bit) → 8 lowercase hex digits.

Purely structural normalization; NOT a cryptographic hash and carries no
confidentiality guarantee.
"""
import json
from datetime import datetime
from typing import Any, Dict

from clock import as_utc
from projections.types import ProjectionInput

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
_MASK_32 = 0xFFFFFFFF


def to_iso_millis(moment: datetime) -> str:
    """2026-02-01T10:00:00.000Z (UTC, millisecond precision)"""
    return as_utc(moment).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_input(input: ProjectionInput) -> Dict[str, Any]:
    """
    Reduce the input to its declared surface.

    params and any other extra fields are excluded, so the hash reflects
    only userId / sessionId / modelSetId / timeRange.
    """
    time_range = input.time_range
    return {
        "userId": input.user_id,
        "sessionId": input.session_id,
        "modelSetId": input.model_set_id,
        "timeRange": {
            "from": to_iso_millis(time_range.start),
            "to": to_iso_millis(time_range.end),
        } if time_range is not None else None,
    }


def stable_stringify(value: Any) -> str:
    """JSON with recursively sorted object keys; arrays keep their order"""
    if isinstance(value, dict):
        entries = (
            f"{_json_scalar(str(key))}:{stable_stringify(value[key])}"
            for key in sorted(value.keys(), key=str)
        )
        return "{" + ",".join(entries) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_stringify(item) for item in value) + "]"
    if isinstance(value, datetime):
        return _json_scalar(to_iso_millis(value))
    return _json_scalar(value)


def _json_scalar(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return json.dumps(value, ensure_ascii=False, allow_nan=False)


def fnv1a_32(text: str) -> int:
    """FNV-1a over the UTF-16 code units of text"""
    data = text.encode("utf-16-le", "surrogatepass")
    h = FNV_OFFSET_BASIS
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * FNV_PRIME) & _MASK_32
    return h


def stable_hash(value: Any) -> str:
    return format(fnv1a_32(stable_stringify(value)), "08x")


def fingerprint(input: ProjectionInput) -> str:
    """
    Audit correlation key for one projection input.

    timeRange bounds are truncated to milliseconds first, so ranges that
    differ only below a millisecond share a fingerprint.
    """
    return stable_hash(sanitize_input(input))
