"""Canonical serialization used for content hashing.

Canonical form: JSON with sorted keys and no insignificant whitespace,
floats rendered as fixed-decimal strings and instants as ISO-8601 UTC
with a ``Z`` suffix. The float string is the shortest decimal that
round-trips to the same IEEE-754 double, written without an exponent, so
equal values always serialize identically and any change to a value
changes its string.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from hydro_mrv.errors import SerializationError


def format_float(value: float, field: str) -> str:
    """Render a float as a fixed-decimal string, rejecting NaN and infinities."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SerializationError(field, value)
    if not math.isfinite(value):
        raise SerializationError(field, value)
    if value == 0:
        return "0.0"  # -0.0 and 0.0 hash the same
    text = format(Decimal(repr(float(value))), "f")
    return text if "." in text else text + ".0"


def format_optional_float(value: float | None, field: str) -> str | None:
    if value is None:
        return None
    return format_float(value, field)


def format_instant(value: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.ffffffZ`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_instant(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True, allow_nan=False)


def canonical_payload(reading: Any, emissions: Any, anomaly: Any) -> dict[str, Any]:
    """Build the hashed payload binding a reading to its derived figures."""
    return {
        "reading": reading.to_dict(),
        "emissions": emissions.to_dict(),
        "anomaly": anomaly.to_dict(),
    }
