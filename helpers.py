"""
Shared helpers used by the client core and the API blueprints.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any

from errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return utcnow().isoformat(timespec="milliseconds")


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_iso(value: str) -> datetime:
    """Parse ISO-8601 (a trailing 'Z' is accepted); naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def iso_after(start_iso: str, milliseconds: int) -> str:
    return to_iso(parse_iso(start_iso) + timedelta(milliseconds=milliseconds))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (11.5 -> 12)."""
    return int(math.floor(value + 0.5))


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(100 * part / whole)


def int_arg(args: Any, name: str, default: int | None = None, *,
            minimum: int | None = None, maximum: int | None = None,
            clamp: bool = False) -> int | None:
    """Read an integer query argument.

    Out-of-range values are clamped when clamp=True, otherwise rejected.
    Non-numeric values are always rejected with ValidationError.
    """
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be an integer")
    if minimum is not None and value < minimum:
        if not clamp:
            raise ValidationError(f"'{name}' must be >= {minimum}")
        value = minimum
    if maximum is not None and value > maximum:
        if not clamp:
            raise ValidationError(f"'{name}' must be <= {maximum}")
        value = maximum
    return value
