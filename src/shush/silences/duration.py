"""Parse user-supplied silence TTLs such as ``2h``, ``1d12h``, ``90`` or ``none``."""

from __future__ import annotations

import re
from datetime import timedelta

from shush.core.errors import ValidationError

INDEFINITE = "none"

_COMPONENT = re.compile(r"(?P<num>\d+)(?P<unit>[dhms]?)")
_UNIT_SECONDS = {"d": 86400, "h": 3600, "m": 60, "s": 1, "": 1}


def parse_ttl(text: str) -> timedelta | None:
    """Return the TTL described by ``text``; ``None`` means never expire.

    Components are summed, so ``1h30m`` is ninety minutes. A bare number is
    seconds.
    """
    value = text.strip().lower()
    if value == INDEFINITE:
        return None
    if not value:
        raise ValidationError("Empty silence TTL")

    seconds = 0
    position = 0
    for match in _COMPONENT.finditer(value):
        if match.start() != position:
            break
        seconds += int(match.group("num")) * _UNIT_SECONDS[match.group("unit")]
        position = match.end()
    if position != len(value):
        raise ValidationError(
            f"Unrecognised silence TTL {text!r}; expected e.g. 2h, 1d12h, 90s or 'none'",
            details={"ttl": text},
        )
    return timedelta(seconds=seconds)


def format_ttl(ttl: timedelta | None) -> str:
    if ttl is None:
        return INDEFINITE
    remaining = int(ttl.total_seconds())
    parts = []
    for unit in ("d", "h", "m", "s"):
        size = _UNIT_SECONDS[unit]
        if remaining >= size:
            parts.append(f"{remaining // size}{unit}")
            remaining %= size
    return "".join(parts) or "0s"
