"""
Decoding helpers for key-value protocol records.

Every event name maps to an explicit parse function that turns the raw
``dict[str, str]`` payload into a :class:`Delta`.  Raw payloads never
travel past the parse step.

A parse function returns ``None`` when the record lacks its identity
field (the caller drops it with a warning) and raises :class:`SkipRecord`
when the record is well-formed but not relevant to the resource.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

_TRUE_VALUES = frozenset({"yes", "true", "1", "on"})


class SkipRecord(Exception):
    """Raised by a parser for a record that is valid but not ours."""


@dataclass(frozen=True, slots=True)
class Delta:
    """A decoded record.

    Attributes:
        entity_id: Identity of the entity the record describes.
        scope: Scope value the record belongs to (e.g. the conference).
        fields: Typed entity fields carried by the record, keyed by model
            field name.  Only fields present in the payload are included.
    """

    entity_id: str
    scope: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)


Parser = Callable[[Mapping[str, str]], Delta | None]


def require(payload: Mapping[str, str], key: str) -> str | None:
    """Return a non-blank value for *key*, or ``None``."""
    value = payload.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def as_int(value: str, default: int = 0) -> int:
    try:
        return int(value.strip())
    except (AttributeError, ValueError):
        return default


def as_float(value: str, default: float | None = None) -> float | None:
    try:
        return float(value.strip())
    except (AttributeError, ValueError):
        return default


def as_epoch(value: str) -> datetime | None:
    """Convert a Unix timestamp string to an aware UTC datetime."""
    seconds = as_int(value, default=0)
    if seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def as_duration(value: str) -> int:
    """Convert ``HH:MM:SS`` (or plain seconds) to seconds."""
    parts = value.strip().split(":")
    if len(parts) == 1:
        return max(0, as_int(parts[0]))
    total = 0
    for part in parts:
        total = total * 60 + as_int(part)
    return max(0, total)


def pick(
    payload: Mapping[str, str],
    mapping: Mapping[str, tuple[str, Callable[[str], Any]]],
) -> dict[str, Any]:
    """Convert the payload keys present in *mapping* into model fields.

    Args:
        payload: Raw record.
        mapping: ``{payload_key: (field_name, converter)}``.
    """
    fields: dict[str, Any] = {}
    for key, (name, convert) in mapping.items():
        if key in payload:
            fields[name] = convert(payload[key])
    return fields


def text(value: str) -> str:
    return value.strip()
