"""Typed codec for the reminder schedule stored on a medication.

The catalog keeps schedules as a JSON array::

    [{"hour": 9, "minute": 0, "days": [1, 3, 5]}, ...]

with ``days`` in the canonical encoding (1=Monday .. 7=Sunday).  This module
is the only place that touches the raw text; everything else consumes
``list[ReminderTimeEntry]``.
"""

from __future__ import annotations

import json
import logging
from typing import Generic, Iterable, List, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from app.types.errors import ParseError
from app.types.schedule_contract import ReminderTimeEntry

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEDULE_ADAPTER = TypeAdapter(List[ReminderTimeEntry])


class ParseResult(Generic[T]):
    """Success value or ``ParseError``; lets callers decide how to degrade."""

    __slots__ = ("value", "error")

    def __init__(self, value: Optional[T] = None, error: Optional[ParseError] = None):
        self.value = value
        self.error = error

    @classmethod
    def success(cls, value: T) -> "ParseResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ParseError) -> "ParseResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def __repr__(self) -> str:
        return f"ParseResult(ok={self.value!r})" if self.ok else f"ParseResult(error={self.error})"


def parse_schedule(raw: Optional[str]) -> ParseResult[List[ReminderTimeEntry]]:
    if raw is None or not raw.strip():
        return ParseResult.success([])
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return ParseResult.failure(ParseError(f"schedule is not valid JSON: {exc}", raw))
    if not isinstance(data, list):
        return ParseResult.failure(ParseError("schedule must be a JSON array", raw))
    return validate_schedule(data, raw)


def validate_schedule(data: object, raw: Optional[str] = None) -> ParseResult[List[ReminderTimeEntry]]:
    """Validate already-decoded entries (dicts or ``ReminderTimeEntry``)."""
    try:
        return ParseResult.success(_SCHEDULE_ADAPTER.validate_python(data))
    except ValidationError as exc:
        return ParseResult.failure(
            ParseError(f"invalid reminder time entry: {exc.error_count()} error(s)", raw)
        )


def schedule_or_empty(raw: Optional[str]) -> List[ReminderTimeEntry]:
    """Parse, logging and degrading to an empty schedule on failure."""
    result = parse_schedule(raw)
    if not result.ok:
        _LOGGER.warning("Ignoring malformed schedule: %s", result.error)
        return []
    return result.value


def serialize_schedule(entries: Iterable[ReminderTimeEntry]) -> str:
    payload = [
        {"hour": e.hour, "minute": e.minute, "days": sorted(e.days)}
        for e in entries
    ]
    return json.dumps(payload, separators=(",", ":"))
