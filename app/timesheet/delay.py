"""Tardiness computation shared by payroll reports, drill-downs and batch repair."""

from __future__ import annotations

import datetime
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .shift_types import is_absence_category


DEFAULT_ROUND_TO_MINUTES = 15
ROUNDING_DIRECTIONS = ("ceiling", "floor")


@dataclass(frozen=True)
class DelayRounding:
    round_to_minutes: int = DEFAULT_ROUND_TO_MINUTES
    direction: str = "ceiling"
    grace_minutes: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.round_to_minutes, bool) or not isinstance(self.round_to_minutes, int):
            raise ValueError("round_to_minutes must be an integer.")
        if self.round_to_minutes <= 0:
            raise ValueError("round_to_minutes must be greater than zero.")
        if self.direction not in ROUNDING_DIRECTIONS:
            raise ValueError(f"direction must be one of {', '.join(ROUNDING_DIRECTIONS)}.")
        if isinstance(self.grace_minutes, bool) or not isinstance(self.grace_minutes, int):
            raise ValueError("grace_minutes must be an integer.")
        if self.grace_minutes < 0:
            raise ValueError("grace_minutes cannot be negative.")

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "DelayRounding":
        """Build a rounding config from camelCase or snake_case keys; missing keys default."""
        if payload is None:
            return cls()
        if isinstance(payload, DelayRounding):
            return payload
        round_to = payload.get("roundToMinutes", payload.get("round_to_minutes", DEFAULT_ROUND_TO_MINUTES))
        direction = payload.get("direction") or "ceiling"
        grace = payload.get("graceMinutes", payload.get("grace_minutes", 0))
        try:
            round_to = int(round_to)
            grace = int(grace or 0)
        except (TypeError, ValueError) as exc:
            raise ValueError("Delay rounding values must be integers.") from exc
        return cls(round_to_minutes=round_to, direction=str(direction).strip().lower(), grace_minutes=grace)

    def to_dict(self) -> dict:
        return {
            "round_to_minutes": self.round_to_minutes,
            "direction": self.direction,
            "grace_minutes": self.grace_minutes,
        }


DEFAULT_ROUNDING = DelayRounding()


def coerce_minutes(value: Any) -> Optional[int]:
    """Return an integer minute count from a stored value, or None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def raw_lateness(
    scheduled_start: Optional[datetime.datetime],
    actual_start: Optional[datetime.datetime],
) -> Optional[int]:
    """Whole minutes between scheduled and actual start, floored; None if either is missing."""
    if scheduled_start is None or actual_start is None:
        return None
    try:
        delta = actual_start - scheduled_start
    except TypeError:
        # naive vs aware; the record adapter localizes both, so only foreign callers land here
        return None
    return math.floor(delta.total_seconds() / 60)


def round_delay(minutes: int, rounding: DelayRounding = DEFAULT_ROUNDING) -> int:
    if minutes <= 0:
        return 0
    increment = rounding.round_to_minutes
    if rounding.direction == "floor":
        return (minutes // increment) * increment
    return -(-minutes // increment) * increment


def compute_delay(
    scheduled_start: Optional[datetime.datetime],
    actual_start: Optional[datetime.datetime],
    precomputed_delay: Any = None,
    rounding: Optional[DelayRounding] = None,
) -> int:
    """Return counted tardiness in minutes (always >= 0).

    A positive precomputed value wins over the timestamps: upstream tools may
    have corrected it by hand.
    """
    rounding = rounding or DEFAULT_ROUNDING
    stored = coerce_minutes(precomputed_delay)
    if stored is not None and stored > 0:
        return stored
    raw = raw_lateness(scheduled_start, actual_start)
    if raw is None or raw <= rounding.grace_minutes:
        return 0
    return round_delay(raw - rounding.grace_minutes, rounding)


def is_late(
    scheduled_start: Optional[datetime.datetime],
    actual_start: Optional[datetime.datetime],
) -> bool:
    raw = raw_lateness(scheduled_start, actual_start)
    return raw is not None and raw > 0


def missed_clock_in(actual_start: Optional[datetime.datetime], category: Optional[str]) -> bool:
    """A worked shift with no clock-in; absences are never expected to punch."""
    return actual_start is None and not is_absence_category(category)
