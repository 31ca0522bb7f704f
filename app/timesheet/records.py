from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .delay import DelayRounding, coerce_minutes, compute_delay, missed_clock_in
from .names import display_name, normalize_name
from .shift_types import classify_shift_type

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc

_ID_FIELDS = ("id", "record_id", "shift_id")
_NAME_FIELDS = ("employee_name", "dipendente_nome", "employee", "full_name", "name")
_LOCATION_ID_FIELDS = ("store_id", "location_id", "location")
_LOCATION_NAME_FIELDS = ("store_name", "store_nome", "location_name")
_DATE_FIELDS = ("shift_date", "date", "data")
_SCHEDULED_START_FIELDS = ("scheduled_start", "start")
_SCHEDULED_END_FIELDS = ("scheduled_end", "end")
_START_TIME_FIELDS = ("start_time", "ora_inizio")
_END_TIME_FIELDS = ("end_time", "ora_fine")
_ACTUAL_START_FIELDS = ("actual_start", "clock_in", "timbratura_entrata")
_ACTUAL_END_FIELDS = ("actual_end", "clock_out", "timbratura_uscita")
_DELAY_FIELDS = ("delay_minutes", "minuti_di_ritardo", "minuti_ritardo_conteggiato", "minuti_ritardo")
_SHIFT_TYPE_FIELDS = ("shift_type", "tipo_turno", "type")
_CREATED_FIELDS = ("created_date", "created_at")


@dataclass(frozen=True)
class CanonicalShift:
    employee_display_name: str
    employee_key: str
    location_id: Optional[str]
    location_name: Optional[str]
    date: Optional[datetime.date]
    scheduled_start: Optional[datetime.datetime]
    scheduled_end: Optional[datetime.datetime]
    actual_start: Optional[datetime.datetime]
    actual_end: Optional[datetime.datetime]
    scheduled_minutes: int
    shift_type_raw: Optional[str]
    shift_type_category: str
    delay_minutes: int
    record_id: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    stored_delay_minutes: Optional[int] = None

    @property
    def missed_clock_in(self) -> bool:
        return missed_clock_in(self.actual_start, self.shift_type_category)

    def to_dict(self) -> Dict[str, Any]:
        def _iso(value):
            return value.isoformat() if value is not None else None

        return {
            "record_id": self.record_id,
            "employee_name": self.employee_display_name,
            "employee_key": self.employee_key,
            "location_id": self.location_id,
            "location_name": self.location_name,
            "date": _iso(self.date),
            "scheduled_start": _iso(self.scheduled_start),
            "scheduled_end": _iso(self.scheduled_end),
            "actual_start": _iso(self.actual_start),
            "actual_end": _iso(self.actual_end),
            "scheduled_minutes": self.scheduled_minutes,
            "shift_type": self.shift_type_raw,
            "category": self.shift_type_category,
            "delay_minutes": self.delay_minutes,
        }


def _first_present(raw: Mapping[str, Any], candidates: Sequence[str]) -> Any:
    for key in candidates:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _localize(value: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def parse_instant(value: Any, tz: Optional[datetime.tzinfo] = None) -> Optional[datetime.datetime]:
    """Parse an ISO timestamp (or pass through a datetime); None when unusable."""
    tz = tz or UTC
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return _localize(value, tz)
    if isinstance(value, datetime.date):
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None
    return _localize(parsed, tz)


def parse_date(value: Any) -> Optional[datetime.date]:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.date.fromisoformat(text[:10])
    except ValueError:
        logger.debug("Unparseable date %r", value)
        return None


def parse_time_of_day(value: Any) -> Optional[datetime.time]:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.time()
    if isinstance(value, datetime.time):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.time.fromisoformat(text)
    except ValueError:
        pass
    parts = text.replace(".", ":").split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
        return datetime.time(hours, minutes)
    except (ValueError, IndexError):
        logger.debug("Unparseable time of day %r", value)
        return None


def _scheduled_instant(
    raw: Mapping[str, Any],
    combined_fields: Sequence[str],
    time_fields: Sequence[str],
    day: Optional[datetime.date],
    tz: datetime.tzinfo,
) -> Optional[datetime.datetime]:
    combined = _first_present(raw, combined_fields)
    instant = parse_instant(combined, tz)
    if instant is not None:
        return instant
    time_of_day = parse_time_of_day(_first_present(raw, time_fields))
    if time_of_day is None or day is None:
        return None
    return datetime.datetime.combine(day, time_of_day).replace(tzinfo=tz)


def scheduled_minutes_between(
    start: Optional[datetime.datetime],
    end: Optional[datetime.datetime],
) -> int:
    if start is None or end is None:
        return 0
    try:
        seconds = (end - start).total_seconds()
    except TypeError:
        return 0
    return max(0, int(seconds // 60))


def adapt_record(
    raw: Mapping[str, Any],
    rounding: Optional[DelayRounding] = None,
    *,
    location_names: Optional[Mapping[str, str]] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> CanonicalShift:
    """Convert a roster-shaped or shift-shaped record into a CanonicalShift.

    Roster records carry a calendar day plus ``start_time``/``end_time`` strings;
    shift records carry combined ISO timestamps. Anything unparseable degrades to
    ``None`` and contributes zero minutes.
    """
    tz = tz or UTC
    name = _first_present(raw, _NAME_FIELDS)
    name = str(name) if name is not None else None

    day = parse_date(_first_present(raw, _DATE_FIELDS))
    scheduled_start = _scheduled_instant(raw, _SCHEDULED_START_FIELDS, _START_TIME_FIELDS, day, tz)
    if day is None and scheduled_start is not None:
        day = scheduled_start.date()
    scheduled_end = _scheduled_instant(raw, _SCHEDULED_END_FIELDS, _END_TIME_FIELDS, day, tz)
    actual_start = parse_instant(_first_present(raw, _ACTUAL_START_FIELDS), tz)
    actual_end = parse_instant(_first_present(raw, _ACTUAL_END_FIELDS), tz)

    shift_type_raw = _text(_first_present(raw, _SHIFT_TYPE_FIELDS))
    stored_delay = coerce_minutes(_first_present(raw, _DELAY_FIELDS))

    location_id = _text(_first_present(raw, _LOCATION_ID_FIELDS))
    location_name = _text(_first_present(raw, _LOCATION_NAME_FIELDS))
    if location_name is None and location_id is not None and location_names:
        location_name = location_names.get(location_id)

    return CanonicalShift(
        employee_display_name=display_name(name),
        employee_key=normalize_name(name),
        location_id=location_id,
        location_name=location_name,
        date=day,
        scheduled_start=scheduled_start,
        scheduled_end=scheduled_end,
        actual_start=actual_start,
        actual_end=actual_end,
        scheduled_minutes=scheduled_minutes_between(scheduled_start, scheduled_end),
        shift_type_raw=shift_type_raw,
        shift_type_category=classify_shift_type(shift_type_raw),
        delay_minutes=compute_delay(scheduled_start, actual_start, stored_delay, rounding),
        record_id=_text(_first_present(raw, _ID_FIELDS)),
        created_at=parse_instant(_first_present(raw, _CREATED_FIELDS), tz),
        stored_delay_minutes=stored_delay,
    )


def adapt_records(
    raws: Iterable[Mapping[str, Any]],
    rounding: Optional[DelayRounding] = None,
    *,
    location_names: Optional[Mapping[str, str]] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> List[CanonicalShift]:
    return [
        adapt_record(raw, rounding, location_names=location_names, tz=tz)
        for raw in raws
        if isinstance(raw, Mapping)
    ]


def _hhmm(value: Optional[datetime.datetime]) -> str:
    return value.astimezone(UTC).strftime("%H:%M") if value is not None else ""


def _duplicate_key(shift: CanonicalShift) -> Tuple[str, str, str, str, str]:
    return (
        shift.employee_key,
        shift.location_id or "",
        shift.date.isoformat() if shift.date else "",
        _hhmm(shift.scheduled_start),
        _hhmm(shift.scheduled_end),
    )


def deduplicate_shifts(shifts: Iterable[CanonicalShift]) -> List[CanonicalShift]:
    """Drop repeated imports of the same shift, keeping the earliest-created copy.

    Output keeps the position of the first occurrence of each shift.
    """
    order: List[Tuple[str, str, str, str, str]] = []
    kept: Dict[Tuple[str, str, str, str, str], CanonicalShift] = {}
    for shift in shifts:
        key = _duplicate_key(shift)
        existing = kept.get(key)
        if existing is None:
            order.append(key)
            kept[key] = shift
            continue
        if shift.created_at is None or existing.created_at is None:
            continue
        try:
            if shift.created_at < existing.created_at:
                kept[key] = shift
        except TypeError:
            continue
    return [kept[key] for key in order]
