from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .aggregator import ALL_SHIFTS, ReportFilter
from .names import normalize_name
from .records import CanonicalShift
from .shift_types import UNPAID_ABSENCE


CLASSIFIED_ABSENCE = "ClassifiedAbsence"
LATE_ARRIVAL = "LateArrival"


@dataclass(frozen=True)
class UnpaidEntry:
    shift: CanonicalShift
    reason: str
    minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "minutes": self.minutes,
            "shift": self.shift.to_dict(),
        }


@dataclass(frozen=True)
class UnpaidAbsenceDetail:
    employee_key: str
    entries: List[UnpaidEntry]
    total_minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employee_key": self.employee_key,
            "entries": [entry.to_dict() for entry in self.entries],
            "total_minutes": self.total_minutes,
        }


def resolve_unpaid_absence(
    shifts: Iterable[CanonicalShift],
    employee_key: str,
    report_filter: Optional[ReportFilter] = None,
) -> UnpaidAbsenceDetail:
    """Explain every unpaid minute of one employee, shift by shift.

    A shift classified as an unpaid absence that also carries a delay yields two
    entries, one per cause.
    """
    key = normalize_name(employee_key)
    report_filter = report_filter or ALL_SHIFTS
    entries: List[UnpaidEntry] = []
    for shift in shifts:
        if normalize_name(shift.employee_key) != key or not report_filter.matches(shift):
            continue
        if shift.shift_type_category == UNPAID_ABSENCE:
            entries.append(UnpaidEntry(shift=shift, reason=CLASSIFIED_ABSENCE, minutes=max(0, shift.scheduled_minutes)))
        if shift.delay_minutes > 0:
            entries.append(UnpaidEntry(shift=shift, reason=LATE_ARRIVAL, minutes=shift.delay_minutes))
    # two stable passes: dated entries newest first, undated ones at the end
    entries.sort(key=lambda entry: entry.shift.date or datetime.date.min, reverse=True)
    entries.sort(key=lambda entry: entry.shift.date is None)
    return UnpaidAbsenceDetail(
        employee_key=key,
        entries=entries,
        total_minutes=sum(entry.minutes for entry in entries),
    )
