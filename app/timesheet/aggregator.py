from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, Optional, Set, Tuple

from .names import normalize_name
from .records import CanonicalShift
from .shift_types import NORMAL_SHIFT, UNPAID_ABSENCE


GRANULARITIES = ("record", "day", "week", "period")


@dataclass(frozen=True)
class ReportFilter:
    location_id: Optional[str] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    employee_key: Optional[str] = None

    def matches(self, shift: CanonicalShift) -> bool:
        if self.location_id is not None and shift.location_id != str(self.location_id):
            return False
        if self.employee_key is not None and normalize_name(shift.employee_key) != normalize_name(self.employee_key):
            return False
        if self.start_date is None and self.end_date is None:
            return True
        if shift.date is None:
            return False
        if self.start_date is not None and shift.date < self.start_date:
            return False
        if self.end_date is not None and shift.date > self.end_date:
            return False
        return True


ALL_SHIFTS = ReportFilter()


def week_start(day: datetime.date) -> datetime.date:
    """Return the Monday of the ISO week containing ``day``."""
    return day - datetime.timedelta(days=day.weekday())


@dataclass
class EmployeeTotals:
    """Running totals for one employee within one aggregation scope."""

    employee_display_name: str
    employee_key: str
    period_start: Optional[datetime.date] = None
    record_id: Optional[str] = None
    order: int = 0
    category_buckets: Dict[str, int] = field(default_factory=dict)
    total_delay_minutes: int = 0
    location_names: Set[str] = field(default_factory=set)
    reconciled: bool = False

    def add(self, shift: CanonicalShift) -> None:
        category = shift.shift_type_category
        self.category_buckets[category] = self.category_buckets.get(category, 0) + max(0, shift.scheduled_minutes)
        self.total_delay_minutes += max(0, shift.delay_minutes)
        label = shift.location_name or shift.location_id
        if label:
            self.location_names.add(label)

    def reconcile(self) -> None:
        if self.reconciled:
            return
        reconcile_delay(self.category_buckets, self.total_delay_minutes)
        self.reconciled = True


ScopeKey = Tuple[str, Hashable]


def reconcile_delay(buckets: Dict[str, int], delay_minutes: int) -> Dict[str, int]:
    """Move tardiness out of NormalShift into UnpaidAbsence, in place.

    NormalShift is clamped at zero; UnpaidAbsence is credited with the full
    delay even when the employee has no NormalShift minutes.
    """
    if delay_minutes <= 0:
        return buckets
    if NORMAL_SHIFT in buckets:
        buckets[NORMAL_SHIFT] = max(0, buckets[NORMAL_SHIFT] - delay_minutes)
    buckets[UNPAID_ABSENCE] = buckets.get(UNPAID_ABSENCE, 0) + delay_minutes
    return buckets


def _scope_for(shift: CanonicalShift, granularity: str, index: int) -> Tuple[Hashable, Optional[datetime.date]]:
    if granularity == "period":
        return None, None
    if granularity == "record":
        return ("record", index), shift.date
    if shift.date is None:
        return None, None
    if granularity == "week":
        start = week_start(shift.date)
        return start, start
    return shift.date, shift.date


def aggregate(
    shifts: Iterable[CanonicalShift],
    report_filter: Optional[ReportFilter] = None,
    granularity: str = "period",
) -> Dict[ScopeKey, EmployeeTotals]:
    """Fold shifts into per-employee totals for each scope of ``granularity``.

    Delay reconciliation runs once per accumulator, after every shift is folded,
    so a daily aggregation reconciles per employee per day.
    """
    if granularity not in GRANULARITIES:
        raise ValueError(f"granularity must be one of {', '.join(GRANULARITIES)}.")
    report_filter = report_filter or ALL_SHIFTS
    totals: Dict[ScopeKey, EmployeeTotals] = {}
    first_seen_names: Dict[str, str] = {}
    for index, shift in enumerate(shifts):
        if not report_filter.matches(shift):
            continue
        employee_key = normalize_name(shift.employee_key)
        first_seen_names.setdefault(employee_key, shift.employee_display_name)
        scope, period_start = _scope_for(shift, granularity, index)
        key = (employee_key, scope)
        entry = totals.get(key)
        if entry is None:
            entry = EmployeeTotals(
                employee_display_name=first_seen_names[employee_key],
                employee_key=employee_key,
                period_start=period_start,
                record_id=shift.record_id if granularity == "record" else None,
                order=len(totals),
            )
            totals[key] = entry
        entry.add(shift)
    for entry in totals.values():
        entry.reconcile()
    return totals
