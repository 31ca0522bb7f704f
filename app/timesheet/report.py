from __future__ import annotations

import datetime
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .aggregator import EmployeeTotals
from .shift_types import OVERTIME


@dataclass(frozen=True)
class EmployeePeriodSummary:
    employee_display_name: str
    employee_key: str
    location_names_display: str
    category_buckets: Dict[str, int]
    total_minutes: int
    total_delay_minutes: int
    total_minutes_excluding_overtime: int
    net_minutes_excluding_overtime: int
    period_start: Optional[datetime.date] = None
    record_id: Optional[str] = None

    def minutes_for(self, category: str) -> int:
        return self.category_buckets.get(category, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employee_name": self.employee_display_name,
            "employee_key": self.employee_key,
            "locations": self.location_names_display,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "record_id": self.record_id,
            "categories": dict(self.category_buckets),
            "total_minutes": self.total_minutes,
            "total_delay_minutes": self.total_delay_minutes,
            "total_minutes_excluding_overtime": self.total_minutes_excluding_overtime,
            "net_minutes_excluding_overtime": self.net_minutes_excluding_overtime,
        }


@dataclass(frozen=True)
class ReportTotals:
    total_minutes: int = 0
    total_delay_minutes: int = 0
    total_minutes_excluding_overtime: int = 0
    net_minutes_excluding_overtime: int = 0
    category_totals: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_minutes": self.total_minutes,
            "total_delay_minutes": self.total_delay_minutes,
            "total_minutes_excluding_overtime": self.total_minutes_excluding_overtime,
            "net_minutes_excluding_overtime": self.net_minutes_excluding_overtime,
            "categories": dict(self.category_totals),
        }


@dataclass(frozen=True)
class PayrollReport:
    employees: List[EmployeePeriodSummary]
    categories: List[str]
    totals: ReportTotals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employees": [employee.to_dict() for employee in self.employees],
            "categories": list(self.categories),
            "totals": self.totals.to_dict(),
        }


def collation_key(name: str) -> str:
    """Accent- and case-insensitive sort key, so "Élodie" sorts next to "Elodie"."""
    decomposed = unicodedata.normalize("NFKD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold().strip()


def summarize(entry: EmployeeTotals) -> EmployeePeriodSummary:
    entry.reconcile()
    buckets = {category: max(0, minutes) for category, minutes in entry.category_buckets.items()}
    total = sum(buckets.values())
    delay = max(0, entry.total_delay_minutes)
    excluding_overtime = max(0, total - buckets.get(OVERTIME, 0))
    return EmployeePeriodSummary(
        employee_display_name=entry.employee_display_name,
        employee_key=entry.employee_key,
        location_names_display=", ".join(sorted(entry.location_names)),
        category_buckets=buckets,
        total_minutes=total,
        total_delay_minutes=delay,
        total_minutes_excluding_overtime=excluding_overtime,
        net_minutes_excluding_overtime=max(0, excluding_overtime - delay),
        period_start=entry.period_start,
        record_id=entry.record_id,
    )


def _row_sort_key(pair: Tuple[EmployeeTotals, EmployeePeriodSummary]):
    entry, summary = pair
    return (
        collation_key(summary.employee_display_name),
        summary.employee_display_name,
        summary.period_start is not None,
        summary.period_start or datetime.date.min,
        entry.order,
    )


def build_report(per_employee: Mapping[Any, EmployeeTotals] | Iterable[EmployeeTotals]) -> PayrollReport:
    """Shape aggregator output into report rows, a stable column set and grand totals.

    Grand totals are sums of the row values, so they always reconcile with what
    is displayed.
    """
    entries = list(per_employee.values()) if isinstance(per_employee, Mapping) else list(per_employee)
    pairs = sorted(((entry, summarize(entry)) for entry in entries), key=_row_sort_key)
    rows = [summary for _, summary in pairs]

    categories = sorted({category for row in rows for category in row.category_buckets})
    category_totals = {
        category: sum(row.category_buckets.get(category, 0) for row in rows)
        for category in categories
    }
    totals = ReportTotals(
        total_minutes=sum(row.total_minutes for row in rows),
        total_delay_minutes=sum(row.total_delay_minutes for row in rows),
        total_minutes_excluding_overtime=sum(row.total_minutes_excluding_overtime for row in rows),
        net_minutes_excluding_overtime=sum(row.net_minutes_excluding_overtime for row in rows),
        category_totals=category_totals,
    )
    return PayrollReport(employees=rows, categories=categories, totals=totals)


def minutes_to_hours_label(minutes: Optional[int]) -> str:
    if not minutes or minutes <= 0:
        return "0h"
    hours, mins = divmod(int(minutes), 60)
    if not hours:
        return f"{mins}m"
    if not mins:
        return f"{hours}h"
    return f"{hours}h {mins}m"
