from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .aggregator import ALL_SHIFTS, ReportFilter
from .records import CanonicalShift


LATENESS_GROUPINGS = ("employee", "location")


@dataclass(frozen=True)
class LatenessRow:
    key: str
    label: str
    late_shifts: int
    total_delay_minutes: int
    average_delay_minutes: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "key": self.key,
            "label": self.label,
            "late_shifts": self.late_shifts,
            "total_delay_minutes": self.total_delay_minutes,
            "average_delay_minutes": self.average_delay_minutes,
        }


def summarize_lateness(
    shifts: Iterable[CanonicalShift],
    report_filter: Optional[ReportFilter] = None,
    by: str = "employee",
) -> List[LatenessRow]:
    """Count late shifts and counted delay per employee or per location."""
    if by not in LATENESS_GROUPINGS:
        raise ValueError(f"by must be one of {', '.join(LATENESS_GROUPINGS)}.")
    report_filter = report_filter or ALL_SHIFTS
    labels: Dict[str, str] = {}
    counts: Dict[str, int] = {}
    minutes: Dict[str, int] = {}
    for shift in shifts:
        if shift.delay_minutes <= 0 or not report_filter.matches(shift):
            continue
        if by == "employee":
            key, label = shift.employee_key, shift.employee_display_name
        else:
            key = shift.location_id or ""
            label = shift.location_name or shift.location_id or "No location"
        labels.setdefault(key, label)
        counts[key] = counts.get(key, 0) + 1
        minutes[key] = minutes.get(key, 0) + shift.delay_minutes
    rows = [
        LatenessRow(
            key=key,
            label=labels[key],
            late_shifts=counts[key],
            total_delay_minutes=minutes[key],
            average_delay_minutes=round(minutes[key] / counts[key], 1),
        )
        for key in labels
    ]
    rows.sort(key=lambda row: (-row.total_delay_minutes, row.label.casefold()))
    return rows
