from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Union

from .aggregator import ReportFilter, aggregate
from .delay import DelayRounding
from .lateness import LatenessRow, summarize_lateness
from .records import adapt_record, adapt_records, deduplicate_shifts
from .report import PayrollReport, build_report
from .unpaid import UnpaidAbsenceDetail, resolve_unpaid_absence

RoundingConfig = Union[DelayRounding, Mapping[str, Any], None]


@dataclass(frozen=True)
class DelayRecomputation:
    delay_minutes: int
    changed: bool


def resolve_rounding(config: RoundingConfig) -> DelayRounding:
    if isinstance(config, DelayRounding):
        return config
    return DelayRounding.from_mapping(config)


def aggregate_for_report(
    raw_records: Iterable[Mapping[str, Any]],
    config: RoundingConfig = None,
    report_filter: Optional[ReportFilter] = None,
    *,
    granularity: str = "period",
    location_names: Optional[Mapping[str, str]] = None,
    deduplicate: bool = False,
    tz: Optional[datetime.tzinfo] = None,
) -> PayrollReport:
    """Build the payroll report for a snapshot of raw schedule records.

    ``granularity`` picks the reconciliation scope: ``period`` gives one row per
    employee, ``week``/``day`` one row per employee per week/day, ``record`` one
    row per shift.
    """
    rounding = resolve_rounding(config)
    shifts = adapt_records(raw_records, rounding, location_names=location_names, tz=tz)
    if deduplicate:
        shifts = deduplicate_shifts(shifts)
    return build_report(aggregate(shifts, report_filter, granularity))


def explain_unpaid_absence(
    raw_records: Iterable[Mapping[str, Any]],
    config: RoundingConfig,
    employee_key: str,
    report_filter: Optional[ReportFilter] = None,
    *,
    location_names: Optional[Mapping[str, str]] = None,
    deduplicate: bool = False,
    tz: Optional[datetime.tzinfo] = None,
) -> UnpaidAbsenceDetail:
    rounding = resolve_rounding(config)
    shifts = adapt_records(raw_records, rounding, location_names=location_names, tz=tz)
    if deduplicate:
        shifts = deduplicate_shifts(shifts)
    return resolve_unpaid_absence(shifts, employee_key, report_filter)


def lateness_report(
    raw_records: Iterable[Mapping[str, Any]],
    config: RoundingConfig = None,
    report_filter: Optional[ReportFilter] = None,
    *,
    by: str = "employee",
    location_names: Optional[Mapping[str, str]] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> List[LatenessRow]:
    rounding = resolve_rounding(config)
    shifts = adapt_records(raw_records, rounding, location_names=location_names, tz=tz)
    return summarize_lateness(shifts, report_filter, by=by)


def recompute_delay(
    raw_record: Mapping[str, Any],
    config: RoundingConfig = None,
    *,
    tz: Optional[datetime.tzinfo] = None,
) -> DelayRecomputation:
    """Recompute a record's counted delay and say whether a write-back is needed."""
    rounding = resolve_rounding(config)
    shift = adapt_record(raw_record, rounding, tz=tz)
    return DelayRecomputation(
        delay_minutes=shift.delay_minutes,
        changed=shift.stored_delay_minutes != shift.delay_minutes,
    )
