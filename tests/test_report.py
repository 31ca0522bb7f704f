from __future__ import annotations

import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from timesheet.aggregator import aggregate  # noqa: E402
from timesheet.records import adapt_record  # noqa: E402
from timesheet.report import build_report, collation_key, minutes_to_hours_label  # noqa: E402
from timesheet.shift_types import NORMAL_SHIFT, OVERTIME, PAID_LEAVE, UNPAID_ABSENCE  # noqa: E402


def _shift(name, start="09:00", end="17:00", *, delay=None, shift_type=None, store="1", store_name=None, day="2024-04-01"):
    return adapt_record(
        {
            "employee_name": name,
            "store_id": store,
            "store_name": store_name,
            "date": day,
            "start_time": start,
            "end_time": end,
            "shift_type": shift_type,
            "delay_minutes": delay,
        }
    )


def test_empty_input_gives_empty_report() -> None:
    report = build_report(aggregate([]))
    assert report.employees == []
    assert report.categories == []
    assert report.totals.total_minutes == 0
    assert report.totals.total_delay_minutes == 0
    assert report.totals.total_minutes_excluding_overtime == 0
    assert report.totals.net_minutes_excluding_overtime == 0
    assert report.totals.category_totals == {}


def test_row_values_for_overtime_and_delay() -> None:
    shifts = [
        _shift("Maria Rossi", delay=15),
        _shift("Maria Rossi", "18:00", "20:00", shift_type="Straordinario"),
    ]
    row = build_report(aggregate(shifts)).employees[0]
    assert row.category_buckets == {NORMAL_SHIFT: 465, OVERTIME: 120, UNPAID_ABSENCE: 15}
    assert row.total_minutes == 600
    assert row.total_minutes_excluding_overtime == 480
    assert row.net_minutes_excluding_overtime == 465
    assert row.total_delay_minutes == 15


def test_grand_totals_reconcile_with_rows() -> None:
    shifts = [
        _shift("Maria Rossi", delay=15),
        _shift("Luca Bianchi", "18:00", "23:00", shift_type="Straordinario", delay=30),
        _shift("Giulia Verdi", shift_type="Ferie"),
        _shift("Giulia Verdi", "09:00", "09:05", delay=60),
        _shift(None, "10:00", "12:00", shift_type="Formazione"),
    ]
    report = build_report(aggregate(shifts))
    rows = report.employees
    totals = report.totals
    assert totals.total_minutes == sum(row.total_minutes for row in rows)
    assert totals.total_delay_minutes == sum(row.total_delay_minutes for row in rows)
    assert totals.total_minutes_excluding_overtime == sum(row.total_minutes_excluding_overtime for row in rows)
    assert totals.net_minutes_excluding_overtime == sum(row.net_minutes_excluding_overtime for row in rows)
    for category in report.categories:
        assert totals.category_totals[category] == sum(row.minutes_for(category) for row in rows)


def test_every_reported_value_is_non_negative() -> None:
    shifts = [
        _shift("A", "09:00", "09:05", delay=500),
        _shift("A", "18:00", "19:00", shift_type="Straordinario"),
        _shift("B", "22:00", "01:00", delay=120),
    ]
    report = build_report(aggregate(shifts))
    for row in report.employees:
        assert all(minutes >= 0 for minutes in row.category_buckets.values())
        assert row.total_minutes >= 0
        assert row.total_minutes_excluding_overtime >= 0
        assert row.net_minutes_excluding_overtime >= 0


def test_categories_are_the_sorted_union() -> None:
    shifts = [
        _shift("A", shift_type="Ferie"),
        _shift("B", shift_type="Formazione"),
    ]
    report = build_report(aggregate(shifts))
    assert report.categories == sorted(["Formazione", PAID_LEAVE])
    row_b = next(row for row in report.employees if row.employee_key == "b")
    assert row_b.minutes_for(PAID_LEAVE) == 0


def test_rows_sort_by_name_ignoring_case_and_accents() -> None:
    shifts = [_shift("élodie"), _shift("Bruno"), _shift("alberto"), _shift("Elena")]
    names = [row.employee_display_name for row in build_report(aggregate(shifts)).employees]
    assert names == ["alberto", "Bruno", "Elena", "élodie"]


def test_daily_rows_sort_by_name_then_day() -> None:
    shifts = [
        _shift("B", day="2024-04-02"),
        _shift("A", day="2024-04-02"),
        _shift("A", day="2024-04-01"),
    ]
    rows = build_report(aggregate(shifts, granularity="day")).employees
    assert [(row.employee_key, row.period_start.isoformat()) for row in rows] == [
        ("a", "2024-04-01"),
        ("a", "2024-04-02"),
        ("b", "2024-04-02"),
    ]


def test_location_names_are_distinct_and_sorted() -> None:
    shifts = [
        _shift("A", store="2", store_name="Torino"),
        _shift("A", store="1", store_name="Milano"),
        _shift("A", store="1", store_name="Milano"),
    ]
    row = build_report(aggregate(shifts)).employees[0]
    assert row.location_names_display == "Milano, Torino"


def test_report_serializes_to_plain_dicts() -> None:
    payload = build_report(aggregate([_shift("A", delay=15)])).to_dict()
    assert payload["categories"] == [NORMAL_SHIFT, UNPAID_ABSENCE]
    assert payload["employees"][0]["categories"] == {NORMAL_SHIFT: 465, UNPAID_ABSENCE: 15}
    assert payload["totals"]["net_minutes_excluding_overtime"] == 465


def test_helpers() -> None:
    assert collation_key("Élodie") == collation_key("elodie")
    assert minutes_to_hours_label(510) == "8h 30m"
    assert minutes_to_hours_label(480) == "8h"
    assert minutes_to_hours_label(45) == "45m"
    assert minutes_to_hours_label(None) == "0h"
