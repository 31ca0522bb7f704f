"""Batch recomputation of stored delay values.

Records are processed one at a time; a failed write is rolled back, counted
and skipped so the rest of the batch still runs.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from database import list_shift_records, record_audit_log, update_shift_delay
from timesheet.api import RoundingConfig, recompute_delay, resolve_rounding
from timesheet.delay import is_late
from timesheet.records import adapt_record

logger = logging.getLogger(__name__)


@dataclass
class RepairSummary:
    total: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _needs_write(raw: Dict[str, Any], delay_changed: bool, late: bool, missed: bool) -> bool:
    return delay_changed or bool(raw.get("late")) != late or bool(raw.get("missed_clock_in")) != missed


def recompute_all_delays(
    session,
    config: RoundingConfig = None,
    *,
    actor: str = "system",
    tz: Optional[datetime.tzinfo] = None,
    dry_run: bool = False,
) -> RepairSummary:
    rounding = resolve_rounding(config)
    summary = RepairSummary()
    for raw in list_shift_records(session):
        summary.total += 1
        try:
            result = recompute_delay(raw, rounding, tz=tz)
            shift = adapt_record(raw, rounding, tz=tz)
            late = is_late(shift.scheduled_start, shift.actual_start)
            missed = shift.missed_clock_in
            if not _needs_write(raw, result.changed, late, missed):
                summary.skipped += 1
                continue
            if not dry_run:
                update_shift_delay(
                    session,
                    raw["id"],
                    delay_minutes=result.delay_minutes,
                    late=late,
                    missed_clock_in=missed,
                )
            summary.updated += 1
        except (SQLAlchemyError, ValueError):
            session.rollback()
            logger.exception("Could not update delay for shift record %s", raw.get("id"))
            summary.errors += 1
    logger.info(
        "Delay recompute finished: total=%s updated=%s skipped=%s errors=%s",
        summary.total,
        summary.updated,
        summary.skipped,
        summary.errors,
    )
    if not dry_run:
        payload = summary.to_dict()
        payload.update(rounding.to_dict())
        record_audit_log(session, user_id=actor, action="DELAY_RECOMPUTE", target_type="ShiftRecord", payload=payload)
    return summary
