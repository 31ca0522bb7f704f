from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from database import DATA_DIR, ShiftRecord, Store, add_shift_record, ensure_aware, upsert_store
from timesheet.records import adapt_record
from timesheet.report import PayrollReport

logger = logging.getLogger(__name__)

EXPORT_DIR = DATA_DIR / "exports"
EXPORT_DIR.mkdir(parents=True, exist_ok=True)


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def _iso(value: Optional[datetime.datetime]) -> Optional[str]:
    value = ensure_aware(value)
    return value.isoformat() if value is not None else None


def _load_records(file_path: Path) -> List[Dict]:
    data = json.loads(file_path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("shifts", data.get("records", []))
    if not isinstance(data, list):
        raise ValueError("Shift file must hold a list of records or a {'shifts': [...]} object.")
    return [entry for entry in data if isinstance(entry, dict)]


# ---------------------------------------------------------------------------
# Shift records


def import_shift_records(
    session,
    file_path: Path,
    *,
    tz: Optional[datetime.tzinfo] = None,
) -> Tuple[int, int]:
    """Load roster- or shift-shaped records from JSON into the record store.

    Rows are converted through the record adapter so the stored copy always
    carries combined timestamps. Rows without an employee or a usable date are
    skipped.
    """
    stores: Dict[str, int] = {
        store.code: store.id for store in session.scalars(select(Store))
    }
    payloads = _load_records(file_path)
    try:
        created, skipped = _store_shift_rows(session, payloads, stores, tz)
    except (SQLAlchemyError, ValueError):
        session.rollback()
        logger.exception("Shift import from %s failed; nothing was saved", file_path)
        raise
    session.commit()
    return created, skipped


def _store_shift_rows(session, payloads: List[Dict], stores: Dict[str, int], tz) -> Tuple[int, int]:
    created = 0
    skipped = 0
    for payload in payloads:
        shift = adapt_record(payload, tz=tz)
        if shift.employee_key == "unknown" or shift.date is None:
            logger.debug("Skipping shift row without employee or date: %r", payload)
            skipped += 1
            continue
        store_id = None
        if shift.location_id:
            store_id = stores.get(shift.location_id)
            if store_id is None:
                store_id = upsert_store(session, shift.location_id, shift.location_name or "", commit=False).id
                stores[shift.location_id] = store_id
        add_shift_record(
            session,
            {
                "employee_name": shift.employee_display_name,
                "store_id": store_id,
                "shift_date": shift.date,
                "scheduled_start": shift.scheduled_start,
                "scheduled_end": shift.scheduled_end,
                "actual_start": shift.actual_start,
                "actual_end": shift.actual_end,
                "shift_type": shift.shift_type_raw,
                "delay_minutes": shift.stored_delay_minutes,
                "created_at": shift.created_at,
            },
            commit=False,
        )
        created += 1
    return created, skipped


def export_shift_records(session) -> Path:
    records = session.scalars(select(ShiftRecord).order_by(ShiftRecord.shift_date.asc(), ShiftRecord.id.asc())).all()
    payload = []
    for record in records:
        payload.append(
            {
                "employee_name": record.employee_name,
                "store_id": record.store.code if record.store else None,
                "store_name": record.store.name if record.store else None,
                "shift_date": record.shift_date.isoformat() if record.shift_date else None,
                "scheduled_start": _iso(record.scheduled_start),
                "scheduled_end": _iso(record.scheduled_end),
                "actual_start": _iso(record.actual_start),
                "actual_end": _iso(record.actual_end),
                "shift_type": record.shift_type,
                "delay_minutes": record.delay_minutes,
            }
        )
    filename = EXPORT_DIR / f"shifts_{_timestamp()}.json"
    filename.write_text(
        json.dumps({"generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(), "shifts": payload}, indent=2),
        encoding="utf-8",
    )
    return filename


# ---------------------------------------------------------------------------
# Payroll reports


def export_payroll_report(report: PayrollReport, *, label: str = "payroll") -> Path:
    safe_label = "_".join(label.split()) or "payroll"
    filename = EXPORT_DIR / f"{safe_label}_{_timestamp()}.json"
    body = report.to_dict()
    body["generated_at"] = datetime.datetime.now(datetime.timezone.utc).isoformat()
    filename.write_text(json.dumps(body, indent=2), encoding="utf-8")
    return filename
