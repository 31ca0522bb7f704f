from __future__ import annotations

import datetime
import json
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import repair  # noqa: E402
from database import AuditLog, Base, ShiftRecord, add_shift_record, upsert_store  # noqa: E402
from repair import recompute_all_delays  # noqa: E402

UTC = datetime.timezone.utc


@pytest.fixture()
def session():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    with Session() as db_session:
        yield db_session


def _at(hour: int, minute: int) -> datetime.datetime:
    return datetime.datetime(2024, 4, 1, hour, minute, tzinfo=UTC)


def _seed(session) -> dict:
    store = upsert_store(session, "MI01", "Milano Centro")
    base = {"store_id": store.id, "shift_date": datetime.date(2024, 4, 1), "scheduled_start": _at(9, 0), "scheduled_end": _at(17, 0)}
    late = add_shift_record(session, {**base, "employee_name": "Maria Rossi", "actual_start": _at(9, 6)})
    on_time = add_shift_record(session, {**base, "employee_name": "Luca Bianchi", "actual_start": _at(8, 55)})
    no_punch = add_shift_record(session, {**base, "employee_name": "Giulia Verdi"})
    leave = add_shift_record(session, {**base, "employee_name": "Paolo Neri", "shift_type": "Ferie"})
    return {"late": late.id, "on_time": on_time.id, "no_punch": no_punch.id, "leave": leave.id}


def test_recompute_writes_delays_and_flags(session) -> None:
    ids = _seed(session)
    summary = recompute_all_delays(session, {"round_to_minutes": 15})
    assert summary.to_dict() == {"total": 4, "updated": 4, "skipped": 0, "errors": 0}

    late = session.get(ShiftRecord, ids["late"])
    assert (late.delay_minutes, late.late, late.missed_clock_in) == (15, True, False)
    on_time = session.get(ShiftRecord, ids["on_time"])
    assert (on_time.delay_minutes, on_time.late, on_time.missed_clock_in) == (0, False, False)
    no_punch = session.get(ShiftRecord, ids["no_punch"])
    assert (no_punch.delay_minutes, no_punch.missed_clock_in) == (0, True)
    leave = session.get(ShiftRecord, ids["leave"])
    assert (leave.delay_minutes, leave.missed_clock_in) == (0, False)


def test_second_run_skips_everything(session) -> None:
    _seed(session)
    recompute_all_delays(session)
    summary = recompute_all_delays(session)
    assert summary.to_dict() == {"total": 4, "updated": 0, "skipped": 4, "errors": 0}


def test_failed_write_is_counted_and_batch_continues(session, monkeypatch) -> None:
    ids = _seed(session)
    real_update = repair.update_shift_delay

    def flaky_update(db_session, record_id, **kwargs):
        if record_id == ids["late"]:
            raise OperationalError("UPDATE shift_records", {}, Exception("database is locked"))
        return real_update(db_session, record_id, **kwargs)

    monkeypatch.setattr(repair, "update_shift_delay", flaky_update)
    summary = recompute_all_delays(session)
    assert summary.to_dict() == {"total": 4, "updated": 3, "skipped": 0, "errors": 1}
    assert session.get(ShiftRecord, ids["late"]).delay_minutes is None
    assert session.get(ShiftRecord, ids["on_time"]).delay_minutes == 0


def test_dry_run_leaves_records_untouched(session) -> None:
    ids = _seed(session)
    summary = recompute_all_delays(session, dry_run=True)
    assert summary.updated == 4
    assert session.get(ShiftRecord, ids["late"]).delay_minutes is None
    assert session.scalars(select(AuditLog)).first() is None


def test_recompute_is_audited(session) -> None:
    _seed(session)
    recompute_all_delays(session, actor="ops")
    log = session.scalars(select(AuditLog)).one()
    assert log.user_id == "ops"
    assert log.action == "DELAY_RECOMPUTE"
    payload = json.loads(log.payloadJSON)
    assert payload["total"] == 4
    assert payload["round_to_minutes"] == 15


def test_empty_store_reports_zero_counts(session) -> None:
    assert recompute_all_delays(session).to_dict() == {"total": 0, "updated": 0, "skipped": 0, "errors": 0}
