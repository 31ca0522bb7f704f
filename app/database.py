from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker


DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
TIMESHEET_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'timesheet.db').as_posix()}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def ensure_aware(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """SQLite drops offsets, so instants are stored as UTC and re-tagged on read."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for store, shift, policy and audit tables living in timesheet.db."""

    pass


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, default="")

    shifts: Mapped[List["ShiftRecord"]] = relationship(back_populates="store")


class ShiftRecord(Base):
    """One scheduled shift with its timeclock punches, as synced from the roster feed."""

    __tablename__ = "shift_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    store_id: Mapped[int | None] = mapped_column(ForeignKey("stores.id"), nullable=True)
    shift_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    scheduled_start: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_end: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_start: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    shift_type: Mapped[str | None] = mapped_column(String(80), nullable=True)
    delay_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    missed_clock_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    store: Mapped[Optional[Store]] = relationship(back_populates="shifts")


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("name", name="uq_policies_name"),
    )

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
        return {}


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="ShiftRecord")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


timesheet_engine = create_engine(
    TIMESHEET_DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=timesheet_engine, expire_on_commit=False, future=True)


def init_database() -> None:
    Base.metadata.create_all(timesheet_engine)


# ---------------------------------------------------------------------------
# Stores


def upsert_store(session, code: str, name: str = "", *, commit: bool = True) -> Store:
    code = (code or "").strip()
    if not code:
        raise ValueError("Store code is required.")
    store = session.scalars(select(Store).where(Store.code == code)).first()
    if store is None:
        store = Store(code=code, name=name or code)
        session.add(store)
    elif name:
        store.name = name
    if commit:
        session.commit()
        session.refresh(store)
    else:
        session.flush()
    return store


def location_names(session) -> Dict[str, str]:
    """Return the store id -> display name lookup used by report rows."""
    return {str(store.id): store.name for store in session.scalars(select(Store))}


# ---------------------------------------------------------------------------
# Shift records


def shift_record_to_dict(record: ShiftRecord) -> Dict[str, Any]:
    store = record.store
    return {
        "id": record.id,
        "employee_name": record.employee_name,
        "store_id": str(record.store_id) if record.store_id is not None else None,
        "store_name": store.name if store else None,
        "shift_date": record.shift_date,
        "scheduled_start": ensure_aware(record.scheduled_start),
        "scheduled_end": ensure_aware(record.scheduled_end),
        "actual_start": ensure_aware(record.actual_start),
        "actual_end": ensure_aware(record.actual_end),
        "shift_type": record.shift_type,
        "delay_minutes": record.delay_minutes,
        "late": record.late,
        "missed_clock_in": record.missed_clock_in,
        "created_at": ensure_aware(record.created_at),
    }


def list_shift_records(session, *, store_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Return a plain-dict snapshot of shift records, oldest date first."""
    stmt = select(ShiftRecord).order_by(ShiftRecord.shift_date.asc(), ShiftRecord.id.asc())
    if store_id is not None:
        stmt = stmt.where(ShiftRecord.store_id == store_id)
    return [shift_record_to_dict(record) for record in session.scalars(stmt)]


def add_shift_record(session, payload: Dict[str, Any], *, commit: bool = True) -> ShiftRecord:
    record = ShiftRecord(
        employee_name=(payload.get("employee_name") or "").strip(),
        store_id=payload.get("store_id"),
        shift_date=payload.get("shift_date"),
        scheduled_start=ensure_aware(payload.get("scheduled_start")),
        scheduled_end=ensure_aware(payload.get("scheduled_end")),
        actual_start=ensure_aware(payload.get("actual_start")),
        actual_end=ensure_aware(payload.get("actual_end")),
        shift_type=payload.get("shift_type"),
        delay_minutes=payload.get("delay_minutes"),
    )
    if payload.get("created_at") is not None:
        record.created_at = ensure_aware(payload["created_at"])
    session.add(record)
    if commit:
        session.commit()
    else:
        session.flush()
    return record


def update_shift_delay(
    session,
    record_id: int,
    *,
    delay_minutes: int,
    late: bool,
    missed_clock_in: bool,
) -> ShiftRecord:
    record = session.get(ShiftRecord, record_id)
    if record is None:
        raise ValueError(f"Shift record {record_id} not found.")
    record.delay_minutes = delay_minutes
    record.late = late
    record.missed_clock_in = missed_clock_in
    session.commit()
    return record


# ---------------------------------------------------------------------------
# Policies


def upsert_policy(session, name: str, params_dict: Dict, *, edited_by: str = "system") -> Policy:
    existing: Optional[Policy] = session.execute(
        select(Policy).where(Policy.name == name)
    ).scalars().first()
    payload = params_dict if isinstance(params_dict, dict) else {}
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        session.commit()
        session.refresh(existing)
        return existing
    policy = Policy(
        name=name,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(policy)
    session.commit()
    session.refresh(policy)
    return policy


def get_active_policy(session) -> Optional[Policy]:
    stmt = select(Policy).order_by(Policy.lastEditedAt.desc(), Policy.id.desc())
    return session.scalars(stmt).first()


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "ShiftRecord",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}),
    )
    session.add(log)
    session.commit()
    return log
