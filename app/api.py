"""FastAPI surface over the timesheet record store and the payroll engine.

Each request reads one snapshot of shift records and the active timeclock
policy, then hands both explicitly to the pure engine in ``timesheet``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

# Ensure absolute imports (e.g., "import database") resolve when served from the repo root.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database  # noqa: E402
from database import (  # noqa: E402
    get_active_policy,
    init_database,
    list_shift_records,
    location_names,
    record_audit_log,
    upsert_policy,
)
from policy import (  # noqa: E402
    delay_rounding,
    ensure_default_policy,
    load_active_policy,
    policy_timezone,
    validate_policy_params,
)
from repair import recompute_all_delays  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from timesheet.aggregator import GRANULARITIES, ReportFilter  # noqa: E402
from timesheet.api import aggregate_for_report, explain_unpaid_absence, lateness_report  # noqa: E402
from timesheet.lateness import LATENESS_GROUPINGS  # noqa: E402
from timesheet.shift_types import WELL_KNOWN_CATEGORIES, known_labels  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_database()
    ensure_default_policy(database.SessionLocal)
    yield


app = FastAPI(title="Timesheet Assistant API", version="0.1", lifespan=lifespan)


def get_db():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _parse_date(value: Optional[str], field: str) -> Optional[datetime.date]:
    if not value:
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be YYYY-MM-DD")


def _report_filter(start: Optional[str], end: Optional[str], store_id: Optional[str]) -> ReportFilter:
    start_date = _parse_date(start, "start")
    end_date = _parse_date(end, "end")
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="end must not be before start")
    return ReportFilter(location_id=store_id or None, start_date=start_date, end_date=end_date)


def _snapshot(db: Session) -> Dict[str, Any]:
    policy = load_active_policy(db)
    return {
        "records": list_shift_records(db),
        "locations": location_names(db),
        "policy": policy,
        "rounding": delay_rounding(policy),
        "tz": policy_timezone(policy),
    }


def _policy_payload(policy) -> Dict[str, Any]:
    return {
        "id": policy.id,
        "name": policy.name,
        "params": policy.params_dict(),
        "lastEditedBy": policy.lastEditedBy,
        "lastEditedAt": policy.lastEditedAt.isoformat() if policy.lastEditedAt else None,
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/payroll")
def payroll_report(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    store_id: Optional[str] = Query(None),
    employee: Optional[str] = Query(None),
    granularity: str = Query("period"),
    dedupe: Optional[bool] = Query(None),
    db=Depends(get_db),
) -> JSONResponse:
    if granularity not in GRANULARITIES:
        raise HTTPException(status_code=400, detail=f"granularity must be one of {', '.join(GRANULARITIES)}")
    report_filter = _report_filter(start, end, store_id)
    if employee:
        report_filter = ReportFilter(
            location_id=report_filter.location_id,
            start_date=report_filter.start_date,
            end_date=report_filter.end_date,
            employee_key=employee,
        )
    snapshot = _snapshot(db)
    report = aggregate_for_report(
        snapshot["records"],
        snapshot["rounding"],
        report_filter,
        granularity=granularity,
        location_names=snapshot["locations"],
        deduplicate=snapshot["policy"]["deduplicate"] if dedupe is None else dedupe,
        tz=snapshot["tz"],
    )
    payload = report.to_dict()
    payload["granularity"] = granularity
    return JSONResponse(content=jsonable_encoder(payload))


@app.get("/api/v1/payroll/{employee_key}/unpaid")
def unpaid_absence_detail(
    employee_key: str,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    store_id: Optional[str] = Query(None),
    db=Depends(get_db),
) -> JSONResponse:
    report_filter = _report_filter(start, end, store_id)
    snapshot = _snapshot(db)
    detail = explain_unpaid_absence(
        snapshot["records"],
        snapshot["rounding"],
        employee_key,
        report_filter,
        location_names=snapshot["locations"],
        deduplicate=snapshot["policy"]["deduplicate"],
        tz=snapshot["tz"],
    )
    return JSONResponse(content=jsonable_encoder(detail.to_dict()))


@app.get("/api/v1/lateness")
def lateness_summary(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    store_id: Optional[str] = Query(None),
    by: str = Query("employee"),
    db=Depends(get_db),
) -> JSONResponse:
    if by not in LATENESS_GROUPINGS:
        raise HTTPException(status_code=400, detail=f"by must be one of {', '.join(LATENESS_GROUPINGS)}")
    report_filter = _report_filter(start, end, store_id)
    snapshot = _snapshot(db)
    rows = lateness_report(
        snapshot["records"],
        snapshot["rounding"],
        report_filter,
        by=by,
        location_names=snapshot["locations"],
        tz=snapshot["tz"],
    )
    return JSONResponse(content=jsonable_encoder({"by": by, "rows": [row.to_dict() for row in rows]}))


@app.get("/api/v1/shift-types")
def shift_types() -> JSONResponse:
    payload = {category: known_labels(category) for category in WELL_KNOWN_CATEGORIES}
    return JSONResponse(content=jsonable_encoder({"categories": payload}))


@app.post("/api/v1/shifts/recompute-delays")
def recompute_delays(payload: Dict[str, Any] | None = None, db=Depends(get_db)) -> JSONResponse:
    actor = ((payload or {}).get("actor") or "api").strip() or "api"
    dry_run = bool((payload or {}).get("dry_run", False))
    policy = load_active_policy(db)
    summary = recompute_all_delays(
        db,
        delay_rounding(policy),
        actor=actor,
        tz=policy_timezone(policy),
        dry_run=dry_run,
    )
    return JSONResponse(content=jsonable_encoder({**summary.to_dict(), "dry_run": dry_run}))


@app.get("/api/v1/policy/active")
def active_policy(db=Depends(get_db)) -> JSONResponse:
    policy = get_active_policy(db)
    if not policy:
        raise HTTPException(status_code=404, detail="No active policy found")
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))


@app.put("/api/v1/policy/active")
def set_active_policy(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    name = payload.get("name")
    params = payload.get("params") or {}
    actor = (payload.get("actor") or "api").strip() or "api"
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    try:
        normalized = validate_policy_params(params)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    policy = upsert_policy(db, name=name, params_dict=normalized, edited_by=actor)
    record_audit_log(db, user_id=actor, action="POLICY_EDIT", target_type="Policy", target_id=policy.id, payload={"name": policy.name})
    logger.info("Timeclock policy %s edited by %s", policy.name, actor)
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))
