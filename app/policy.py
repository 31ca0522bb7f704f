from __future__ import annotations

import copy
import datetime
import logging
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from database import get_active_policy, upsert_policy
from timesheet.delay import DEFAULT_ROUND_TO_MINUTES, ROUNDING_DIRECTIONS, DelayRounding

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc

BASELINE_POLICY: Dict[str, Any] = {
    "name": "Timeclock Baseline",
    "delay": {
        "round_to_minutes": DEFAULT_ROUND_TO_MINUTES,
        "direction": "ceiling",
        "grace_minutes": 0,
    },
    # Roster times of day carry no offset; they are read in this zone.
    "timezone": "UTC",
    # Drop repeated imports of the same shift before aggregating payroll.
    "deduplicate": True,
}


def load_active_policy(conn) -> Dict:
    """Return the active timeclock policy payload as a dict."""
    if conn is None:
        return _normalize_policy({})
    if callable(conn):
        with conn() as session:
            policy = get_active_policy(session)
            return _normalize_policy(policy.params_dict() if policy else {})
    policy = get_active_policy(conn)
    return _normalize_policy(policy.params_dict() if policy else {})


def _normalize_policy(policy: Dict) -> Dict:
    """Fill defaults and replace unusable values so the engine always gets a valid config."""
    if not isinstance(policy, dict):
        policy = {}
    normalized = copy.deepcopy(policy)
    normalized.pop("name", None)
    defaults = BASELINE_POLICY["delay"]
    delay_cfg = normalized.get("delay")
    if not isinstance(delay_cfg, dict):
        delay_cfg = {}
    merged = dict(defaults)
    merged.update({key: value for key, value in delay_cfg.items() if key in defaults})
    try:
        if not isinstance(merged["direction"], str):
            raise ValueError("direction must be a string.")
        merged = DelayRounding.from_mapping(merged).to_dict()
    except ValueError:
        logger.warning("Invalid delay rounding %r in stored policy; using defaults", delay_cfg)
        merged = dict(defaults)
    normalized["delay"] = merged

    zone = normalized.get("timezone") or BASELINE_POLICY["timezone"]
    try:
        ZoneInfo(str(zone))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r in stored policy; falling back to UTC", zone)
        zone = "UTC"
    normalized["timezone"] = str(zone)
    deduplicate = normalized.get("deduplicate", BASELINE_POLICY["deduplicate"])
    if not isinstance(deduplicate, bool):
        logger.warning("Invalid deduplicate flag %r in stored policy; using default", deduplicate)
        deduplicate = BASELINE_POLICY["deduplicate"]
    normalized["deduplicate"] = deduplicate
    return normalized


def validate_policy_params(params: Dict) -> Dict:
    """Strict variant used on edits: raise ValueError instead of silently defaulting."""
    if not isinstance(params, dict):
        raise ValueError("params must be an object.")
    delay_cfg = params.get("delay", {})
    if not isinstance(delay_cfg, dict):
        raise ValueError("delay must be an object.")
    if "direction" in delay_cfg:
        direction = delay_cfg["direction"]
        if not isinstance(direction, str) or direction.strip().lower() not in ROUNDING_DIRECTIONS:
            raise ValueError(f"direction must be one of {', '.join(ROUNDING_DIRECTIONS)}.")
    DelayRounding.from_mapping({**BASELINE_POLICY["delay"], **delay_cfg})
    if "deduplicate" in params and not isinstance(params["deduplicate"], bool):
        raise ValueError("deduplicate must be true or false.")
    zone = params.get("timezone")
    if zone is not None:
        try:
            ZoneInfo(str(zone))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone {zone!r}.") from exc
    return _normalize_policy(params)


def delay_rounding(policy: Dict) -> DelayRounding:
    cfg = policy.get("delay") if isinstance(policy, dict) else None
    return DelayRounding.from_mapping(cfg if isinstance(cfg, dict) else None)


def policy_timezone(policy: Dict) -> datetime.tzinfo:
    zone = policy.get("timezone") if isinstance(policy, dict) else None
    if not zone or zone == "UTC":
        return UTC
    try:
        return ZoneInfo(str(zone))
    except (ZoneInfoNotFoundError, ValueError):
        return UTC


def build_default_policy() -> Dict[str, Any]:
    """Return a deepcopy so callers can mutate the policy safely."""
    return copy.deepcopy(BASELINE_POLICY)


def ensure_default_policy(session_factory) -> None:
    """Seed the baseline timeclock policy exactly once."""

    with session_factory() as session:
        if get_active_policy(session):
            return
        defaults = build_default_policy()
        name = defaults.get("name", "Timeclock Baseline")
        params = {key: value for key, value in defaults.items() if key != "name"}
        upsert_policy(session, name, params, edited_by="system")
