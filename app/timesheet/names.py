from __future__ import annotations

import re
from typing import Optional


UNKNOWN_EMPLOYEE_KEY = "unknown"
UNKNOWN_EMPLOYEE_LABEL = "Unknown"
_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def normalize_name(name: Optional[str]) -> str:
    """Return the grouping key for a free-text employee name.

    Case and spacing differences collapse to the same key. Missing names map to
    a fixed sentinel so they still group together deterministically.
    """
    if name is None:
        return UNKNOWN_EMPLOYEE_KEY
    key = collapse_whitespace(str(name)).lower()
    return key or UNKNOWN_EMPLOYEE_KEY


def display_name(name: Optional[str]) -> str:
    if name is None or not str(name).strip():
        return UNKNOWN_EMPLOYEE_LABEL
    return str(name)
