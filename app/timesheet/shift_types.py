from __future__ import annotations

from typing import Dict, List, Optional

from .names import collapse_whitespace


NORMAL_SHIFT = "NormalShift"
OVERTIME = "Overtime"
UNPAID_ABSENCE = "UnpaidAbsence"
PAID_LEAVE = "PaidLeave"
SICK_LEAVE = "SickLeave"

WELL_KNOWN_CATEGORIES = (NORMAL_SHIFT, OVERTIME, UNPAID_ABSENCE, PAID_LEAVE, SICK_LEAVE)
ABSENCE_CATEGORIES = frozenset({UNPAID_ABSENCE, PAID_LEAVE, SICK_LEAVE})

# Labels as they arrive from the roster/timeclock feeds, grouped by category.
SHIFT_TYPE_ALIASES: Dict[str, List[str]] = {
    NORMAL_SHIFT: [
        "Turno normale",
        "Normale",
        "Normal",
        "Normal shift",
        "Affiancamento",
        "Prova e Affiancamento",
    ],
    OVERTIME: [
        "Straordinario",
        "Overtime",
    ],
    UNPAID_ABSENCE: [
        "Assenza non retribuita",
        "Ritardo",
        "Malattia (No Certificato)",
        "Malattia (Non Certificata)",
        "Unpaid absence",
    ],
    PAID_LEAVE: [
        "Ferie",
        "Paid leave",
        "Vacation",
    ],
    SICK_LEAVE: [
        "Malattia (Certificato)",
        "Malattia (Certificata)",
        "Sick leave",
    ],
}


def _label_key(label: str) -> str:
    return collapse_whitespace(label).casefold()


def _build_alias_index() -> Dict[str, str]:
    index: Dict[str, str] = {}
    for category, labels in SHIFT_TYPE_ALIASES.items():
        index[_label_key(category)] = category
        for label in labels:
            index[_label_key(label)] = category
    return index


_ALIAS_INDEX = _build_alias_index()


def classify_shift_type(label: Optional[str]) -> str:
    """Map a raw shift-type label to its payroll category.

    Labels missing from the alias table come back as their own category, so a
    new upstream shift type shows up as a separate bucket.
    """
    if label is None:
        return NORMAL_SHIFT
    text = collapse_whitespace(str(label))
    if not text:
        return NORMAL_SHIFT
    return _ALIAS_INDEX.get(text.casefold(), text)


def is_absence_category(category: Optional[str]) -> bool:
    return category in ABSENCE_CATEGORIES


def known_labels(category: str) -> List[str]:
    """Return the raw labels that collapse into ``category``."""
    return sorted(SHIFT_TYPE_ALIASES.get(category, []))
