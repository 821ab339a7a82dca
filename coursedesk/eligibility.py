"""
Enrollment eligibility.

An offering can be enrolled in only when its term is still running (not
COMPLETED / ARCHIVED) and the offering itself is OPEN, ENROLLING or
IN_PROGRESS. Offerings do not always embed their term's status, so the
term index built from GET /terms is used as a fallback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from coursedesk.model import Offering


CLOSED_TERM_STATUSES = frozenset({"COMPLETED", "ARCHIVED"})
OPEN_OFFERING_STATUSES = frozenset({"OPEN", "ENROLLING", "IN_PROGRESS"})


@dataclass
class TermIndex:
    by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    by_code: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def build(cls, terms: Iterable[Any]) -> "TermIndex":
        index = cls()
        for term in terms or []:
            if not isinstance(term, dict):
                continue
            if term.get("id") is not None:
                index.by_id[str(term["id"])] = term
            if term.get("code"):
                index.by_code[str(term["code"]).upper()] = term
        return index


def term_is_active(status: Optional[str]) -> bool:
    """Unknown status counts as active."""
    return str(status or "").upper() not in CLOSED_TERM_STATUSES


def offering_is_open(offering: Offering) -> bool:
    return str(offering.status or "").upper() in OPEN_OFFERING_STATUSES


def resolve_term_status(offering: Offering, index: TermIndex) -> Optional[str]:
    if offering.term.status:
        return offering.term.status
    from_id = index.by_id.get(offering.term.id) if offering.term.id is not None else None
    from_code = index.by_code.get(offering.term.code.upper()) if offering.term.code else None
    for term in (from_id, from_code):
        if term and term.get("status") is not None:
            return term["status"]
    return None


def can_enroll(offering: Offering, index: TermIndex) -> bool:
    return term_is_active(resolve_term_status(offering, index)) and offering_is_open(offering)
