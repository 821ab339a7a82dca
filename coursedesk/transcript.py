"""
Student transcript and GPA.

The official transcript comes from GET /student/transcript. When the server
has no records yet we fall back to the student's graded enrollments
(marked unofficial), looking up credits from the offering or its course.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import requests

from coursedesk import api
from coursedesk.conflicts import NO_DATA, ConflictDetector
from coursedesk.errors import ApiError
from coursedesk.model import Enrollment, TranscriptRow


GRADE_POINTS = {"A": 4, "B": 3, "C": 2, "D": 1, "F": 0}

TRANSCRIPT_KEYS = ("transcript", "grades")

logger = logging.getLogger(__name__)


@dataclass
class Transcript:
    rows: list[TranscriptRow] = field(default_factory=list)
    gpa: Optional[float] = None
    official: bool = True


def _credits(value: Any) -> Optional[float]:
    try:
        credits = float(value)
    except (TypeError, ValueError):
        return None
    return credits if credits > 0 else None


def compute_gpa(rows: Iterable[TranscriptRow]) -> Optional[float]:
    """
    Credit-weighted GPA on the A=4 .. F=0 scale.
    Rows without credits or with other grades (P, W, ...) are ignored.
    """
    total_credits = 0.0
    total_points = 0.0
    for row in rows:
        points = GRADE_POINTS.get(str(row.grade or "").strip().upper())
        if points is None or not row.credits:
            continue
        total_credits += row.credits
        total_points += points * row.credits
    if not total_credits:
        return None
    return round(total_points / total_credits, 2)


def row_from_record(record: dict[str, Any]) -> TranscriptRow:
    course = record.get("course") if isinstance(record.get("course"), dict) else {}
    term = record.get("term")
    term_code = term.get("code") if isinstance(term, dict) else term
    return TranscriptRow(
        course_code=str(course.get("code") or record.get("courseCode") or ""),
        course_title=str(course.get("title") or record.get("courseTitle") or ""),
        term=str(term_code or record.get("termCode") or ""),
        credits=_credits(record.get("credits", course.get("credits"))),
        grade=record.get("grade"),
    )


async def load_transcript(client, detector: Optional[ConflictDetector] = None) -> Transcript:
    data = await api.get_transcript(client)
    records = api.unwrap_list(data, extra_keys=TRANSCRIPT_KEYS)
    if records:
        rows = [row_from_record(r) for r in records if isinstance(r, dict)]
        gpa = None
        if isinstance(data, dict):
            gpa = data.get("gpa", data.get("GPA"))
        return Transcript(rows=rows, gpa=float(gpa) if gpa is not None else compute_gpa(rows), official=True)
    return await _unofficial_transcript(client, detector or ConflictDetector(client))


async def _unofficial_transcript(client, detector: ConflictDetector) -> Transcript:
    enrollments = [Enrollment.from_api(e) for e in await api.list_my_enrollments(client)]
    rows: list[TranscriptRow] = []
    course_cache: dict[str, dict[str, Any]] = {}

    for enrollment in enrollments:
        if not enrollment.grade:
            continue
        offering = await detector.lookup_offering(enrollment.offering_id) if enrollment.offering_id else NO_DATA
        course: dict[str, Any] = dict(enrollment.offering.get("course") or {})
        term_code = ""
        if offering is not NO_DATA:
            course.update(offering.course)
            term_code = offering.term.code or ""

        if _credits(course.get("credits")) is None and course.get("id") is not None:
            course_id = str(course["id"])
            if course_id not in course_cache:
                try:
                    course_cache[course_id] = await api.get_course(client, course_id) or {}
                except (ApiError, requests.RequestException) as exc:
                    logger.warning("Could not load course %s: %s", course_id, exc)
                    course_cache[course_id] = {}
            course = {**course_cache[course_id], **{k: v for k, v in course.items() if v is not None}}

        rows.append(
            TranscriptRow(
                course_code=str(course.get("code") or ""),
                course_title=str(course.get("title") or ""),
                term=term_code,
                credits=_credits(course.get("credits")),
                grade=enrollment.grade,
            )
        )

    return Transcript(rows=rows, gpa=compute_gpa(rows), official=False)
