"""
Central data model definitions used across the project.

The REST API is not consistent about field names (an offering's term may be
embedded as ``term`` or referenced as ``termId`` / ``termCode``, an
enrollment may embed the offering or only carry ``offeringId``).
The ``from_api`` constructors below accept all known variants so that the
rest of the code only ever deals with one shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, List


DAYS_OF_WEEK = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")


def _first(*values: Any) -> Any:
    """Return the first value that is not None (mirrors ``a ?? b ?? c``)."""
    for v in values:
        if v is not None:
            return v
    return None


def _as_dict(x: Any) -> dict[str, Any]:
    return x if isinstance(x, dict) else {}


@dataclass(frozen=True)
class TokenPair:
    """
    Access + refresh token as persisted between runs.
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    def to_record(self) -> dict[str, Optional[str]]:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}

    @classmethod
    def from_record(cls, data: Any) -> "TokenPair":
        data = _as_dict(data)
        return cls(
            access_token=data.get("accessToken") or data.get("token") or data.get("access_token") or None,
            refresh_token=data.get("refreshToken") or data.get("refresh_token") or None,
        )


@dataclass(frozen=True)
class MeetingBlock:
    """
    One weekly recurring slot of an offering.

    Times are kept as the raw strings sent by the API ("09:00" or "09:00:00");
    parsing happens in the conflict detector so that a bad value only
    disables that block instead of failing the whole offering.
    """

    day_of_week: str
    start_time: Optional[str]
    end_time: Optional[str]
    location: str = ""

    @classmethod
    def from_api(cls, data: Any) -> "MeetingBlock":
        data = _as_dict(data)
        return cls(
            day_of_week=str(data.get("dayOfWeek") or "").strip(),
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            location=str(data.get("location") or ""),
        )


@dataclass(frozen=True)
class TermRef:
    id: Optional[str] = None
    code: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_offering(cls, data: dict[str, Any]) -> "TermRef":
        term = _as_dict(data.get("term"))
        term_id = _first(term.get("id"), term.get("termId"), data.get("termId"))
        code = _first(term.get("code"), data.get("termCode"))
        return cls(
            id=str(term_id) if term_id is not None else None,
            code=str(code) if code else None,
            status=term.get("status") or None,
        )


@dataclass
class Offering:
    """
    Snapshot of one offering as returned by GET /offerings/{id}.
    """

    id: str
    course: dict[str, Any]
    term: TermRef
    schedules: List[MeetingBlock] = field(default_factory=list)
    status: Optional[str] = None
    capacity: Optional[int] = None
    section: Optional[str] = None
    instructor: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Any) -> "Offering":
        data = _as_dict(data)
        course = _as_dict(data.get("course"))
        if not course and data.get("courseId") is not None:
            course = {"id": data.get("courseId"), "code": data.get("courseCode"), "title": data.get("courseTitle")}
        schedules = data.get("schedules") or []
        return cls(
            id=str(data.get("id")),
            course=course,
            term=TermRef.from_offering(data),
            schedules=[MeetingBlock.from_api(s) for s in schedules if isinstance(s, dict)],
            status=data.get("status"),
            capacity=data.get("capacity"),
            section=data.get("section"),
            instructor=_as_dict(data.get("instructor")),
        )

    @property
    def course_label(self) -> str:
        code = self.course.get("code") or ""
        title = self.course.get("title") or ""
        if code and title:
            return f"{code} {title}"
        return code or title or f"Offering {self.id}"

    @property
    def instructor_name(self) -> str:
        return str(self.instructor.get("fullName") or self.instructor.get("name") or "")


@dataclass
class Enrollment:
    """
    One of the current student's enrollments.
    """

    id: Optional[str]
    offering_id: Optional[str]
    grade: Optional[str] = None
    status: Optional[str] = None
    offering: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Any) -> "Enrollment":
        data = _as_dict(data)
        offering = _as_dict(data.get("offering"))
        offering_id = _first(offering.get("id"), data.get("offeringId"))
        enrollment_id = data.get("id")
        return cls(
            id=str(enrollment_id) if enrollment_id is not None else None,
            offering_id=str(offering_id) if offering_id not in (None, "", 0) else None,
            grade=data.get("grade") or None,
            status=data.get("status"),
            offering=offering,
        )


@dataclass
class ScheduleEntry:
    """
    One row of the weekly timetable.
    """

    day_of_week: str
    start: str
    end: str
    start_minutes: int
    end_minutes: int
    offering_id: str
    course: str
    location: str
    section: Optional[str] = None


@dataclass
class TranscriptRow:
    course_code: str
    course_title: str
    term: str
    credits: Optional[float]
    grade: Optional[str]
