"""
Weekly timetable of the current student's enrollments.

One entry per meeting block; offerings in COMPLETED / ARCHIVED terms are
left out, as are blocks with an unknown day or unusable times.
"""

from __future__ import annotations

from typing import Any, Iterable

from coursedesk import api
from coursedesk.conflicts import ConflictDetector, day_index, time_to_minutes
from coursedesk.eligibility import TermIndex, resolve_term_status, term_is_active
from coursedesk.model import Offering, ScheduleEntry


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def build_weekly_schedule(offerings: Iterable[Offering], terms: Iterable[Any] = ()) -> list[ScheduleEntry]:
    index = TermIndex.build(terms)
    entries: list[ScheduleEntry] = []

    for off in offerings:
        if not term_is_active(resolve_term_status(off, index)):
            continue
        for block in off.schedules:
            day = day_index(block.day_of_week)
            start = time_to_minutes(block.start_time)
            end = time_to_minutes(block.end_time)
            if day is None or start is None or end is None or end <= start:
                continue
            entries.append(
                ScheduleEntry(
                    day_of_week=block.day_of_week.upper(),
                    start=format_minutes(start),
                    end=format_minutes(end),
                    start_minutes=start,
                    end_minutes=end,
                    offering_id=off.id,
                    course=off.course_label,
                    location=block.location or "TBA",
                    section=off.section,
                )
            )

    entries.sort(key=lambda e: (day_index(e.day_of_week), e.start_minutes, e.course))
    return entries


async def load_weekly_schedule(client, detector: ConflictDetector | None = None) -> list[ScheduleEntry]:
    """
    Fetch enrollments, their offerings and the term list, then build the timetable.
    """
    detector = detector or ConflictDetector(client)
    offerings = await detector.enrolled_offerings()
    terms = api.unwrap_list(await api.list_terms(client))
    return build_weekly_schedule(offerings, terms)
