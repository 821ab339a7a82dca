"""
Conflict detection.

Before a student enrolls in an offering we check its weekly meeting blocks
against the blocks of the student's current enrollments in the SAME term.

Overlap rule (per block pair):
    same day of week AND max(start_a, start_b) < min(end_a, end_b)

Touching endpoints (10:00-11:00 and 11:00-12:00) are not a conflict.
Blocks with a missing or unparseable time, or an unknown day, never conflict.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Union

import requests

from coursedesk import api
from coursedesk.errors import ApiError
from coursedesk.model import DAYS_OF_WEEK, Enrollment, MeetingBlock, Offering, TermRef


logger = logging.getLogger(__name__)


class _NoData(Enum):
    """Outcome of an offering lookup that failed to load."""

    NO_DATA = "no-data"


NO_DATA = _NoData.NO_DATA

OfferingLookup = Union[Offering, _NoData]


def day_index(day: Any) -> Optional[int]:
    """
    Position of a day name in MONDAY..SUNDAY (case-insensitive), None if unknown.
    """
    name = str(day or "").strip().upper()
    if name in DAYS_OF_WEEK:
        return DAYS_OF_WEEK.index(name)
    return None


def time_to_minutes(value: Any) -> Optional[int]:
    """
    Convert 'HH:MM' or 'HH:MM:SS' to minutes since midnight.
    Returns None for missing or invalid values.
    """
    if value is None:
        return None
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        h = int(parts[0])
        m = int(parts[1])
    except ValueError:
        return None
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return h * 60 + m


def blocks_overlap(a: MeetingBlock, b: MeetingBlock) -> bool:
    day_a = day_index(a.day_of_week)
    if day_a is None or day_a != day_index(b.day_of_week):
        return False
    times = [time_to_minutes(t) for t in (a.start_time, a.end_time, b.start_time, b.end_time)]
    if any(t is None for t in times):
        return False
    a_start, a_end, b_start, b_end = times
    return max(a_start, b_start) < min(a_end, b_end)


def same_term(a: TermRef, b: TermRef) -> bool:
    """
    Term identity: ids win when both sides have one, then codes
    (case-insensitive); anything else counts as different terms.
    """
    if a.id is not None and b.id is not None:
        return str(a.id) == str(b.id)
    if a.code and b.code:
        return a.code.strip().upper() == b.code.strip().upper()
    return False


def find_conflicts(target: Offering, existing: list[Offering]) -> list[tuple[MeetingBlock, MeetingBlock, Offering]]:
    """
    All (existing block, target block, existing offering) triples that overlap,
    considering only offerings in the target's term.
    """
    conflicts: list[tuple[MeetingBlock, MeetingBlock, Offering]] = []
    for other in existing:
        if not same_term(other.term, target.term):
            continue
        for block in other.schedules:
            for candidate in target.schedules:
                if blocks_overlap(block, candidate):
                    conflicts.append((block, candidate, other))
    return conflicts


def has_schedule_conflict(target: Offering, existing: list[Offering]) -> bool:
    for other in existing:
        if not same_term(other.term, target.term):
            continue
        if any(blocks_overlap(block, candidate) for block in other.schedules for candidate in target.schedules):
            return True
    return False


class ConflictDetector:
    """
    Fetches the data needed for a conflict check through the session client.

    Offering details are cached by id for the detector's lifetime, so one
    browse/enroll session never fetches the same offering twice. A failed
    fetch yields NO_DATA: that offering simply contributes no meeting blocks.
    """

    def __init__(self, client) -> None:
        self.client = client
        self.cache: dict[str, Offering] = {}

    async def lookup_offering(self, offering_id: Any) -> OfferingLookup:
        key = str(offering_id)
        if key in self.cache:
            return self.cache[key]
        try:
            offering = Offering.from_api(await api.get_offering(self.client, key))
        except (ApiError, requests.RequestException, ValueError) as exc:
            # not cached: the next check tries again
            logger.warning("Could not load offering %s, ignoring it for conflict checks: %s", key, exc)
            return NO_DATA
        self.cache[key] = offering
        return offering

    async def enrolled_offerings(self, enrollments: Optional[list[Enrollment]] = None) -> list[Offering]:
        if enrollments is None:
            enrollments = [Enrollment.from_api(e) for e in await api.list_my_enrollments(self.client)]
        ids = list(dict.fromkeys(e.offering_id for e in enrollments if e.offering_id))
        lookups = await asyncio.gather(*(self.lookup_offering(i) for i in ids))
        return [o for o in lookups if o is not NO_DATA]

    async def conflicts_for(self, offering_id: Any) -> list[tuple[MeetingBlock, MeetingBlock, Offering]]:
        target = await self.lookup_offering(offering_id)
        if target is NO_DATA:
            return []
        return find_conflicts(target, await self.enrolled_offerings())

    async def has_conflict(self, offering_id: Any) -> bool:
        target = await self.lookup_offering(offering_id)
        if target is NO_DATA:
            return False
        return has_schedule_conflict(target, await self.enrolled_offerings())
