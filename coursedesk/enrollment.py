"""
The "Enroll" action.

Composes the eligibility gate, the schedule conflict check and the enroll
call. The conflict check runs BEFORE the POST; when it finds an overlap no
enrollment request is sent at all. An offering the student already holds
is refused before the conflict check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from coursedesk import api
from coursedesk.conflicts import NO_DATA, ConflictDetector, find_conflicts
from coursedesk.eligibility import TermIndex, can_enroll
from coursedesk.errors import ApiError, UnauthorizedError
from coursedesk.model import Enrollment, MeetingBlock, Offering


logger = logging.getLogger(__name__)


class EnrollOutcome(Enum):
    ENROLLED = "enrolled"
    CLOSED = "closed"
    ALREADY_ENROLLED = "already_enrolled"
    CONFLICT = "conflict"
    FAILED = "failed"


MESSAGES = {
    EnrollOutcome.ENROLLED: "Enrolled successfully!",
    EnrollOutcome.CLOSED: "This offering is not open for enrollment.",
    EnrollOutcome.ALREADY_ENROLLED: "You are already enrolled in this offering.",
    EnrollOutcome.CONFLICT: "Schedule conflict with one of your current enrollments (same term).",
    EnrollOutcome.FAILED: "Enrollment failed",
}


@dataclass
class EnrollResult:
    outcome: EnrollOutcome
    message: str
    enrollment: Any = None
    conflicts: list[tuple[MeetingBlock, MeetingBlock, Offering]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is EnrollOutcome.ENROLLED


class EnrollmentService:
    def __init__(self, client, detector: Optional[ConflictDetector] = None) -> None:
        self.client = client
        self.detector = detector or ConflictDetector(client)

    async def enroll(self, offering_id: Any, terms: Optional[list[Any]] = None) -> EnrollResult:
        """
        Try to enroll the current student in ``offering_id``.

        ``terms`` is the GET /terms list used to resolve a term status the
        offering does not embed; it is fetched when not given.
        UnauthorizedError and transport errors are raised; any other API error
        ends up in the result as FAILED.
        """
        offering = await self.detector.lookup_offering(offering_id)
        if offering is NO_DATA:
            return EnrollResult(EnrollOutcome.FAILED, f"Offering {offering_id} could not be loaded.")

        try:
            if terms is None:
                terms = api.unwrap_list(await api.list_terms(self.client))
            if not can_enroll(offering, TermIndex.build(terms)):
                return EnrollResult(EnrollOutcome.CLOSED, MESSAGES[EnrollOutcome.CLOSED])

            held = [Enrollment.from_api(e) for e in await api.list_my_enrollments(self.client)]
            if any(e.offering_id == offering.id for e in held):
                return EnrollResult(EnrollOutcome.ALREADY_ENROLLED, MESSAGES[EnrollOutcome.ALREADY_ENROLLED])

            conflicts = find_conflicts(offering, await self.detector.enrolled_offerings(held))
            if conflicts:
                logger.info("Not enrolling in %s: %d overlapping meeting block(s)", offering.id, len(conflicts))
                return EnrollResult(EnrollOutcome.CONFLICT, MESSAGES[EnrollOutcome.CONFLICT], conflicts=conflicts)

            enrollment = await api.enroll_in_offering(self.client, api.wire_id(offering.id))
        except UnauthorizedError:
            raise
        except ApiError as exc:
            return EnrollResult(EnrollOutcome.FAILED, exc.server_message or MESSAGES[EnrollOutcome.FAILED])
        return EnrollResult(EnrollOutcome.ENROLLED, MESSAGES[EnrollOutcome.ENROLLED], enrollment=enrollment)
