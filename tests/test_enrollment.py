"""
End-to-end tests for the enroll action: eligibility gate, conflict check,
then the POST. A refused enrollment must never reach the server.
"""

import tempfile
import unittest
from pathlib import Path

from coursedesk.enrollment import EnrollmentService, EnrollOutcome
from coursedesk.model import TokenPair
from coursedesk.session import REFRESH_PATH, SessionClient
from coursedesk.storage import TokenStore

from fakes import BASE_URL, FakeApi, FakeTransport, make_response, offering


FALL24 = {"id": 1, "code": "FALL24", "status": "ACTIVE"}
SPRING25 = {"id": 2, "code": "SPRING25", "status": "PLANNED"}


class TestEnroll(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = TokenStore(Path(self._tmp.name) / "session.json")
        self.store.save(TokenPair("access", "refresh"))
        self.api = FakeApi(
            offerings={
                "10": offering(10, FALL24, ("MONDAY", "09:00", "10:30")),
                "20": offering(20, FALL24, ("MONDAY", "10:00", "11:00")),
                "30": offering(30, SPRING25, ("MONDAY", "10:00", "11:00")),
                "40": offering(40, FALL24, ("MONDAY", "10:30", "11:30")),
                "50": offering(50, FALL24, ("FRIDAY", "10:00", "11:00"), status="CLOSED"),
                "60": offering(60, {"id": 3, "code": "SUMMER23"}, ("FRIDAY", "10:00", "11:00")),
            },
            enrollments=[{"id": 1, "offering": {"id": 10}, "status": "ENROLLED"}],
            terms=[FALL24, SPRING25, {"id": 3, "code": "SUMMER23", "status": "COMPLETED"}],
        )
        self.transport = FakeTransport(self.api)
        self.service = EnrollmentService(SessionClient(BASE_URL, self.store, transport=self.transport))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_conflict_in_same_term_blocks_enrollment(self) -> None:
        result = await self.service.enroll(20)

        self.assertIs(result.outcome, EnrollOutcome.CONFLICT)
        self.assertFalse(result.ok)
        self.assertIn("Schedule conflict", result.message)
        self.assertEqual(len(result.conflicts), 1)
        self.assertEqual(self.transport.calls_to("POST", "/student/enrollments"), [])
        self.assertEqual(self.api.created, [])

    async def test_other_term_enrolls(self) -> None:
        result = await self.service.enroll(30)

        self.assertIs(result.outcome, EnrollOutcome.ENROLLED)
        self.assertTrue(result.ok)
        posts = self.transport.calls_to("POST", "/student/enrollments")
        self.assertEqual(len(posts), 1)
        self.assertEqual(posts[0].json, {"offeringId": 30})
        self.assertEqual(result.enrollment["offeringId"], 30)

    async def test_touching_blocks_enroll(self) -> None:
        result = await self.service.enroll(40)
        self.assertIs(result.outcome, EnrollOutcome.ENROLLED)

    async def test_closed_offering_is_refused_before_conflict_check(self) -> None:
        result = await self.service.enroll(50)

        self.assertIs(result.outcome, EnrollOutcome.CLOSED)
        self.assertEqual(self.transport.calls_to("GET", "/student/enrollments"), [])

    async def test_completed_term_is_refused(self) -> None:
        # term status comes from the term list; the offering does not embed it
        result = await self.service.enroll(60)
        self.assertIs(result.outcome, EnrollOutcome.CLOSED)

    async def test_server_error_message_is_reported(self) -> None:
        def handler(call):
            if call.method == "POST" and call.path == "/student/enrollments":
                return make_response(409, {"message": "Offering is full"})
            return self.api(call)

        self.transport.handler = handler
        result = await self.service.enroll(30)

        self.assertIs(result.outcome, EnrollOutcome.FAILED)
        self.assertEqual(result.message, "Offering is full")

    async def test_offering_already_held_is_refused(self) -> None:
        result = await self.service.enroll(10)

        self.assertIs(result.outcome, EnrollOutcome.ALREADY_ENROLLED)
        self.assertEqual(result.conflicts, [])
        self.assertEqual(self.transport.calls_to("POST", "/student/enrollments"), [])

    async def test_unavailable_term_list_fails(self) -> None:
        def handler(call):
            if call.path == "/terms":
                return make_response(503, {"message": "Down for maintenance"})
            return self.api(call)

        self.transport.handler = handler
        result = await self.service.enroll(30)

        self.assertIs(result.outcome, EnrollOutcome.FAILED)
        self.assertEqual(result.message, "Down for maintenance")
        self.assertEqual(self.api.created, [])

    async def test_unavailable_enrollment_list_fails(self) -> None:
        def handler(call):
            if call.method == "GET" and call.path == "/student/enrollments":
                return make_response(500, {})
            return self.api(call)

        self.transport.handler = handler
        result = await self.service.enroll(30)

        self.assertIs(result.outcome, EnrollOutcome.FAILED)
        self.assertEqual(result.message, "Enrollment failed")
        self.assertEqual(self.api.created, [])

    async def test_unknown_offering_fails(self) -> None:
        result = await self.service.enroll(999)
        self.assertIs(result.outcome, EnrollOutcome.FAILED)

    async def test_expired_token_is_refreshed_transparently(self) -> None:
        def handler(call):
            if call.path == REFRESH_PATH:
                return make_response(200, {"accessToken": "fresh"})
            if call.bearer != "fresh":
                return make_response(401, {"message": "expired"})
            return self.api(call)

        self.transport.handler = handler
        result = await self.service.enroll(30)

        self.assertIs(result.outcome, EnrollOutcome.ENROLLED)
        self.assertEqual(len(self.transport.calls_to("POST", REFRESH_PATH)), 1)
        self.assertEqual(self.store.tokens.access_token, "fresh")


if __name__ == "__main__":
    unittest.main()
