"""
Tests for CLI entry points.

These tests focus on:
- argument validation that fails before any request is made
- full command runs against the fake API, with the session kept in a
  temporary file (to avoid touching a real user session)
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from coursedesk.cli import main, parse_grade_item, required_role
from coursedesk.model import TokenPair
from coursedesk.session import REFRESH_PATH
from coursedesk.storage import TokenStore

from fakes import BASE_URL, FakeApi, FakeTransport, make_response, offering


FALL24 = {"id": 1, "code": "FALL24", "status": "ACTIVE"}
SPRING25 = {"id": 2, "code": "SPRING25", "status": "ACTIVE"}


class TestCLIValidation(unittest.TestCase):
    def test_enroll_requires_offering_id(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main(["enroll", " "])
        self.assertNotEqual(ctx.exception.code, 0)

    def test_grade_must_be_letter(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main(["grade", "5", "Z"])
        self.assertNotEqual(ctx.exception.code, 0)

    def test_bulk_grades_are_checked(self) -> None:
        for item in ("1=Z", "A", "=B"):
            with self.assertRaises(SystemExit) as ctx:
                main(["grades", "10", item])
            self.assertNotEqual(ctx.exception.code, 0)

    def test_catalog_detail_only_for_courses_and_terms(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main(["catalog", "departments", "--id", "1"])
        self.assertNotEqual(ctx.exception.code, 0)

    def test_parse_grade_item(self) -> None:
        self.assertEqual(parse_grade_item(" 7 = b "), {"enrollmentId": 7, "grade": "B"})
        with self.assertRaises(ValueError):
            parse_grade_item("7:B")

    def test_required_roles(self) -> None:
        self.assertEqual(required_role("enroll"), "STUDENT")
        self.assertEqual(required_role("grade"), "INSTRUCTOR")
        self.assertEqual(required_role("offerings"), "INSTRUCTOR")
        self.assertIsNone(required_role("catalog"))
        self.assertEqual(required_role("admin"), "ADMIN")
        self.assertIsNone(required_role("whoami"))


class TestCLIRuns(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.token_file = Path(self._tmp.name) / "session.json"
        self.api = FakeApi(
            offerings={
                "10": offering(10, FALL24, ("MONDAY", "09:00", "10:30")),
                "20": offering(20, FALL24, ("MONDAY", "10:00", "11:00")),
                "30": offering(30, SPRING25, ("MONDAY", "10:00", "11:00")),
            },
            enrollments=[{"id": 1, "offering": {"id": 10}}],
            terms=[FALL24, SPRING25],
        )
        self.transport = FakeTransport(self.api)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_cli(self, *argv: str) -> int:
        with self.assertRaises(SystemExit) as ctx:
            main(["--base-url", BASE_URL, "--token-file", str(self.token_file), *argv], transport=self.transport)
        return ctx.exception.code

    def login(self) -> None:
        TokenStore(self.token_file).save(TokenPair("acc", "ref"))

    def test_not_logged_in(self) -> None:
        self.assertEqual(self.run_cli("schedule"), 1)
        self.assertEqual(self.transport.calls, [])

    def test_enroll_with_conflict_sends_no_post(self) -> None:
        self.login()
        self.assertEqual(self.run_cli("enroll", "20"), 1)
        self.assertEqual(self.transport.calls_to("POST", "/student/enrollments"), [])

    def test_enroll_other_term(self) -> None:
        self.login()
        self.assertEqual(self.run_cli("enroll", "30"), 0)
        self.assertEqual(len(self.api.created), 1)
        self.assertTrue(self.transport.closed)

    def test_wrong_role(self) -> None:
        self.login()
        self.assertEqual(self.run_cli("grade", "1", "A"), 1)
        self.assertEqual([c.path for c in self.transport.calls], ["/auth/me"])

    def test_expired_session(self) -> None:
        self.login()

        def handler(call):
            if call.path == "/auth/me":
                return self.api(call)
            return make_response(401, {})

        self.transport.handler = handler
        self.assertEqual(self.run_cli("enrollments"), 1)
        self.assertEqual(TokenStore(self.token_file).load(), TokenPair())

    def test_refresh_timeout_before_bootstrap(self) -> None:
        self.login()
        self.transport.handler = lambda call: make_response(401, {})
        self.transport.delays[REFRESH_PATH] = 1.0

        with mock.patch.dict(os.environ, {"COURSEDESK_REFRESH_TIMEOUT": "0.05"}):
            self.assertEqual(self.run_cli("whoami"), 1)
        self.assertFalse(self.token_file.exists())
        self.assertTrue(self.transport.closed)

    def test_refresh_timeout_during_command(self) -> None:
        self.login()

        def handler(call):
            if call.path == "/auth/me":
                return self.api(call)
            return make_response(401, {})

        self.transport.handler = handler
        self.transport.delays[REFRESH_PATH] = 1.0

        with mock.patch.dict(os.environ, {"COURSEDESK_REFRESH_TIMEOUT": "0.05"}):
            self.assertEqual(self.run_cli("enrollments"), 1)
        self.assertEqual(len(self.transport.calls_to("POST", REFRESH_PATH)), 1)
        self.assertFalse(self.token_file.exists())

    def test_login_response_without_token(self) -> None:
        self.transport.handler = lambda call: make_response(200, {"message": "ok"})

        self.assertEqual(self.run_cli("login", "--email", "a@b.edu", "--password", "x"), 1)
        self.assertFalse(self.token_file.exists())

    def test_enroll_twice_is_refused(self) -> None:
        self.login()
        self.assertEqual(self.run_cli("enroll", "10"), 1)
        self.assertEqual(self.api.created, [])

    def test_instructor_offerings_by_term_code(self) -> None:
        self.login()
        self.api.role = "ROLE_INSTRUCTOR"

        self.assertEqual(self.run_cli("offerings", "--term", "fall24"), 0)
        (call,) = self.transport.calls_to("GET", "/instructor/offerings")
        self.assertEqual(call.params["termId"], "1")

    def test_bulk_grades(self) -> None:
        self.login()
        self.api.role = "ROLE_INSTRUCTOR"

        self.assertEqual(self.run_cli("grades", "10", "1=a", "2=B"), 0)
        self.assertEqual(
            self.api.graded,
            [{"offeringId": 10, "items": [{"enrollmentId": 1, "grade": "A"}, {"enrollmentId": 2, "grade": "B"}]}],
        )

    def test_bulk_grades_need_instructor(self) -> None:
        self.login()
        self.assertEqual(self.run_cli("grades", "10", "1=A"), 1)
        self.assertEqual(self.api.graded, [])

    def test_catalog(self) -> None:
        self.login()
        self.api.departments = [{"id": 1, "code": "CS", "name": "Computer Science"}]

        self.assertEqual(self.run_cli("catalog", "departments"), 0)
        self.assertEqual(len(self.transport.calls_to("GET", "/departments")), 1)

        self.assertEqual(self.run_cli("catalog", "terms", "--id", "2"), 0)
        self.assertEqual(len(self.transport.calls_to("GET", "/terms/2")), 1)

    def test_login_and_logout(self) -> None:
        def handler(call):
            if call.path == "/auth/login":
                return make_response(200, {"accessToken": "acc", "refreshToken": "ref"})
            return self.api(call)

        self.transport.handler = handler
        self.assertEqual(self.run_cli("login", "--email", "s@uni.edu", "--password", "pw"), 0)
        self.assertEqual(TokenStore(self.token_file).load(), TokenPair("acc", "ref"))

        self.assertEqual(self.run_cli("logout"), 0)
        self.assertFalse(self.token_file.exists())


if __name__ == "__main__":
    unittest.main()
