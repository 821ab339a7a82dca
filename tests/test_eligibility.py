import unittest

from coursedesk.eligibility import TermIndex, can_enroll, offering_is_open, resolve_term_status, term_is_active
from coursedesk.model import Offering, TermRef


def make(status="OPEN", term=TermRef()) -> Offering:
    return Offering(id="1", course={}, term=term, status=status)


class TestEligibility(unittest.TestCase):
    def test_term_is_active(self) -> None:
        self.assertTrue(term_is_active("ACTIVE"))
        self.assertTrue(term_is_active(None))
        self.assertFalse(term_is_active("completed"))
        self.assertFalse(term_is_active("ARCHIVED"))

    def test_offering_is_open(self) -> None:
        for status in ("OPEN", "enrolling", "In_Progress"):
            self.assertTrue(offering_is_open(make(status)))
        for status in ("CLOSED", "CANCELLED", None):
            self.assertFalse(offering_is_open(make(status)))

    def test_embedded_status_wins(self) -> None:
        index = TermIndex.build([{"id": 1, "code": "FALL24", "status": "ARCHIVED"}])
        off = make(term=TermRef(id="1", code="FALL24", status="ACTIVE"))
        self.assertEqual(resolve_term_status(off, index), "ACTIVE")

    def test_status_looked_up_by_id_then_code(self) -> None:
        index = TermIndex.build(
            [{"id": 1, "code": "FALL24", "status": "ARCHIVED"}, {"id": 2, "code": "SPRING25", "status": "ACTIVE"}]
        )
        self.assertEqual(resolve_term_status(make(term=TermRef(id="2")), index), "ACTIVE")
        self.assertEqual(resolve_term_status(make(term=TermRef(code="fall24")), index), "ARCHIVED")
        self.assertIsNone(resolve_term_status(make(term=TermRef(id="9")), index))

    def test_can_enroll_needs_both(self) -> None:
        index = TermIndex.build([{"id": 1, "status": "COMPLETED"}])
        self.assertFalse(can_enroll(make("OPEN", TermRef(id="1")), index))
        self.assertFalse(can_enroll(make("CLOSED", TermRef(id="2")), index))
        self.assertTrue(can_enroll(make("OPEN", TermRef(id="2")), index))


if __name__ == "__main__":
    unittest.main()
