"""
CLI (Command Line Interface).

Terminal front end for the course-management API, e.g.:

    coursedesk login --email me@uni.edu
    coursedesk browse --term FALL24
    coursedesk enroll <offering_id>
    coursedesk conflicts <offering_id>
    coursedesk schedule
    coursedesk transcript
    coursedesk grade <enrollment_id> A
    coursedesk grades <offering_id> 17=A 18=B
    coursedesk catalog courses --q algorithms
    coursedesk admin terms list

Every command handler returns an exit code; main() raises SystemExit with it.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import requests
from rich import box
from rich.console import Console
from rich.table import Table

from coursedesk import api
from coursedesk.auth import AuthService, CurrentUser
from coursedesk.config import Settings, load_settings
from coursedesk.conflicts import ConflictDetector
from coursedesk.eligibility import TermIndex, can_enroll
from coursedesk.enrollment import EnrollmentService, EnrollOutcome
from coursedesk.errors import ApiError, ConfigError, CoursedeskError, RefreshError, UnauthorizedError
from coursedesk.logging_setup import setup_logging
from coursedesk.model import Enrollment, Offering
from coursedesk.session import RequestsTransport, SessionClient, Transport
from coursedesk.storage import TokenStore
from coursedesk.timetable import load_weekly_schedule
from coursedesk.transcript import load_transcript


console = Console()

STUDENT_COMMANDS = {"browse", "enroll", "conflicts", "enrollments", "drop", "schedule", "transcript"}
INSTRUCTOR_COMMANDS = {"offerings", "roster", "grade", "grades"}
ADMIN_COMMANDS = {"admin"}

VALID_GRADES = ("A", "B", "C", "D", "F")


def _blocks_text(off: Offering) -> str:
    parts = []
    for b in off.schedules:
        start = str(b.start_time or "")[:5]
        end = str(b.end_time or "")[:5]
        parts.append(f"{b.day_of_week[:3].title()} {start}-{end} @{b.location or 'TBA'}")
    return "\n".join(parts) or "-"


def _term_id(term: Optional[str], index: TermIndex) -> Optional[str]:
    """Accept a term code (e.g. FALL24) where the API wants a term id."""
    if not term or term.isdigit():
        return term
    match = index.by_code.get(term.upper())
    return str(match["id"]) if match and match.get("id") is not None else term


def parse_grade_item(text: str) -> dict[str, Any]:
    """
    'ENROLLMENT_ID=GRADE' -> {"enrollmentId": ..., "grade": ...}; ValueError if malformed.
    """
    enrollment_id, sep, grade = text.partition("=")
    enrollment_id, grade = enrollment_id.strip(), grade.strip().upper()
    if not sep or not enrollment_id:
        raise ValueError(f"Expected ENROLLMENT_ID=GRADE, got {text!r}.")
    if grade not in VALID_GRADES:
        raise ValueError(f"Grade must be one of {', '.join(VALID_GRADES)} (got {text!r}).")
    return {"enrollmentId": api.wire_id(enrollment_id), "grade": grade}


# ---------------------------------------------------------------------------
# Commands that do not need a session
# ---------------------------------------------------------------------------


async def _cmd_login(args: argparse.Namespace, client: SessionClient) -> int:
    email = (args.email or "").strip()
    if not email:
        email = console.input("Email: ").strip()
    password = args.password if args.password is not None else console.input("Password: ", password=True)
    if not email or not password:
        console.print("Please provide email and password.")
        return 1

    auth = AuthService(client)
    try:
        user = await auth.login(email, password)
    except (ApiError, RefreshError) as exc:
        auth.logout()
        message = exc.message if isinstance(exc, ApiError) else str(exc)
        console.print(f"[red]Login failed:[/red] {message}")
        return 1

    console.print(f"Logged in as {user.display_name or email} ({user.role or 'no role'})")
    return 0


async def _cmd_logout(args: argparse.Namespace, client: SessionClient) -> int:
    AuthService(client).logout()
    console.print("Logged out.")
    return 0


# ---------------------------------------------------------------------------
# Session commands
# ---------------------------------------------------------------------------


async def _cmd_whoami(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    console.print(f"{user.display_name or '(unknown)'} | role: {user.role or '-'}")
    return 0


async def _cmd_browse(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    """
    List offerings that are open for enrollment.
    """
    terms = api.unwrap_list(await api.list_terms(client))
    index = TermIndex.build(terms)
    term_id = _term_id(args.term, index)

    data = await api.list_offerings(client, q=args.q, term_id=term_id, course_id=args.course, size=args.size)
    offerings = [Offering.from_api(o) for o in api.unwrap_list(data)]
    visible = [o for o in offerings if can_enroll(o, index)]

    if not visible:
        console.print("No offerings found.")
        return 0

    table = Table(title="Open offerings", box=box.SIMPLE_HEAVY)
    for col in ("ID", "Course", "Term", "Instructor", "Section", "Capacity", "Schedules"):
        table.add_column(col)
    for o in visible:
        table.add_row(
            o.id,
            o.course_label,
            o.term.code or "-",
            o.instructor_name or "-",
            str(o.section or "-"),
            str(o.capacity if o.capacity is not None else "-"),
            _blocks_text(o),
        )
    console.print(table)
    return 0


async def _cmd_enroll(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    result = await EnrollmentService(client).enroll(args.offering_id)

    if result.outcome is EnrollOutcome.ENROLLED:
        console.print(f"[green]{result.message}[/green]")
        return 0
    if result.outcome is EnrollOutcome.CONFLICT:
        console.print(f"[yellow]{result.message}[/yellow]")
        for existing, candidate, other in result.conflicts:
            console.print(
                f"- {other.course_label}: {existing.day_of_week} {existing.start_time}-{existing.end_time}"
                f"  <->  {candidate.start_time}-{candidate.end_time}"
            )
        return 1
    colour = "red" if result.outcome is EnrollOutcome.FAILED else "yellow"
    console.print(f"[{colour}]{result.message}[/{colour}]")
    return 1


async def _cmd_conflicts(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    """
    Show which current enrollments would clash with an offering.
    """
    detector = ConflictDetector(client)
    conflicts = await detector.conflicts_for(args.offering_id)
    if not conflicts:
        console.print("No conflicts found.")
        return 0

    console.print(f"Conflicts found: {len(conflicts)}")
    for existing, candidate, other in conflicts:
        console.print(
            f"- {existing.day_of_week} {existing.start_time}-{existing.end_time} {other.course_label}"
            f"  <->  {candidate.day_of_week} {candidate.start_time}-{candidate.end_time}"
        )
    return 0


async def _cmd_enrollments(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    raw = await api.list_my_enrollments(client)
    if not raw:
        console.print("No enrollments.")
        return 0

    table = Table(title="My enrollments", box=box.SIMPLE_HEAVY)
    for col in ("ID", "Offering", "Course", "Term", "Status", "Grade"):
        table.add_column(col)
    for item in raw:
        e = Enrollment.from_api(item)
        off = Offering.from_api(e.offering) if e.offering else None
        table.add_row(
            e.id or "-",
            e.offering_id or "-",
            off.course_label if off else "-",
            (off.term.code if off else None) or "-",
            str(e.status or "-"),
            e.grade or "-",
        )
    console.print(table)
    return 0


async def _cmd_drop(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    await api.drop_enrollment(client, args.enrollment_id)
    console.print(f"Dropped enrollment {args.enrollment_id}.")
    return 0


async def _cmd_schedule(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    entries = await load_weekly_schedule(client)
    if not entries:
        console.print("No scheduled classes.")
        return 0

    table = Table(title="Weekly schedule", box=box.SIMPLE_HEAVY)
    for col in ("Day", "Time", "Course", "Section", "Location"):
        table.add_column(col)
    for e in entries:
        table.add_row(e.day_of_week[:3].title(), f"{e.start}-{e.end}", e.course, str(e.section or "-"), e.location)
    console.print(table)
    return 0


async def _cmd_transcript(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    transcript = await load_transcript(client)
    if not transcript.official:
        console.print("No official transcript records yet. Showing current graded enrollments (unofficial).")
    if not transcript.rows:
        console.print("No graded courses.")
        return 0

    table = Table(title="Transcript", box=box.SIMPLE_HEAVY)
    for col in ("Course", "Title", "Term", "Credits", "Grade"):
        table.add_column(col)
    for r in transcript.rows:
        credits = f"{r.credits:g}" if r.credits is not None else "-"
        table.add_row(r.course_code or "-", r.course_title or "-", r.term or "-", credits, r.grade or "-")
    console.print(table)
    console.print(f"GPA: {transcript.gpa:.2f}" if transcript.gpa is not None else "GPA: -")
    return 0


async def _cmd_roster(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    roster = await api.list_roster(client, args.offering_id)
    if not roster:
        console.print("No students enrolled.")
        return 0

    table = Table(title=f"Roster for offering {args.offering_id}", box=box.SIMPLE_HEAVY)
    for col in ("Enrollment", "Student", "Status", "Grade"):
        table.add_column(col)
    for item in roster:
        student = item.get("student") if isinstance(item.get("student"), dict) else {}
        name = student.get("fullName") or student.get("email") or item.get("studentName") or "-"
        table.add_row(str(item.get("id", "-")), str(name), str(item.get("status") or "-"), str(item.get("grade") or "-"))
    console.print(table)
    return 0


async def _cmd_grade(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    await api.set_grade(client, args.enrollment_id, args.grade)
    console.print(f"Grade {args.grade} set for enrollment {args.enrollment_id}.")
    return 0


async def _cmd_offerings(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    """
    List the offerings taught by the current instructor.
    """
    index = TermIndex.build(api.unwrap_list(await api.list_terms(client)))
    data = await api.list_instructor_offerings(
        client, q=args.q, term_id=_term_id(args.term, index), course_id=args.course, size=args.size
    )
    offerings = [Offering.from_api(o) for o in api.unwrap_list(data)]
    if not offerings:
        console.print("No offerings assigned.")
        return 0

    table = Table(title="My offerings", box=box.SIMPLE_HEAVY)
    for col in ("ID", "Course", "Term", "Section", "Status", "Schedules"):
        table.add_column(col)
    for o in offerings:
        table.add_row(
            o.id,
            o.course_label,
            o.term.code or "-",
            str(o.section or "-"),
            str(o.status or "-"),
            _blocks_text(o),
        )
    console.print(table)
    return 0


async def _cmd_grades(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    items = [parse_grade_item(text) for text in args.items]
    await api.set_bulk_grades(client, api.wire_id(args.offering_id), items)
    console.print(f"{len(items)} grade(s) set for offering {args.offering_id}.")
    return 0


CATALOG_LISTS = {
    "departments": api.list_departments,
    "courses": api.list_courses,
    "terms": api.list_terms,
}
CATALOG_DETAILS = {
    "courses": api.get_course,
    "terms": api.get_term,
}


async def _cmd_catalog(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    if args.id:
        item = await CATALOG_DETAILS[args.resource](client, args.id)
        console.print_json(json.dumps(item, ensure_ascii=False, default=str))
        return 0

    rows = api.unwrap_list(await CATALOG_LISTS[args.resource](client, q=args.q))
    if not rows:
        console.print(f"No {args.resource} found.")
        return 0

    table = Table(title=args.resource.title(), box=box.SIMPLE_HEAVY)
    for col in ("ID", "Code", "Name", "Status"):
        table.add_column(col)
    for row in rows:
        name = row.get("title") or row.get("name") or "-"
        table.add_row(str(row.get("id", "-")), str(row.get("code") or "-"), str(name), str(row.get("status") or "-"))
    console.print(table)
    return 0


async def _cmd_admin(args: argparse.Namespace, client: SessionClient, user: CurrentUser) -> int:
    if args.action == "list":
        data = await api.admin_list(client, args.resource, q=args.q)
        rows = api.unwrap_list(data)
        console.print_json(json.dumps(rows, ensure_ascii=False, default=str))
        console.print(f"{len(rows)} of {api.page_total(data)} {args.resource}")
        return 0

    if args.action in ("update", "delete") and not args.id:
        console.print(f"Please provide --id for {args.action}.")
        return 1
    payload: dict[str, Any] = {}
    if args.action in ("create", "update"):
        try:
            payload = json.loads(args.data or "")
        except json.JSONDecodeError:
            console.print("Please provide --data as a JSON object.")
            return 1
        if not isinstance(payload, dict):
            console.print("Please provide --data as a JSON object.")
            return 1

    if args.action == "create":
        result = await api.admin_create(client, args.resource, payload)
    elif args.action == "update":
        result = await api.admin_update(client, args.resource, args.id, payload)
    else:
        result = await api.admin_delete(client, args.resource, args.id)
    if result is not None:
        console.print_json(json.dumps(result, ensure_ascii=False, default=str))
    console.print(f"{args.action.title()} {args.resource}: done.")
    return 0


SESSION_HANDLERS = {
    "whoami": _cmd_whoami,
    "browse": _cmd_browse,
    "enroll": _cmd_enroll,
    "conflicts": _cmd_conflicts,
    "enrollments": _cmd_enrollments,
    "drop": _cmd_drop,
    "schedule": _cmd_schedule,
    "transcript": _cmd_transcript,
    "roster": _cmd_roster,
    "grade": _cmd_grade,
    "grades": _cmd_grades,
    "offerings": _cmd_offerings,
    "catalog": _cmd_catalog,
    "admin": _cmd_admin,
}


def required_role(command: str) -> Optional[str]:
    if command in STUDENT_COMMANDS:
        return "STUDENT"
    if command in INSTRUCTOR_COMMANDS:
        return "INSTRUCTOR"
    if command in ADMIN_COMMANDS:
        return "ADMIN"
    return None


def _validate(args: argparse.Namespace) -> Optional[str]:
    """
    Argument checks that need no network. Returns an error message or None.
    """
    for name in ("offering_id", "enrollment_id"):
        value = getattr(args, name, None)
        if value is not None and not str(value).strip():
            return f"Please provide {name.replace('_', ' ')}."
    if args.command == "grade" and args.grade.strip().upper() not in VALID_GRADES:
        return f"Grade must be one of {', '.join(VALID_GRADES)}."
    if args.command == "grades":
        for text in args.items:
            try:
                parse_grade_item(text)
            except ValueError as exc:
                return str(exc)
    if args.command == "catalog" and args.id and args.resource not in CATALOG_DETAILS:
        return f"--id is not supported for {args.resource}."
    return None


async def run(args: argparse.Namespace, client: SessionClient) -> int:
    if args.command == "login":
        return await _cmd_login(args, client)
    if args.command == "logout":
        return await _cmd_logout(args, client)

    user = await AuthService(client).bootstrap()
    if user is None:
        console.print("Not logged in. Run: coursedesk login")
        return 1

    role = required_role(args.command)
    if role and not user.has_role(role):
        console.print(f"This command requires the {role} role (you are {user.role or 'unknown'}).")
        return 1

    return await SESSION_HANDLERS[args.command](args, client, user)


async def _run_safely(args: argparse.Namespace, client: SessionClient) -> int:
    try:
        return await run(args, client)
    except UnauthorizedError:
        console.print("[red]Session expired. Please log in again:[/red] coursedesk login")
        return 1
    except ApiError as exc:
        console.print(f"[red]Request failed:[/red] {exc.message}")
        return 1
    except CoursedeskError as exc:
        console.print(f"[red]Session ended:[/red] {exc}. Please log in again: coursedesk login")
        return 1
    except requests.RequestException as exc:
        console.print(f"[red]Cannot reach the API:[/red] {exc}")
        return 1
    finally:
        client.close()


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="coursedesk", description="Course management CLI")
    parser.add_argument("--base-url", type=str, default=None, help="API base URL (env COURSEDESK_BASE_URL)")
    parser.add_argument("--token-file", type=str, default=None, help="Where the session is kept (env COURSEDESK_TOKEN_FILE)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log requests and token refreshes")
    sub = parser.add_subparsers(dest="command", required=True)

    p_login = sub.add_parser("login", help="Log in and store the session")
    p_login.add_argument("--email", type=str, default=None)
    p_login.add_argument("--password", type=str, default=None, help="Prompted for when omitted")

    sub.add_parser("logout", help="Forget the stored session")
    sub.add_parser("whoami", help="Show the logged-in user and role")

    p_browse = sub.add_parser("browse", help="List offerings open for enrollment")
    p_browse.add_argument("--q", type=str, default=None, help="Search text")
    p_browse.add_argument("--term", type=str, default=None, help="Term id or code (e.g. FALL24)")
    p_browse.add_argument("--course", type=str, default=None, help="Course id")
    p_browse.add_argument("--size", type=int, default=50, help="Max results")

    p_enroll = sub.add_parser("enroll", help="Enroll in an offering (checks schedule conflicts first)")
    p_enroll.add_argument("offering_id", type=str)

    p_conf = sub.add_parser("conflicts", help="Show schedule conflicts an offering would cause")
    p_conf.add_argument("offering_id", type=str)

    sub.add_parser("enrollments", help="List my enrollments")

    p_drop = sub.add_parser("drop", help="Drop an enrollment")
    p_drop.add_argument("enrollment_id", type=str)

    sub.add_parser("schedule", help="Show my weekly schedule")
    sub.add_parser("transcript", help="Show my transcript and GPA")

    p_roster = sub.add_parser("roster", help="List students of one of my offerings")
    p_roster.add_argument("offering_id", type=str)

    p_grade = sub.add_parser("grade", help="Set the grade of an enrollment")
    p_grade.add_argument("enrollment_id", type=str)
    p_grade.add_argument("grade", type=str)

    p_grades = sub.add_parser("grades", help="Set several grades of one offering at once")
    p_grades.add_argument("offering_id", type=str)
    p_grades.add_argument("items", nargs="+", metavar="ENROLLMENT_ID=GRADE")

    p_offerings = sub.add_parser("offerings", help="List the offerings I teach")
    p_offerings.add_argument("--q", type=str, default=None, help="Search text")
    p_offerings.add_argument("--term", type=str, default=None, help="Term id or code (e.g. FALL24)")
    p_offerings.add_argument("--course", type=str, default=None, help="Course id")
    p_offerings.add_argument("--size", type=int, default=50, help="Max results")

    p_catalog = sub.add_parser("catalog", help="Look up departments, courses and terms")
    p_catalog.add_argument("resource", choices=tuple(CATALOG_LISTS))
    p_catalog.add_argument("--id", type=str, default=None, help="Show one course or term")
    p_catalog.add_argument("--q", type=str, default=None, help="Search text")

    p_admin = sub.add_parser("admin", help="Manage departments, courses, terms, offerings and users")
    p_admin.add_argument("resource", choices=api.ADMIN_RESOURCES)
    p_admin.add_argument("action", choices=("list", "create", "update", "delete"))
    p_admin.add_argument("--id", type=str, default=None)
    p_admin.add_argument("--data", type=str, default=None, help="JSON payload for create/update")
    p_admin.add_argument("--q", type=str, default=None, help="Search text for list")

    return parser


def main(argv: list[str] | None = None, transport: Optional[Transport] = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    problem = _validate(args)
    if problem:
        console.print(problem)
        raise SystemExit(1)
    if args.command == "grade":
        args.grade = args.grade.strip().upper()

    try:
        token_path = Path(args.token_file).expanduser() if args.token_file else None
        settings: Settings = load_settings().with_overrides(base_url=args.base_url, token_path=token_path)
    except ConfigError as exc:
        console.print(f"Configuration error: {exc}")
        raise SystemExit(2)

    setup_logging("DEBUG" if args.verbose else settings.log_level)

    store = TokenStore(settings.token_path)
    store.load()
    client = SessionClient(
        settings.base_url,
        store,
        transport=transport or RequestsTransport(timeout=settings.timeout),
        refresh_timeout=settings.refresh_timeout,
    )
    raise SystemExit(asyncio.run(_run_safely(args, client)))
