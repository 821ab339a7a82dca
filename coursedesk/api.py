"""
Resource endpoints of the course-management REST API.

Thin async wrappers over SessionClient, one per endpoint. They return the
decoded JSON; list endpoints are normalized with ``unwrap_list`` because
the server answers either with a bare list or with a page object.
"""

from __future__ import annotations

from typing import Any, Optional

from coursedesk.session import SessionClient


LIST_KEYS = ("content", "items", "records", "rows", "list", "data")

ADMIN_RESOURCES = ("departments", "courses", "terms", "offerings", "users")


def unwrap_list(data: Any, extra_keys: tuple[str, ...] = ()) -> list[Any]:
    """
    Return the list inside an API answer (bare list or page object), [] otherwise.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in LIST_KEYS + extra_keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def page_total(data: Any) -> int:
    if isinstance(data, dict):
        for key in ("totalElements", "total"):
            if isinstance(data.get(key), int):
                return data[key]
    return len(unwrap_list(data))


def _params(**kwargs: Any) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None and v != ""}


def wire_id(value: Any) -> Any:
    """Numeric ids go back to the server as numbers."""
    text = str(value).strip()
    return int(text) if text.isdigit() else text


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


async def login(client: SessionClient, email: str, password: str) -> Any:
    return await client.post_json("/auth/login", {"email": email, "password": password})


async def me(client: SessionClient) -> Any:
    return await client.get_json("/auth/me")


async def register(client: SessionClient, form: dict[str, Any]) -> Any:
    return await client.post_json("/auth/register", form)


# ---------------------------------------------------------------------------
# Catalog (read-only, any role)
# ---------------------------------------------------------------------------


async def list_offerings(
    client: SessionClient,
    q: Optional[str] = None,
    term_id: Any = None,
    course_id: Any = None,
    instructor_id: Any = None,
    page: int = 0,
    size: int = 50,
) -> Any:
    params = _params(q=q, termId=term_id, courseId=course_id, instructorId=instructor_id, page=page, size=size)
    return await client.get_json("/offerings", params=params)


async def get_offering(client: SessionClient, offering_id: Any) -> Any:
    return await client.get_json(f"/offerings/{offering_id}")


async def list_terms(client: SessionClient, q: Optional[str] = None, page: int = 0, size: int = 1000) -> Any:
    return await client.get_json("/terms", params=_params(q=q, page=page, size=size))


async def get_term(client: SessionClient, term_id: Any) -> Any:
    return await client.get_json(f"/terms/{term_id}")


async def list_courses(client: SessionClient, q: Optional[str] = None, page: int = 0, size: int = 1000) -> Any:
    return await client.get_json("/courses", params=_params(q=q, page=page, size=size))


async def get_course(client: SessionClient, course_id: Any) -> Any:
    return await client.get_json(f"/courses/{course_id}")


async def list_departments(client: SessionClient, q: Optional[str] = None, page: int = 0, size: int = 100) -> Any:
    return await client.get_json("/departments", params=_params(q=q, page=page, size=size))


# ---------------------------------------------------------------------------
# Student
# ---------------------------------------------------------------------------


async def list_my_enrollments(client: SessionClient) -> list[Any]:
    return unwrap_list(await client.get_json("/student/enrollments"))


async def enroll_in_offering(client: SessionClient, offering_id: Any) -> Any:
    return await client.post_json("/student/enrollments", {"offeringId": offering_id})


async def drop_enrollment(client: SessionClient, enrollment_id: Any) -> Any:
    return await client.delete_json(f"/student/enrollments/{enrollment_id}")


async def get_transcript(client: SessionClient) -> Any:
    return await client.get_json("/student/transcript")


# ---------------------------------------------------------------------------
# Instructor
# ---------------------------------------------------------------------------


async def list_instructor_offerings(
    client: SessionClient,
    q: Optional[str] = None,
    term_id: Any = None,
    course_id: Any = None,
    page: int = 0,
    size: int = 50,
) -> Any:
    params = _params(q=q, termId=term_id, courseId=course_id, page=page, size=size)
    return await client.get_json("/instructor/offerings", params=params)


async def list_roster(client: SessionClient, offering_id: Any) -> list[Any]:
    return unwrap_list(await client.get_json(f"/instructor/offerings/{offering_id}/enrollments"))


async def set_grade(client: SessionClient, enrollment_id: Any, grade: str) -> Any:
    return await client.post_json(f"/instructor/grades/set/{enrollment_id}", None, params={"grade": grade})


async def set_bulk_grades(client: SessionClient, offering_id: Any, items: list[dict[str, Any]]) -> Any:
    return await client.post_json("/instructor/grades/bulk", {"offeringId": offering_id, "items": items})


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------


def _check_resource(resource: str) -> str:
    if resource not in ADMIN_RESOURCES:
        raise ValueError(f"Unknown admin resource: {resource!r}")
    return resource


async def admin_list(client: SessionClient, resource: str, q: Optional[str] = None, page: int = 0, size: int = 50) -> Any:
    resource = _check_resource(resource)
    if resource == "users":
        return await list_users(client, q=q, page=page, size=size)
    # catalog lists are public; admin only writes
    return await client.get_json(f"/{resource}", params=_params(q=q, page=page, size=size))


async def admin_create(client: SessionClient, resource: str, payload: dict[str, Any]) -> Any:
    return await client.post_json(f"/admin/{_check_resource(resource)}", payload)


async def admin_update(client: SessionClient, resource: str, item_id: Any, payload: dict[str, Any]) -> Any:
    return await client.put_json(f"/admin/{_check_resource(resource)}/{item_id}", payload)


async def admin_delete(client: SessionClient, resource: str, item_id: Any) -> Any:
    return await client.delete_json(f"/admin/{_check_resource(resource)}/{item_id}")


async def list_users(client: SessionClient, q: Optional[str] = None, page: int = 0, size: int = 50) -> Any:
    params = _params(page=page, size=size)
    if q:
        # the user search parameter name differs between server versions
        params.update(q=q, search=q, keyword=q)
    return await client.get_json("/admin/users", params=params)
