"""WebSocket command handlers for Semester Planner.

Read-side commands (version, schedule snapshot, credit summary, library
listing, placed-course search, requirement groups) plus the drop intent, which
is the one mutation a drag-and-drop frontend needs to send over the socket.
Adheres to the envelope: input {id, type, ...payload}, output
result_message/error_message.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

import voluptuous as vol
from homeassistant.components import websocket_api
from homeassistant.core import HomeAssistant

from .const import DOMAIN, INTEGRATION_VERSION
from .exceptions import NotFoundError, StorageError, ValidationError
from .majors import MajorSettings
from .models import Course, CourseFilter, RequirementGroup, Semester
from .repository import DropRequest, Repository
from .storage import CURRENT_SCHEMA_VERSION, async_request_persist

LOGGER = logging.getLogger(__name__)


def _repo(hass: HomeAssistant) -> Repository:
    bucket = hass.data.get(DOMAIN) or {}
    repo = bucket.get("repository")
    if repo is None:
        raise StorageError("repository not initialized; run integration setup")
    return repo  # type: ignore[return-value]


def _majors(hass: HomeAssistant) -> MajorSettings:
    bucket = hass.data.get(DOMAIN) or {}
    majors = bucket.get("majors")
    if majors is None:
        raise StorageError("requirement groups not initialized; run integration setup")
    return majors  # type: ignore[return-value]


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, StorageError):
        return "storage_error"
    return "unknown_error"


def _error_message(_id: int, exc: Exception, *, context: dict[str, Any]):
    level = logging.ERROR if isinstance(exc, StorageError) else logging.WARNING
    LOGGER.log(level, str(exc), extra={"domain": DOMAIN, **context}, exc_info=True)
    return websocket_api.error_message(_id, _error_code(exc), str(exc))


# -----------------------------
# Unified exception handling for WS handlers
# -----------------------------

_WSHandler = Callable[[HomeAssistant, Any, dict], Awaitable[Any]]


def ws_guard(op: str, context_fields: tuple[str, ...] = ()) -> Callable[[_WSHandler], _WSHandler]:
    """Decorator to map known domain exceptions to unified WS errors.

    Builds a structured log context from selected fields in the incoming message
    and sends a websocket error envelope with {code, message}.
    """

    def decorator(func: _WSHandler) -> _WSHandler:
        @wraps(func)
        async def wrapper(hass: HomeAssistant, conn, msg):
            try:
                return await func(hass, conn, msg)
            except (ValidationError, NotFoundError, StorageError) as exc:
                ctx: dict[str, Any] = {"op": op}
                ctx.update({f: msg[f] for f in context_fields if f in msg})
                conn.send_message(_error_message(msg.get("id", 0), exc, context=ctx))
                return None

        return wrapper

    return decorator


# -----------------------------
# Serializers
# -----------------------------


def serialize_course(course: Course) -> dict[str, Any]:
    return {
        "id": course.id,
        "code": course.code,
        "name": course.name,
        "credits": course.credits,
        "is_completed": course.is_completed,
        "category": course.category,
        "major_requirements": list(course.major_requirements),
    }


def serialize_semester(semester: Semester) -> dict[str, Any]:
    return {
        "id": semester.id,
        "name": semester.name,
        "type": semester.type,
        "year": semester.year,
        "course_ids": list(semester.course_ids),
    }


def serialize_major(major: RequirementGroup) -> dict[str, Any]:
    return {
        "id": major.id,
        "name": major.name,
        "color": major.color,
        "display_order": major.display_order,
    }


def schedule_snapshot(repo: Repository) -> dict[str, Any]:
    """Full read model: pool, ordered semesters and the current selection."""

    schedule = repo.schedule
    return {
        "generation": repo.generation,
        "courses": [serialize_course(c) for c in schedule.courses.values()],
        "semesters": [serialize_semester(s) for s in schedule.semesters],
        "selection": repo.selection.ids(),
    }


def _filter_from_msg(msg: dict) -> CourseFilter:
    keys = ("q", "show_completed", "show_incomplete", "categories", "requirements", "semesters")
    return {k: msg[k] for k in keys if k in msg}  # type: ignore[return-value]


def drop_request_from_msg(msg: dict) -> DropRequest:
    return DropRequest(
        course_id=msg["course_id"],
        to_semester_id=msg["to_semester_id"],
        from_semester_id=msg.get("from_semester_id"),
        position=msg.get("position"),
        multi_select=bool(msg.get("multi_select", False)),
    )


# -----------------------------
# Commands
# -----------------------------


@websocket_api.websocket_command({"type": "semester_planner/version"})
@websocket_api.async_response
async def ws_version(hass: HomeAssistant, conn, msg):
    bucket = hass.data.get(DOMAIN) or {}
    ver = getattr(bucket.get("store"), "schema_version", None)
    result = {
        "integration_version": INTEGRATION_VERSION,
        "schema_version": ver if isinstance(ver, int) else int(CURRENT_SCHEMA_VERSION),
    }
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command({"type": "semester_planner/schedule"})
@websocket_api.async_response
@ws_guard("schedule_get")
async def ws_schedule(hass: HomeAssistant, conn, msg):
    conn.send_message(websocket_api.result_message(msg.get("id", 0), schedule_snapshot(_repo(hass))))


@websocket_api.websocket_command({"type": "semester_planner/summary"})
@websocket_api.async_response
@ws_guard("summary_get")
async def ws_summary(hass: HomeAssistant, conn, msg):
    summary = _repo(hass).summary(_majors(hass).list_majors())
    conn.send_message(websocket_api.result_message(msg.get("id", 0), summary))


@websocket_api.websocket_command(
    {
        vol.Required("type"): "semester_planner/courses/list",
        vol.Optional("q"): str,
        vol.Optional("show_completed"): bool,
        vol.Optional("show_incomplete"): bool,
        vol.Optional("categories"): [str],
        vol.Optional("requirements"): [str],
        vol.Optional("semesters"): [str],
    }
)
@websocket_api.async_response
@ws_guard("courses_list")
async def ws_courses_list(hass: HomeAssistant, conn, msg):
    courses = _repo(hass).list_courses(_filter_from_msg(msg), _majors(hass).list_majors())
    result = {"courses": [serialize_course(c) for c in courses]}
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command(
    {vol.Required("type"): "semester_planner/search", vol.Required("term"): str}
)
@websocket_api.async_response
@ws_guard("search_placed", ("term",))
async def ws_search(hass: HomeAssistant, conn, msg):
    matches = _repo(hass).search_placed(msg["term"])
    result = {
        "results": [
            {"semester_id": semester.id, "course": serialize_course(course)}
            for semester, course in matches
        ]
    }
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command({"type": "semester_planner/majors"})
@websocket_api.async_response
@ws_guard("majors_list")
async def ws_majors(hass: HomeAssistant, conn, msg):
    result = {"majors": [serialize_major(m) for m in _majors(hass).list_majors()]}
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command(
    {
        vol.Required("type"): "semester_planner/drop",
        vol.Required("course_id"): str,
        vol.Required("to_semester_id"): str,
        vol.Optional("from_semester_id"): vol.Any(str, None),
        vol.Optional("position"): vol.Any(int, None),
        vol.Optional("multi_select"): bool,
    }
)
@websocket_api.async_response
@ws_guard("drop", ("course_id", "to_semester_id"))
async def ws_drop(hass: HomeAssistant, conn, msg):
    repo = _repo(hass)
    applied = repo.apply_drop(drop_request_from_msg(msg))
    if applied:
        await async_request_persist(hass)
    result = {"applied": applied, "schedule": schedule_snapshot(repo)}
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


HANDLERS = (
    ws_version,
    ws_schedule,
    ws_summary,
    ws_courses_list,
    ws_search,
    ws_majors,
    ws_drop,
)


def setup(hass: HomeAssistant) -> None:
    # Idempotent: avoid duplicate registration across reloads
    bucket = hass.data.setdefault(DOMAIN, {})
    if bucket.get("ws_registered"):
        return

    for h in HANDLERS:
        websocket_api.async_register_command(hass, h)

    bucket["ws_registered"] = True
