"""Service registration and handlers for Semester Planner.

Exposes Home Assistant services under the ``semester_planner`` domain. These
are the intent boundary: each service call is validated with voluptuous,
applied through the ``Repository`` (or ``MajorSettings``) and, when it changed
something, followed by a debounced persistence request.

Errors from the domain layer (validation, not found) are logged with
contextual fields and do not raise stack traces. Rejected placement changes
are not errors; they are logged at debug level and persist nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import voluptuous as vol
from homeassistant.core import HomeAssistant

from .const import COURSE_CATEGORIES, DOMAIN, SEMESTER_TYPES
from .exceptions import NotFoundError, StorageError, ValidationError
from .majors import MajorSettings
from .repository import DropRequest, Repository
from .storage import async_request_majors_persist, async_request_persist

LOGGER = logging.getLogger(__name__)


# -----------------------------
# Validation schemas
# -----------------------------

_NUMBER = vol.Any(int, float)
_POSITION = vol.Any(int, None)
_IDS = [str]

_COURSE_FIELDS = {
    vol.Optional("credits"): _NUMBER,
    vol.Optional("is_completed"): bool,
    vol.Optional("category"): vol.In(COURSE_CATEGORIES),
    vol.Optional("major_requirements"): _IDS,
}

SCHEMA_SEMESTER_ADD = vol.Schema(
    {vol.Required("type"): vol.In(SEMESTER_TYPES), vol.Required("year"): int}
)

SCHEMA_SEMESTER_ID = vol.Schema({vol.Required("semester_id"): str})

SCHEMA_SEMESTER_RENAME = vol.Schema(
    {vol.Required("semester_id"): str, vol.Required("name"): str}
)

SCHEMA_COURSE_CREATE = vol.Schema(
    {vol.Required("code"): str, vol.Required("name"): str, **_COURSE_FIELDS}
)

SCHEMA_COURSE_UPDATE = vol.Schema(
    {
        vol.Required("course_id"): str,
        vol.Optional("code"): str,
        vol.Optional("name"): str,
        **_COURSE_FIELDS,
    }
)

SCHEMA_COURSE_ID = vol.Schema({vol.Required("course_id"): str})

SCHEMA_COURSES_REMOVE = vol.Schema({vol.Optional("course_ids"): _IDS})

SCHEMA_COURSES_SET_COMPLETION = vol.Schema(
    {vol.Required("completed"): bool, vol.Optional("course_ids"): _IDS}
)

SCHEMA_COURSE_INSERT = vol.Schema(
    {
        vol.Required("semester_id"): str,
        vol.Required("course_id"): str,
        vol.Optional("position"): _POSITION,
    }
)

SCHEMA_COURSE_INSERT_NEW = vol.Schema(
    {
        vol.Required("semester_id"): str,
        vol.Optional("position"): _POSITION,
        vol.Required("code"): str,
        vol.Required("name"): str,
        **_COURSE_FIELDS,
    }
)

SCHEMA_COURSE_REMOVE_FROM_SEMESTER = vol.Schema(
    {vol.Required("semester_id"): str, vol.Required("course_id"): str}
)

SCHEMA_COURSE_REORDER = vol.Schema(
    {
        vol.Required("semester_id"): str,
        vol.Required("from_index"): int,
        vol.Required("to_index"): int,
    }
)

SCHEMA_COURSE_MOVE = vol.Schema(
    {
        vol.Required("from_semester_id"): str,
        vol.Required("to_semester_id"): str,
        vol.Required("course_id"): str,
        vol.Optional("position"): _POSITION,
    }
)

SCHEMA_SELECTED_INSERT = vol.Schema(
    {
        vol.Required("semester_id"): str,
        vol.Optional("position"): _POSITION,
        vol.Optional("course_ids"): _IDS,
    }
)

SCHEMA_SELECTED_MOVE = vol.Schema(
    {
        vol.Required("from_semester_id"): str,
        vol.Required("to_semester_id"): str,
        vol.Optional("position"): _POSITION,
        vol.Optional("course_ids"): _IDS,
    }
)

SCHEMA_SELECTED_REMOVE = vol.Schema(
    {vol.Required("semester_id"): str, vol.Optional("course_ids"): _IDS}
)

SCHEMA_SELECTED_REORDER = vol.Schema(
    {
        vol.Required("semester_id"): str,
        vol.Required("drop_position"): int,
        vol.Optional("course_ids"): _IDS,
    }
)

SCHEMA_COURSE_DROP = vol.Schema(
    {
        vol.Required("course_id"): str,
        vol.Required("to_semester_id"): str,
        vol.Optional("from_semester_id"): vol.Any(str, None),
        vol.Optional("position"): _POSITION,
        vol.Optional("multi_select", default=False): bool,
    }
)

SCHEMA_SELECT_ALL = vol.Schema({vol.Optional("course_ids"): _IDS})

SCHEMA_EMPTY = vol.Schema({})

SCHEMA_MAJOR_ADD = vol.Schema(
    {vol.Required("id"): str, vol.Required("name"): str, vol.Optional("color"): str}
)

SCHEMA_MAJOR_UPDATE = vol.Schema(
    {vol.Required("major_id"): str, vol.Optional("name"): str, vol.Optional("color"): str}
)

SCHEMA_MAJOR_ID = vol.Schema({vol.Required("major_id"): str})

SCHEMA_MAJOR_REORDER = vol.Schema(
    {vol.Required("drag_index"): int, vol.Required("drop_index"): int}
)


# -----------------------------
# Internal helpers
# -----------------------------


def _get_repo(hass: HomeAssistant) -> Repository:
    bucket = hass.data.setdefault(DOMAIN, {})
    repo = bucket.get("repository")
    if repo is None:
        repo = Repository()
        bucket["repository"] = repo
    return repo  # type: ignore[return-value]


def _get_majors(hass: HomeAssistant) -> MajorSettings:
    bucket = hass.data.setdefault(DOMAIN, {})
    majors = bucket.get("majors")
    if majors is None:
        majors = MajorSettings()
        bucket["majors"] = majors
    return majors  # type: ignore[return-value]


def _log_domain_error(op: str, context: dict[str, Any], exc: Exception) -> None:
    LOGGER.warning(str(exc), extra={"domain": DOMAIN, "op": op, **context})


async def _request_persist(hass: HomeAssistant, dataset: str) -> None:
    try:
        if dataset == "majors":
            await async_request_majors_persist(hass)
        else:
            await async_request_persist(hass)
    except StorageError:
        LOGGER.warning(
            "Failed to schedule persistence",
            exc_info=True,
            extra={"domain": DOMAIN, "op": "persist_request", "dataset": dataset},
        )


def _without(payload: dict[str, Any], *exclude: str) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in exclude}


# -----------------------------
# Actions: (target, payload) -> result; ``False`` means nothing changed
# -----------------------------

Action = Callable[[Any, dict[str, Any]], Any]

_SCHEDULE_ACTIONS: dict[str, tuple[vol.Schema, Action]] = {
    "semester_add": (
        SCHEMA_SEMESTER_ADD,
        lambda repo, p: repo.add_semester(p["type"], p["year"]),
    ),
    "semester_remove": (
        SCHEMA_SEMESTER_ID,
        lambda repo, p: repo.remove_semester(p["semester_id"]),
    ),
    "semester_rename": (
        SCHEMA_SEMESTER_RENAME,
        lambda repo, p: repo.rename_semester(p["semester_id"], p["name"]),
    ),
    "semester_clear": (
        SCHEMA_SEMESTER_ID,
        lambda repo, p: repo.clear_semester(p["semester_id"]),
    ),
    "course_create": (
        SCHEMA_COURSE_CREATE,
        lambda repo, p: repo.create_course(p),
    ),
    "course_update": (
        SCHEMA_COURSE_UPDATE,
        lambda repo, p: repo.update_course(p["course_id"], _without(p, "course_id")),
    ),
    "course_remove": (
        SCHEMA_COURSE_ID,
        lambda repo, p: repo.remove_course(p["course_id"]),
    ),
    "courses_remove": (
        SCHEMA_COURSES_REMOVE,
        lambda repo, p: repo.remove_courses(p.get("course_ids")),
    ),
    "course_toggle_completion": (
        SCHEMA_COURSE_ID,
        lambda repo, p: repo.toggle_completion(p["course_id"]),
    ),
    "courses_set_completion": (
        SCHEMA_COURSES_SET_COMPLETION,
        lambda repo, p: repo.set_completion(p["completed"], p.get("course_ids")),
    ),
    "course_insert": (
        SCHEMA_COURSE_INSERT,
        lambda repo, p: repo.insert_at(p["semester_id"], p["course_id"], p.get("position")),
    ),
    "course_insert_new": (
        SCHEMA_COURSE_INSERT_NEW,
        lambda repo, p: repo.insert_new_course_at(
            p["semester_id"], _without(p, "semester_id", "position"), p.get("position")
        )
        or False,
    ),
    "course_remove_from_semester": (
        SCHEMA_COURSE_REMOVE_FROM_SEMESTER,
        lambda repo, p: repo.remove_from_semester(p["semester_id"], p["course_id"]),
    ),
    "course_reorder": (
        SCHEMA_COURSE_REORDER,
        lambda repo, p: repo.reorder(p["semester_id"], p["from_index"], p["to_index"]),
    ),
    "course_move": (
        SCHEMA_COURSE_MOVE,
        lambda repo, p: repo.move_between(
            p["from_semester_id"], p["to_semester_id"], p["course_id"], p.get("position")
        ),
    ),
    "selected_insert": (
        SCHEMA_SELECTED_INSERT,
        lambda repo, p: repo.insert_selected_at(
            p["semester_id"], p.get("position"), p.get("course_ids")
        ),
    ),
    "selected_move": (
        SCHEMA_SELECTED_MOVE,
        lambda repo, p: repo.move_selected_between(
            p["from_semester_id"], p["to_semester_id"], p.get("position"), p.get("course_ids")
        ),
    ),
    "selected_remove_from_semester": (
        SCHEMA_SELECTED_REMOVE,
        lambda repo, p: repo.remove_selected_from_semester(
            p["semester_id"], p.get("course_ids")
        ),
    ),
    "selected_reorder": (
        SCHEMA_SELECTED_REORDER,
        lambda repo, p: repo.reorder_selected(
            p["semester_id"], p["drop_position"], p.get("course_ids")
        ),
    ),
    "course_drop": (
        SCHEMA_COURSE_DROP,
        lambda repo, p: repo.apply_drop(DropRequest(**p)),
    ),
}

# Selection is session state and is never persisted
_SELECTION_ACTIONS: dict[str, tuple[vol.Schema, Action]] = {
    "selection_toggle": (SCHEMA_COURSE_ID, lambda repo, p: repo.toggle_selection(p["course_id"])),
    "selection_add": (SCHEMA_COURSE_ID, lambda repo, p: repo.select(p["course_id"])),
    "selection_remove": (SCHEMA_COURSE_ID, lambda repo, p: repo.deselect(p["course_id"])),
    "selection_clear": (SCHEMA_EMPTY, lambda repo, p: repo.clear_selection()),
    "selection_select_all": (
        SCHEMA_SELECT_ALL,
        lambda repo, p: repo.select_all(p.get("course_ids")),
    ),
}

_MAJOR_ACTIONS: dict[str, tuple[vol.Schema, Action]] = {
    "major_add": (
        SCHEMA_MAJOR_ADD,
        lambda majors, p: majors.add(p["id"], p["name"], **_without(p, "id", "name")),
    ),
    "major_update": (
        SCHEMA_MAJOR_UPDATE,
        lambda majors, p: majors.update(p["major_id"], name=p.get("name"), color=p.get("color")),
    ),
    "major_remove": (SCHEMA_MAJOR_ID, lambda majors, p: majors.remove(p["major_id"])),
    "major_reorder": (
        SCHEMA_MAJOR_REORDER,
        lambda majors, p: majors.reorder(p["drag_index"], p["drop_index"]),
    ),
}

SERVICE_NAMES: tuple[str, ...] = (*_SCHEDULE_ACTIONS, *_SELECTION_ACTIONS, *_MAJOR_ACTIONS)

_CONTEXT_KEYS = ("semester_id", "course_id", "from_semester_id", "to_semester_id", "major_id")


# -----------------------------
# Service handler (exported for tests)
# -----------------------------


async def async_handle_service(hass: HomeAssistant, service: str, data: dict) -> Any:
    """Validate and apply one service call; returns the action result or None on error."""

    op = service
    context = {k: data[k] for k in _CONTEXT_KEYS if k in data}
    if service in _SCHEDULE_ACTIONS:
        schema, action = _SCHEDULE_ACTIONS[service]
        target: Any = _get_repo(hass)
        dataset: str | None = "schedule"
    elif service in _SELECTION_ACTIONS:
        schema, action = _SELECTION_ACTIONS[service]
        target = _get_repo(hass)
        dataset = None
    elif service in _MAJOR_ACTIONS:
        schema, action = _MAJOR_ACTIONS[service]
        target = _get_majors(hass)
        dataset = "majors"
    else:
        raise ValueError(f"unknown service: {service}")

    try:
        payload = schema(data)
        result = action(target, payload)
    except vol.Invalid as exc:
        _log_domain_error(op, context, ValidationError(str(exc)))
        return None
    except (ValidationError, NotFoundError) as exc:
        _log_domain_error(op, context, exc)
        return None
    except Exception:  # pragma: no cover - unexpected
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})
        return None

    if dataset is not None and result is False:
        LOGGER.debug("Service had no effect", extra={"domain": DOMAIN, "op": op, **context})
        return result
    if dataset is not None:
        await _request_persist(hass, dataset)
    return result


def _make_handler(hass: HomeAssistant, service: str) -> Callable[[Any], Any]:
    async def _handler(call: Any) -> None:
        await async_handle_service(hass, service, dict(call.data))

    return _handler


def setup(hass: HomeAssistant) -> None:
    """Register semester_planner.* services on Home Assistant."""

    # Idempotent: avoid duplicate registration across reloads
    bucket = hass.data.setdefault(DOMAIN, {})
    if bucket.get("services_registered"):
        return

    # Home Assistant validates inputs according to these schemas before
    # invoking the handler.
    for table in (_SCHEDULE_ACTIONS, _SELECTION_ACTIONS, _MAJOR_ACTIONS):
        for service, (schema, _action) in table.items():
            hass.services.async_register(DOMAIN, service, _make_handler(hass, service), schema)

    bucket["services_registered"] = True


def teardown(hass: HomeAssistant) -> None:
    """Remove registered services."""

    bucket = hass.data.get(DOMAIN) or {}
    if not bucket.pop("services_registered", None):
        return
    for service in SERVICE_NAMES:
        hass.services.async_remove(DOMAIN, service)
