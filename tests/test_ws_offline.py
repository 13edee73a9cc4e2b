"""Offline tests for the WebSocket layer.

Scenarios:
- serializers and the schedule snapshot read model
- drop intents decoded from a message default to append without multi-select
- handlers send result envelopes (called beneath the async_response wrapper)
- ws_guard maps domain errors to error envelopes with stable codes
- the drop command applies the intent and requests a persist only on change
- setup registers every command once
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock

import pytest
from custom_components.semester_planner import ws as ws_mod
from custom_components.semester_planner.const import DOMAIN, INTEGRATION_VERSION
from custom_components.semester_planner.exceptions import NotFoundError, StorageError, ValidationError
from custom_components.semester_planner.majors import MajorSettings
from custom_components.semester_planner.repository import DropRequest, Repository
from custom_components.semester_planner.storage import CURRENT_SCHEMA_VERSION

FALL_24 = "semester_2024_fall"
MANDATORY_COUNT = 8
MSG_ID = 42


class _ConnCollect:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def send_message(self, msg: dict[str, Any]) -> None:
        self.sent.append(msg)

    @property
    def last(self) -> dict[str, Any]:
        return self.sent[-1]


def _inner(handler):
    """The coroutine beneath websocket_api.async_response."""

    return handler.__wrapped__


@pytest.fixture
def bucket(hass) -> dict:
    data = hass.data[DOMAIN]
    data["repository"] = Repository()
    data["majors"] = MajorSettings()
    data["scheduler"] = MagicMock()
    return data


def test_drop_request_from_msg_defaults() -> None:
    request = ws_mod.drop_request_from_msg({"course_id": "c", "to_semester_id": FALL_24})
    assert request == DropRequest(course_id="c", to_semester_id=FALL_24)


def test_schedule_snapshot_shape(bucket) -> None:
    repo: Repository = bucket["repository"]
    course = repo.create_course({"code": "A", "name": "B", "major_requirements": ["CCC"]})
    repo.append(FALL_24, course.id)
    repo.select(course.id)

    snapshot = ws_mod.schedule_snapshot(repo)
    assert snapshot["generation"] == repo.generation
    assert snapshot["courses"] == [ws_mod.serialize_course(course)]
    assert snapshot["courses"][0]["major_requirements"] == ["CCC"]
    assert len(snapshot["semesters"]) == MANDATORY_COUNT
    assert snapshot["semesters"][0] == {
        "id": FALL_24,
        "name": "Fall 2024",
        "type": "Fall",
        "year": 2024,
        "course_ids": [course.id],
    }
    assert snapshot["selection"] == [course.id]


@pytest.mark.asyncio
async def test_version_reports_schema(hass) -> None:
    conn = _ConnCollect()
    await _inner(ws_mod.ws_version)(hass, conn, {"id": MSG_ID})
    assert conn.last["success"] is True
    assert conn.last["result"] == {
        "integration_version": INTEGRATION_VERSION,
        "schema_version": CURRENT_SCHEMA_VERSION,
    }


@pytest.mark.asyncio
async def test_courses_list_and_summary(hass, bucket) -> None:
    repo: Repository = bucket["repository"]
    repo.create_course({"code": "B 1", "name": "Done", "credits": 4, "is_completed": True})
    repo.create_course({"code": "A 1", "name": "Open", "major_requirements": ["DSCT"]})
    conn = _ConnCollect()

    await _inner(ws_mod.ws_courses_list)(hass, conn, {"id": 1, "show_completed": False})
    assert [c["code"] for c in conn.last["result"]["courses"]] == ["A 1"]

    await _inner(ws_mod.ws_summary)(hass, conn, {"id": 2})
    summary = conn.last["result"]
    assert summary["total_credits"] == 7
    assert summary["completed_credits"] == 4
    assert summary["requirements"]["DSCT"] == {"completed": 0, "total": 3}


@pytest.mark.asyncio
async def test_search_returns_semester_pairs(hass, bucket) -> None:
    repo: Repository = bucket["repository"]
    course = repo.create_course({"code": "STAT 200", "name": "Statistics"})
    repo.append(FALL_24, course.id)
    conn = _ConnCollect()

    await _inner(ws_mod.ws_search)(hass, conn, {"id": 3, "term": "stat"})
    assert conn.last["result"]["results"] == [
        {"semester_id": FALL_24, "course": ws_mod.serialize_course(course)}
    ]


@pytest.mark.asyncio
async def test_drop_requests_persist_only_when_applied(hass, bucket) -> None:
    repo: Repository = bucket["repository"]
    course = repo.create_course({"code": "A", "name": "B"})
    conn = _ConnCollect()
    msg = {"id": 4, "course_id": course.id, "to_semester_id": FALL_24}

    await _inner(ws_mod.ws_drop)(hass, conn, msg)
    assert conn.last["result"]["applied"] is True
    assert conn.last["result"]["schedule"]["semesters"][0]["course_ids"] == [course.id]

    await _inner(ws_mod.ws_drop)(hass, conn, {**msg, "position": 0})
    assert conn.last["result"]["applied"] is False
    assert bucket["scheduler"].request.call_count == 1


@pytest.mark.asyncio
async def test_missing_repository_maps_to_storage_error(hass, caplog) -> None:
    conn = _ConnCollect()
    with caplog.at_level(logging.ERROR):
        await _inner(ws_mod.ws_schedule)(hass, conn, {"id": MSG_ID})
    assert conn.last["id"] == MSG_ID
    assert conn.last["success"] is False
    assert conn.last["error"]["code"] == "storage_error"
    assert any(getattr(r, "op", None) == "schedule_get" for r in caplog.records)


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (ValidationError("bad"), "validation_error"),
        (NotFoundError("gone"), "not_found"),
        (StorageError("disk"), "storage_error"),
    ],
)
@pytest.mark.asyncio
async def test_ws_guard_maps_domain_errors(hass, exc, code, caplog) -> None:
    @ws_mod.ws_guard("probe", ("course_id",))
    async def handler(_hass, _conn, _msg):
        raise exc

    conn = _ConnCollect()
    with caplog.at_level(logging.WARNING):
        result = await handler(hass, conn, {"id": 7, "course_id": "c1", "other": "x"})
    assert result is None
    assert conn.last["error"] == {"code": code, "message": str(exc)}
    record = next(r for r in caplog.records if getattr(r, "op", None) == "probe")
    assert record.course_id == "c1"
    assert not hasattr(record, "other")


@pytest.mark.asyncio
async def test_ws_guard_propagates_unexpected_errors(hass) -> None:
    @ws_mod.ws_guard("probe")
    async def handler(_hass, _conn, _msg):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await handler(hass, _ConnCollect(), {"id": 1})


def test_setup_registers_commands_once(hass, monkeypatch) -> None:
    registered: list[Any] = []
    monkeypatch.setattr(
        ws_mod.websocket_api, "async_register_command", lambda _hass, h: registered.append(h)
    )
    ws_mod.setup(hass)
    ws_mod.setup(hass)
    assert registered == list(ws_mod.HANDLERS)
    assert hass.data[DOMAIN]["ws_registered"] is True
