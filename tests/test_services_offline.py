"""Offline tests for the Semester Planner services layer.

Scenarios:
- create and insert a course; each applied change requests one persist
- invalid payloads and domain errors are logged with context, nothing persists
- rejected placement changes return False and persist nothing
- selection services never persist; major services use their own scheduler
- course_drop honours multi_select
- setup registers every service once; teardown removes them
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from custom_components.semester_planner import services as services_mod
from custom_components.semester_planner.const import DOMAIN
from custom_components.semester_planner.majors import MajorSettings
from custom_components.semester_planner.repository import Repository

FALL_24 = "semester_2024_fall"
SPRING_25 = "semester_2025_spring"


@pytest.fixture
def bucket(hass) -> dict:
    data = hass.data[DOMAIN]
    data["repository"] = Repository()
    data["majors"] = MajorSettings()
    data["scheduler"] = MagicMock()
    data["majors_scheduler"] = MagicMock()
    return data


async def _call(hass, service: str, **data):
    return await services_mod.async_handle_service(hass, service, data)


@pytest.mark.asyncio
async def test_create_and_insert_request_persist(hass, bucket) -> None:
    course = await _call(hass, "course_create", code="MATH 101", name="Calculus", credits=4)
    assert course.credits == 4
    assert await _call(hass, "course_insert", semester_id=FALL_24, course_id=course.id) is True

    repo: Repository = bucket["repository"]
    assert repo.get_semester(FALL_24).course_ids == (course.id,)
    assert bucket["scheduler"].request.call_count == 2
    bucket["majors_scheduler"].request.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_payload_is_logged_without_persist(hass, bucket, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        assert await _call(hass, "course_create", name="No code") is None
        assert await _call(hass, "course_create", code="X", name="Y", credits=50) is None
        assert await _call(hass, "course_update", course_id="missing", name="Z") is None

    ops = [getattr(r, "op", None) for r in caplog.records if r.levelno == logging.WARNING]
    assert ops == ["course_create", "course_create", "course_update"]
    assert all(r.exc_info is None for r in caplog.records)
    bucket["scheduler"].request.assert_not_called()


@pytest.mark.asyncio
async def test_rejected_placement_persists_nothing(hass, bucket) -> None:
    course = await _call(hass, "course_create", code="A", name="B")
    await _call(hass, "course_insert", semester_id=FALL_24, course_id=course.id)
    bucket["scheduler"].reset_mock()

    result = await _call(hass, "course_insert", semester_id=SPRING_25, course_id=course.id)
    assert result is False
    assert await _call(hass, "semester_remove", semester_id=FALL_24) is False
    bucket["scheduler"].request.assert_not_called()


@pytest.mark.asyncio
async def test_selection_services_do_not_persist(hass, bucket) -> None:
    course = await _call(hass, "course_create", code="A", name="B")
    bucket["scheduler"].reset_mock()

    assert await _call(hass, "selection_toggle", course_id=course.id) is True
    await _call(hass, "selection_select_all")
    await _call(hass, "selection_clear")
    bucket["scheduler"].request.assert_not_called()


@pytest.mark.asyncio
async def test_bulk_insert_consumes_selection(hass, bucket) -> None:
    first = await _call(hass, "course_create", code="A1", name="First")
    second = await _call(hass, "course_create", code="A2", name="Second")
    await _call(hass, "selection_select_all", course_ids=[second.id, first.id])

    assert await _call(hass, "selected_insert", semester_id=FALL_24, position=0) is True
    repo: Repository = bucket["repository"]
    assert repo.get_semester(FALL_24).course_ids == (first.id, second.id)
    assert len(repo.selection) == 0


@pytest.mark.asyncio
async def test_course_drop_multi_select(hass, bucket) -> None:
    repo: Repository = bucket["repository"]
    a = await _call(hass, "course_create", code="A", name="A")
    b = await _call(hass, "course_create", code="B", name="B")
    await _call(hass, "selected_insert", semester_id=FALL_24, course_ids=[a.id, b.id])
    await _call(hass, "selection_select_all", course_ids=[a.id, b.id])

    dropped = await _call(
        hass, "course_drop", course_id=b.id, to_semester_id=SPRING_25, multi_select=True
    )
    assert dropped is True
    assert repo.get_semester(SPRING_25).course_ids == (a.id, b.id)
    assert repo.get_semester(FALL_24).course_ids == ()


@pytest.mark.asyncio
async def test_major_services_use_majors_scheduler(hass, bucket) -> None:
    major = await _call(hass, "major_add", id="phys", name="Physics", color="#123456")
    assert major.id == "PHYS"
    assert await _call(hass, "major_reorder", drag_index=3, drop_index=0) is True
    assert await _call(hass, "major_remove", major_id="NOPE") is False

    assert bucket["majors_scheduler"].request.call_count == 2
    bucket["scheduler"].request.assert_not_called()
    assert bucket["majors"].ids()[0] == "PHYS"


@pytest.mark.asyncio
async def test_missing_scheduler_is_logged(hass, caplog) -> None:
    hass.data[DOMAIN]["repository"] = Repository()
    with caplog.at_level(logging.WARNING):
        result = await _call(hass, "semester_add", type="Summer", year=2026)
    assert result is True
    assert any(getattr(r, "op", None) == "persist_request" for r in caplog.records)


@pytest.mark.asyncio
async def test_unknown_service_raises(hass) -> None:
    with pytest.raises(ValueError):
        await _call(hass, "does_not_exist")


def test_setup_registers_once_and_teardown_removes(hass) -> None:
    services_mod.setup(hass)
    services_mod.setup(hass)
    registered = [c.args[1] for c in hass.services.async_register.call_args_list]
    assert registered == list(services_mod.SERVICE_NAMES)
    assert hass.data[DOMAIN]["services_registered"] is True

    services_mod.teardown(hass)
    removed = [c.args[1] for c in hass.services.async_remove.call_args_list]
    assert removed == list(services_mod.SERVICE_NAMES)
    services_mod.teardown(hass)
    assert hass.services.async_remove.call_count == len(services_mod.SERVICE_NAMES)
