"""Offline tests for the integration lifecycle (setup, entry, unload).

Scenarios:
- async_setup initializes the domain bucket
- first run seeds the built-in catalog and schedules a write of it
- stored state is loaded as-is (no reseeding), including requirement groups
- unreadable or newer storage raises ConfigEntryNotReady
- registrations are idempotent across repeated setup
- unload flushes pending edits, removes services and drops runtime objects
- a failing flush during unload is logged and unload still succeeds
- a failed schedule write on unload still writes the requirement groups
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock

import pytest
from custom_components.semester_planner import async_setup, async_setup_entry, async_unload_entry
from custom_components.semester_planner import storage as storage_mod
from custom_components.semester_planner import ws as ws_mod
from custom_components.semester_planner.catalog import DEFAULT_CATALOG
from custom_components.semester_planner.const import DOMAIN
from custom_components.semester_planner.services import SERVICE_NAMES
from custom_components.semester_planner.storage import (
    MAJORS_SCHEMA_VERSION,
    MAJORS_STORAGE_KEY,
    SCHEDULE_SCHEMA_VERSION,
    SCHEDULE_STORAGE_KEY,
    PersistState,
)
from homeassistant.exceptions import ConfigEntryNotReady

MANDATORY_COUNT = 8
RUNTIME_KEYS = ("repository", "majors", "store", "majors_store", "scheduler", "majors_scheduler")


@pytest.fixture
def ws_commands(monkeypatch) -> list[Any]:
    registered: list[Any] = []
    monkeypatch.setattr(
        ws_mod.websocket_api, "async_register_command", lambda _hass, h: registered.append(h)
    )
    return registered


@pytest.mark.asyncio
async def test_async_setup_creates_bucket() -> None:
    hass = MagicMock()
    hass.data = {}
    assert await async_setup(hass, {}) is True
    assert hass.data[DOMAIN] == {}


@pytest.mark.asyncio
async def test_first_run_seeds_catalog(hass, memory_store, ws_commands) -> None:
    assert await async_setup_entry(hass, MagicMock()) is True
    bucket = hass.data[DOMAIN]
    for key in RUNTIME_KEYS:
        assert key in bucket

    repo = bucket["repository"]
    assert len(repo.schedule.courses) == len(DEFAULT_CATALOG)
    assert len(repo.list_semesters()) == MANDATORY_COUNT
    assert bucket["scheduler"].state is PersistState.PENDING_FLUSH
    assert bucket["services_registered"] is True
    assert bucket["ws_registered"] is True
    assert ws_commands == list(ws_mod.HANDLERS)

    assert await async_unload_entry(hass, MagicMock()) is True
    stored = memory_store[SCHEDULE_STORAGE_KEY]
    assert stored["schema_version"] == SCHEDULE_SCHEMA_VERSION
    assert len(stored["courses"]) == len(DEFAULT_CATALOG)
    assert len(stored["semesters"]) == MANDATORY_COUNT
    assert memory_store[MAJORS_STORAGE_KEY]["schema_version"] == MAJORS_SCHEMA_VERSION


@pytest.mark.asyncio
async def test_stored_state_is_not_reseeded(hass, memory_store, ws_commands) -> None:
    memory_store[SCHEDULE_STORAGE_KEY] = {
        "schema_version": SCHEDULE_SCHEMA_VERSION,
        "courses": {},
        "semesters": {},
        "semester_courses": [],
    }
    memory_store[MAJORS_STORAGE_KEY] = {
        "schema_version": MAJORS_SCHEMA_VERSION,
        "majors": [{"id": "ONLY", "name": "Only", "color": "#000000", "display_order": 1}],
    }
    assert await async_setup_entry(hass, MagicMock()) is True
    bucket = hass.data[DOMAIN]
    assert bucket["repository"].schedule.courses == {}
    assert len(bucket["repository"].list_semesters()) == MANDATORY_COUNT
    assert bucket["majors"].ids() == ["ONLY"]
    assert bucket["scheduler"].state is PersistState.IDLE


@pytest.mark.asyncio
async def test_newer_storage_raises_not_ready(hass, memory_store, ws_commands) -> None:
    memory_store[SCHEDULE_STORAGE_KEY] = {"schema_version": SCHEDULE_SCHEMA_VERSION + 1}
    with pytest.raises(ConfigEntryNotReady):
        await async_setup_entry(hass, MagicMock())
    assert "repository" not in hass.data[DOMAIN]
    assert ws_commands == []


@pytest.mark.asyncio
async def test_corrupt_storage_raises_not_ready(hass, memory_store, ws_commands) -> None:
    memory_store[MAJORS_STORAGE_KEY] = "garbage"
    with pytest.raises(ConfigEntryNotReady):
        await async_setup_entry(hass, MagicMock())


@pytest.mark.asyncio
async def test_repeated_setup_registers_once(hass, ws_commands) -> None:
    await async_setup_entry(hass, MagicMock())
    await async_unload_entry(hass, MagicMock())
    await async_setup_entry(hass, MagicMock())

    assert ws_commands == list(ws_mod.HANDLERS)
    registered = [c.args[1] for c in hass.services.async_register.call_args_list]
    assert registered == list(SERVICE_NAMES) * 2
    await async_unload_entry(hass, MagicMock())


@pytest.mark.asyncio
async def test_unload_drops_runtime_objects(hass, ws_commands) -> None:
    await async_setup_entry(hass, MagicMock())
    await async_unload_entry(hass, MagicMock())

    bucket = hass.data[DOMAIN]
    for key in RUNTIME_KEYS:
        assert key not in bucket
    assert "services_registered" not in bucket
    assert bucket["ws_registered"] is True
    removed = [c.args[1] for c in hass.services.async_remove.call_args_list]
    assert removed == list(SERVICE_NAMES)


@pytest.mark.asyncio
async def test_unload_survives_failed_flush(hass, ws_commands, monkeypatch, caplog) -> None:
    await async_setup_entry(hass, MagicMock())
    monkeypatch.setattr(storage_mod.Store, "fail_saves", True)

    with caplog.at_level(logging.WARNING):
        assert await async_unload_entry(hass, MagicMock()) is True

    assert any(getattr(r, "op", None) == "unload" for r in caplog.records)
    assert "repository" not in hass.data[DOMAIN]


@pytest.mark.asyncio
async def test_unload_writes_majors_when_schedule_save_fails(
    hass, memory_store, ws_commands, monkeypatch
) -> None:
    await async_setup_entry(hass, MagicMock())
    bucket = hass.data[DOMAIN]
    majors_scheduler = bucket["majors_scheduler"]
    bucket["majors"].add("MATH", "Mathematics", "#ff0000")
    majors_scheduler.request()
    monkeypatch.setattr(storage_mod.Store, "fail_keys", frozenset({SCHEDULE_STORAGE_KEY}))

    assert await async_unload_entry(hass, MagicMock()) is True

    assert majors_scheduler.state is PersistState.IDLE
    stored_ids = [m["id"] for m in memory_store[MAJORS_STORAGE_KEY]["majors"]]
    assert "MATH" in stored_ids
    assert SCHEDULE_STORAGE_KEY not in memory_store
