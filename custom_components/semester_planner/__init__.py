"""Semester Planner integration bootstrap.

This module initializes the integration, prepares persistent storage, and sets
up the schedule repository, the requirement groups and their flush schedulers
in hass.data.
"""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers import config_validation as cv

from . import services as services_mod
from . import ws as ws_mod
from .catalog import default_courses
from .const import DOMAIN
from .exceptions import StorageError
from .majors import MajorSettings
from .migrations import DATASET_MAJORS, DATASET_SCHEDULE
from .models import Schedule
from .repository import Repository
from .storage import (
    MAJORS_SCHEMA_VERSION,
    MAJORS_STORAGE_KEY,
    REQUIRED_COLLECTIONS,
    SCHEDULE_SCHEMA_VERSION,
    SCHEDULE_STORAGE_KEY,
    DomainStore,
    PersistScheduler,
    async_persist_immediate,
)

LOGGER = logging.getLogger(__name__)

# Runtime objects owned by a loaded config entry
_RUNTIME_KEYS = ("repository", "majors", "store", "majors_store", "scheduler", "majors_scheduler")


# This integration is config-entry only; no YAML configuration is accepted.
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)


async def async_setup(hass: HomeAssistant, _config: dict) -> bool:
    """Set up the Semester Planner domain at Home Assistant startup.

    Initializes an empty domain bucket in hass.data with no side effects.
    """
    if DOMAIN not in hass.data:
        hass.data[DOMAIN] = {}
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Semester Planner from a config entry."""
    bucket = hass.data.setdefault(DOMAIN, {})

    store = DomainStore(
        hass, key=SCHEDULE_STORAGE_KEY, version=SCHEDULE_SCHEMA_VERSION, dataset=DATASET_SCHEDULE
    )
    majors_store = DomainStore(
        hass, key=MAJORS_STORAGE_KEY, version=MAJORS_SCHEMA_VERSION, dataset=DATASET_MAJORS
    )

    try:
        payload = await store.async_load()
        _validate_storage_payload(payload, schema_version=store.schema_version, dataset=store.dataset)
        majors_payload = await majors_store.async_load()
        _validate_storage_payload(
            majors_payload, schema_version=majors_store.schema_version, dataset=majors_store.dataset
        )
        _log_storage_health(payload, schema_version=store.schema_version)
    except StorageError as exc:
        LOGGER.error(
            "Storage validation failed during setup",
            extra={"domain": DOMAIN, "op": "setup_storage", "schema_version": store.schema_version},
            exc_info=True,
        )
        raise ConfigEntryNotReady("storage validation failed") from exc
    except Exception as exc:
        LOGGER.error(
            "Failed to load storage during setup",
            extra={"domain": DOMAIN, "op": "setup_storage", "schema_version": store.schema_version},
            exc_info=True,
        )
        raise ConfigEntryNotReady("storage load failed") from exc

    if store.is_first_run:
        LOGGER.info(
            "No stored schedule found, seeding the default course catalog",
            extra={"domain": DOMAIN, "op": "setup_seed_catalog"},
        )
        repo = Repository(Schedule(courses={c.id: c for c in default_courses()}))
    else:
        repo = Repository.from_state(payload)
    majors = MajorSettings.from_state(majors_payload)

    scheduler = PersistScheduler(store, repo.export_state, generation=lambda: repo.generation)
    majors_scheduler = PersistScheduler(
        majors_store, majors.export_state, generation=lambda: majors.generation
    )

    bucket.update(
        {
            "repository": repo,
            "majors": majors,
            "store": store,
            "majors_store": majors_store,
            "scheduler": scheduler,
            "majors_scheduler": majors_scheduler,
        }
    )

    # Write the seeded catalog and synthesized semesters on first run
    if store.is_first_run:
        scheduler.request()

    # Register services
    services_mod.setup(hass)

    # Register WebSocket commands
    ws_mod.setup(hass)

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry.

    Flushes pending edits, removes services and drops runtime objects. WebSocket
    commands cannot be unregistered; the registration flag is kept so a reload
    does not register them twice.
    """

    bucket = hass.data.get(DOMAIN) or {}

    # Ensure any pending changes are persisted before unload
    try:
        await async_persist_immediate(hass)
    except StorageError:
        LOGGER.warning(
            "Failed to persist during unload",
            extra={"domain": DOMAIN, "op": "unload"},
            exc_info=True,
        )

    services_mod.teardown(hass)

    for key in _RUNTIME_KEYS:
        bucket.pop(key, None)

    return True


def _validate_storage_payload(payload: dict[str, Any], *, schema_version: int, dataset: str) -> None:
    """Validate loaded storage payload shape and version."""

    if not isinstance(payload, dict):
        raise StorageError("storage payload is not a dict")

    if int(payload.get("schema_version", -1)) != int(schema_version):
        raise StorageError("storage payload schema_version mismatch")

    for key, kind in REQUIRED_COLLECTIONS[dataset].items():
        if not isinstance(payload.get(key), kind):
            raise StorageError("storage payload missing required collections")


def _log_storage_health(payload: dict[str, Any], *, schema_version: int) -> None:
    """Log storage health summary after validation."""

    course_count = len(payload.get("courses") or {})
    semester_count = len(payload.get("semesters") or {})
    placement_count = len(payload.get("semester_courses") or [])

    LOGGER.debug(
        "Storage health: schema_version=%s courses=%s semesters=%s placements=%s",
        schema_version,
        course_count,
        semester_count,
        placement_count,
        extra={
            "domain": DOMAIN,
            "op": "setup_storage_health",
            "schema_version": schema_version,
            "courses_count": course_count,
            "semesters_count": semester_count,
            "placements_count": placement_count,
        },
    )
