"""Persistent storage manager for Semester Planner.

Wraps Home Assistant's Store with schema-aware load/save and migrations, and
provides the debounced flush scheduler that keeps storage in step with the
in-memory state.

Two datasets are persisted independently:

    schedule (key ``semester_planner_schedule``):
    {
        "schema_version": int,
        "courses": {id -> CourseDict},
        "semesters": {id -> SemesterDict},
        "semester_courses": [{"semester_id", "course_id", "order_index"}],
    }

    majors (key ``semester_planner_majors``):
    {"schema_version": int, "majors": [MajorDict]}

Each save writes the whole document; Home Assistant writes it atomically, so a
flush either replaces every row or none.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from copy import deepcopy
from enum import StrEnum
from typing import Any, Final

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from . import migrations
from .const import DOMAIN
from .exceptions import StorageError
from .migrations import DATASET_MAJORS, DATASET_SCHEDULE

_LOGGER = logging.getLogger(__name__)

# Current schema versions for persisted payloads
SCHEDULE_SCHEMA_VERSION: Final[int] = 2
MAJORS_SCHEMA_VERSION: Final[int] = 1
CURRENT_SCHEMA_VERSION: Final[int] = SCHEDULE_SCHEMA_VERSION

# Version of the Home Assistant Store envelope; payload schema is tracked separately
STORE_ENVELOPE_VERSION: Final[int] = 1

# Storage keys under which the datasets are saved
SCHEDULE_STORAGE_KEY: Final[str] = "semester_planner_schedule"
MAJORS_STORAGE_KEY: Final[str] = "semester_planner_majors"

# Debounce delay for persistence operations (seconds)
PERSIST_DEBOUNCE_DELAY: Final[float] = 1.0

REQUIRED_COLLECTIONS: Final[dict[str, dict[str, type]]] = {
    DATASET_SCHEDULE: {"courses": dict, "semesters": dict, "semester_courses": list},
    DATASET_MAJORS: {"majors": list},
}


def _empty_payload(dataset: str, version: int) -> dict[str, Any]:
    """Create a new empty payload matching the current schema.

    Returns a fresh dict each time to avoid shared mutation across callers.
    """

    payload: dict[str, Any] = {"schema_version": version}
    for key, kind in REQUIRED_COLLECTIONS[dataset].items():
        payload[key] = kind()
    return payload


def _fill_collections(payload: dict[str, Any], dataset: str) -> dict[str, Any]:
    for key, kind in REQUIRED_COLLECTIONS[dataset].items():
        if not isinstance(payload.get(key), kind):
            payload[key] = kind()
    return payload


class DomainStore:
    """Schema-aware wrapper around Home Assistant's Store for one dataset."""

    def __init__(
        self,
        hass: HomeAssistant,
        *,
        key: str = SCHEDULE_STORAGE_KEY,
        version: int = CURRENT_SCHEMA_VERSION,
        dataset: str = DATASET_SCHEDULE,
    ) -> None:
        self._hass = hass
        self._store = Store(hass, STORE_ENVELOPE_VERSION, key)
        self._key = key
        self._schema_version = version
        self._dataset = dataset
        self._first_run = False

    @property
    def schema_version(self) -> int:
        return self._schema_version

    @property
    def key(self) -> str:
        return self._key

    @property
    def dataset(self) -> str:
        return self._dataset

    @property
    def is_first_run(self) -> bool:
        """True when the last load found nothing ever stored under this key."""

        return self._first_run

    async def async_load(self) -> dict[str, Any]:
        """Load the persisted dataset, applying migrations if needed.

        Returns a copy of the data to prevent external mutation of the cached
        object inside the storage layer.
        """

        raw = await self._store.async_load()
        self._first_run = raw is None
        if raw is None:
            return _empty_payload(self._dataset, self._schema_version)

        # Missing schema_version means treat as version 0
        from_version = int(raw.get("schema_version", 0)) if isinstance(raw, dict) else 0

        if from_version != self._schema_version:
            migrated = await self.async_migrate_if_needed(raw)
            return deepcopy(migrated)

        data = _fill_collections(deepcopy(raw), self._dataset)
        data["schema_version"] = self._schema_version
        return data

    async def async_save(self, data: dict[str, Any]) -> None:
        """Persist the dataset ensuring schema_version is up-to-date."""

        payload = deepcopy(data) if isinstance(data, dict) else {}
        payload["schema_version"] = self._schema_version
        await self._store.async_save(_fill_collections(payload, self._dataset))

    async def async_migrate_if_needed(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Migrate ``raw`` payload to the current schema iff needed.

        If a migration occurs, persist the migrated payload back to storage.
        Returns the migrated (or original) payload.
        """

        if not isinstance(raw, dict):  # Corrupted or unexpected
            _LOGGER.error(
                "Corrupted storage payload: expected dict, got %s",
                type(raw).__name__,
                extra={
                    "domain": DOMAIN,
                    "op": "migrate",
                    "from_version": None,
                    "to_version": self._schema_version,
                    "storage_key": self.key,
                },
            )
            raise StorageError("corrupted storage payload: not a dict")

        from_version = int(raw.get("schema_version", 0))
        to_version = self._schema_version
        if from_version == to_version:
            return _fill_collections(dict(raw), self._dataset)
        if from_version > to_version:
            _LOGGER.error(
                "Storage payload is newer than this integration",
                extra={
                    "domain": DOMAIN,
                    "op": "migrate",
                    "from_version": from_version,
                    "to_version": to_version,
                    "storage_key": self.key,
                },
            )
            raise StorageError("storage payload schema_version is newer than supported")

        try:
            migrated = migrations.migrate(
                raw, from_version=from_version, to_version=to_version, dataset=self._dataset
            )
        except Exception as exc:
            # Do not overwrite on-disk payload; surface as a typed error
            _LOGGER.error(
                "Storage migration failed",
                extra={
                    "domain": DOMAIN,
                    "op": "migrate",
                    "from_version": from_version,
                    "to_version": to_version,
                    "storage_key": self.key,
                },
                exc_info=True,
            )
            raise StorageError("storage migration failed") from exc
        migrated = _fill_collections(migrated, self._dataset)
        migrated["schema_version"] = to_version
        _LOGGER.info(
            "Storage migrated from v%s to v%s",
            from_version,
            to_version,
            extra={"domain": DOMAIN, "op": "migrate", "storage_key": self.key},
        )

        await self._store.async_save(migrated)
        return migrated


class PersistState(StrEnum):
    IDLE = "idle"
    PENDING_FLUSH = "pending_flush"
    FLUSHING = "flushing"


class PersistScheduler:
    """Debounced full-snapshot flusher for one dataset.

    Idle -> PendingFlush on ``request()``; each further request while pending
    re-arms the timer. When the timer expires the scheduler flushes the
    snapshot returned by ``snapshot`` at that moment and goes back to Idle,
    whether the write succeeded or not. Requests that arrive during a flush arm
    a new timer; the lock keeps two flushes from ever overlapping.
    """

    def __init__(
        self,
        store: DomainStore,
        snapshot: Callable[[], dict[str, Any]],
        *,
        delay: float = PERSIST_DEBOUNCE_DELAY,
        generation: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._snapshot = snapshot
        self._delay = delay
        self._generation = generation
        self._timer: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._flushing = False
        self.flush_count = 0
        self.failure_count = 0

    @property
    def state(self) -> PersistState:
        if self._flushing:
            return PersistState.FLUSHING
        if self._timer is not None and not self._timer.done():
            return PersistState.PENDING_FLUSH
        return PersistState.IDLE

    @property
    def delay(self) -> float:
        return self._delay

    def _ctx(self, op: str, **extra: Any) -> dict[str, Any]:
        ctx: dict[str, Any] = {"domain": DOMAIN, "op": op, "storage_key": self._store.key}
        if self._generation is not None:
            ctx["generation"] = self._generation()
        ctx.update(extra)
        return ctx

    def _cancel_timer(self) -> bool:
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done():
            timer.cancel()
            return True
        return False

    def request(self) -> None:
        """Arm (or re-arm) the debounce timer."""

        if self._cancel_timer():
            _LOGGER.debug(
                "Cancelled pending persist task", extra=self._ctx("persist_debounce_cancel")
            )
        self._timer = asyncio.create_task(self._delayed_flush())
        _LOGGER.debug(
            "Persist requested, debouncing",
            extra=self._ctx("persist_debounce_request", delay_s=self._delay),
        )

    async def _delayed_flush(self) -> None:
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            # Superseded by a newer request or an immediate flush
            return
        # Detach so a request arriving mid-flush arms a fresh timer instead of
        # cancelling this write
        if self._timer is asyncio.current_task():
            self._timer = None
        try:
            await self.flush()
        except StorageError:
            # Already logged; the next mutation re-arms a flush
            return

    async def flush(self) -> None:
        """Write the latest snapshot now, waiting for any in-flight flush first."""

        async with self._lock:
            self._flushing = True
            start_time = time.monotonic()
            try:
                payload = self._snapshot()
                _LOGGER.debug("Persisting state", extra=self._ctx("persist_start"))
                await self._store.async_save(payload)
            except Exception as exc:
                self.failure_count += 1
                _LOGGER.error(
                    "Failed to persist state",
                    extra=self._ctx(
                        "persist_failed", elapsed_ms=int((time.monotonic() - start_time) * 1000)
                    ),
                    exc_info=True,
                )
                raise StorageError("failed to persist state") from exc
            finally:
                self._flushing = False
            self.flush_count += 1
            _LOGGER.debug(
                "State persisted successfully",
                extra=self._ctx(
                    "persist_complete", elapsed_ms=int((time.monotonic() - start_time) * 1000)
                ),
            )

    async def flush_now(self) -> None:
        """Persist immediately, bypassing debounce."""

        if self._cancel_timer():
            _LOGGER.debug(
                "Cancelled pending persist task for immediate persist",
                extra=self._ctx("persist_immediate_cancel"),
            )
        await self.flush()


def _get_scheduler(hass: HomeAssistant, key: str) -> PersistScheduler:
    bucket = hass.data.get(DOMAIN) or {}
    scheduler = bucket.get(key)
    if scheduler is None:
        raise StorageError(f"{key} not initialized; run integration setup")
    return scheduler


async def async_request_persist(hass: HomeAssistant) -> None:
    """Request a debounced flush of the schedule.

    The debounce delay is PERSIST_DEBOUNCE_DELAY (1.0 seconds by default).
    """

    _get_scheduler(hass, "scheduler").request()


async def async_request_majors_persist(hass: HomeAssistant) -> None:
    """Request a debounced flush of the requirement groups."""

    _get_scheduler(hass, "majors_scheduler").request()


async def async_persist_immediate(hass: HomeAssistant) -> None:
    """Persist both datasets immediately, bypassing debounce.

    Use this for critical paths like unload where pending edits must reach
    disk before the integration goes away.
    """

    _LOGGER.debug(
        "Immediate persist requested",
        extra={"domain": DOMAIN, "op": "persist_immediate_request"},
    )
    schedulers = [_get_scheduler(hass, key) for key in ("scheduler", "majors_scheduler")]
    # Each dataset is flushed even when the other fails
    results = await asyncio.gather(
        *(scheduler.flush_now() for scheduler in schedulers), return_exceptions=True
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
