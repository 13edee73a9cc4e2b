"""Schema migrations for Semester Planner persistent storage.

Forward-only, idempotent migration steps. Each step receives and returns the
entire persisted dict payload of one dataset ("schedule" or "majors"). Steps
must tolerate being applied more than once without changing the outcome.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from .const import COURSE_CATEGORIES, DEFAULT_CATEGORY

DATASET_SCHEDULE = "schedule"
DATASET_MAJORS = "majors"


def migrate(
    payload: dict[str, Any],
    *,
    from_version: int,
    to_version: int,
    dataset: str = DATASET_SCHEDULE,
) -> dict[str, Any]:
    """Migrate ``payload`` from ``from_version`` to ``to_version``.

    Steps are applied sequentially: vN -> vN+1 -> ... -> vM, looked up as
    ``migrate_<dataset>_<N>_to_<N+1>``.
    """

    if from_version > to_version:
        # We do not support downgrades; return the original as-is
        return payload

    data: dict[str, Any] = deepcopy(payload)
    version = int(from_version)
    while version < to_version:
        next_version = version + 1
        step = globals().get(f"migrate_{dataset}_{version}_to_{next_version}")
        if callable(step):
            data = step(data)
        # If no step is defined, assume no-op for this transition
        version = next_version

    data["schema_version"] = to_version
    return data


def migrate_schedule_0_to_1(payload: dict[str, Any]) -> dict[str, Any]:
    """Ensure the three collections exist."""

    data = deepcopy(payload) if isinstance(payload, dict) else {}
    if not isinstance(data.get("courses"), dict):
        data["courses"] = {}
    if not isinstance(data.get("semesters"), dict):
        data["semesters"] = {}
    if not isinstance(data.get("semester_courses"), list):
        data["semester_courses"] = []
    return data


def migrate_schedule_1_to_2(payload: dict[str, Any]) -> dict[str, Any]:
    """Fill optional course fields with their defaults.

    Older payloads may lack ``category`` or carry non-list requirement tags.
    """

    data = migrate_schedule_0_to_1(payload)
    for row in data["courses"].values():
        if not isinstance(row, dict):
            continue
        if row.get("category") not in COURSE_CATEGORIES:
            row["category"] = DEFAULT_CATEGORY
        if not isinstance(row.get("major_requirements"), list):
            row["major_requirements"] = []
        row["is_completed"] = bool(row.get("is_completed", False))
        credits = row.get("credits")
        if isinstance(credits, bool):
            row["credits"] = 0
        elif not isinstance(credits, int | float):
            try:
                row["credits"] = float(credits)
            except (TypeError, ValueError):
                row["credits"] = 0
    return data


def migrate_majors_0_to_1(payload: dict[str, Any]) -> dict[str, Any]:
    data = deepcopy(payload) if isinstance(payload, dict) else {}
    if not isinstance(data.get("majors"), list):
        data["majors"] = []
    return data
