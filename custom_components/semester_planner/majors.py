"""Requirement-group definitions ("majors").

The groups form a small ordered list persisted as a whole, independently of
the schedule. Courses reference groups by id; a course may carry ids that no
longer have a definition, in which case presentation falls back to a neutral
color and the raw id.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any

from .const import DEFAULT_MAJORS, DOMAIN, UNKNOWN_MAJOR_COLOR
from .exceptions import NotFoundError, ValidationError
from .models import RequirementGroup, validate_text

LOGGER = logging.getLogger(__name__)

DEFAULT_NEW_MAJOR_COLOR = "#3b82f6"
MAJOR_ID_MAX_LENGTH = 16

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def validate_color(value: object) -> str:
    if not isinstance(value, str) or not _COLOR_RE.match(value.strip()):
        raise ValidationError("color must be a #rrggbb hex string")
    return value.strip().lower()


def default_majors() -> list[RequirementGroup]:
    return [RequirementGroup(**row) for row in DEFAULT_MAJORS]  # type: ignore[arg-type]


class MajorSettings:
    """Ordered list of requirement groups."""

    def __init__(self, majors: list[RequirementGroup] | None = None) -> None:
        self._majors: list[RequirementGroup] = sorted(
            majors if majors else default_majors(), key=lambda m: m.display_order
        )
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def _touch(self, op: str, **ctx: Any) -> None:
        self._generation += 1
        LOGGER.debug(
            "Requirement groups changed",
            extra={"domain": DOMAIN, "op": op, "generation": self._generation, **ctx},
        )

    def list_majors(self) -> list[RequirementGroup]:
        return list(self._majors)

    def ids(self) -> list[str]:
        return [m.id for m in self._majors]

    def get(self, major_id: str) -> RequirementGroup:
        for major in self._majors:
            if major.id == major_id:
                return major
        raise NotFoundError(f"requirement group not found: {major_id}")

    def add(
        self, major_id: str, name: str, color: str = DEFAULT_NEW_MAJOR_COLOR
    ) -> RequirementGroup:
        """Append a group; ids are upper-cased and must be unique."""

        major_id = validate_text(
            major_id, field_name="id", max_length=MAJOR_ID_MAX_LENGTH
        ).upper()
        if any(m.id == major_id for m in self._majors):
            raise ValidationError(f"requirement group already exists: {major_id}")
        major = RequirementGroup(
            id=major_id,
            name=validate_text(name, field_name="name"),
            color=validate_color(color),
            display_order=len(self._majors) + 1,
        )
        self._majors.append(major)
        self._touch("add_major", major_id=major_id)
        return major

    def update(
        self, major_id: str, *, name: str | None = None, color: str | None = None
    ) -> RequirementGroup:
        current = self.get(major_id)
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = validate_text(name, field_name="name")
        if color is not None:
            changes["color"] = validate_color(color)
        updated = replace(current, **changes)
        if updated == current:
            return current
        self._majors = [updated if m.id == major_id else m for m in self._majors]
        self._touch("update_major", major_id=major_id)
        return updated

    def remove(self, major_id: str) -> bool:
        remaining = [m for m in self._majors if m.id != major_id]
        if len(remaining) == len(self._majors):
            return False
        self._majors = remaining
        self._touch("remove_major", major_id=major_id)
        return True

    def reorder(self, drag_index: int, drop_index: int) -> bool:
        """Move one group and renumber display_order 1..n."""

        count = len(self._majors)
        if drag_index == drop_index or not (0 <= drag_index < count and 0 <= drop_index < count):
            return False
        ordered = list(self._majors)
        ordered.insert(drop_index, ordered.pop(drag_index))
        self._majors = [replace(m, display_order=idx + 1) for idx, m in enumerate(ordered)]
        self._touch("reorder_majors", drag_index=drag_index, drop_index=drop_index)
        return True

    def color_of(self, major_id: str) -> str:
        for major in self._majors:
            if major.id == major_id:
                return major.color
        return UNKNOWN_MAJOR_COLOR

    def name_of(self, major_id: str) -> str:
        for major in self._majors:
            if major.id == major_id:
                return major.name
        return major_id

    # -----------------------------
    # Persistence: export/import
    # -----------------------------

    def export_state(self) -> dict[str, Any]:
        return {
            "majors": [
                {
                    "id": m.id,
                    "name": m.name,
                    "color": m.color,
                    "display_order": int(m.display_order),
                }
                for m in self._majors
            ]
        }

    def load_state(self, data: dict[str, Any]) -> None:
        """Replace the list from a payload; an empty list means the defaults."""

        loaded: list[RequirementGroup] = []
        rows = data.get("majors") if isinstance(data, dict) else None
        for row in rows or []:
            try:
                loaded.append(
                    RequirementGroup(
                        id=str(row["id"]),
                        name=str(row["name"]),
                        color=str(row.get("color") or UNKNOWN_MAJOR_COLOR),
                        display_order=int(row.get("display_order", len(loaded) + 1)),
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError):
                LOGGER.warning(
                    "Failed to load requirement group from persisted state",
                    extra={"domain": DOMAIN, "op": "load_state_majors"},
                    exc_info=True,
                )
        if not loaded:
            LOGGER.debug(
                "No requirement groups stored, using defaults",
                extra={"domain": DOMAIN, "op": "load_state_majors"},
            )
            loaded = default_majors()
        self._majors = sorted(loaded, key=lambda m: m.display_order)
        self._generation = 0

    @staticmethod
    def from_state(data: dict[str, Any]) -> MajorSettings:
        settings = MajorSettings()
        settings.load_state(data)
        return settings
