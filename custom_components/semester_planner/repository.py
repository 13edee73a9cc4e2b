"""In-memory repository: the single mutation-dispatch boundary for a schedule.

The repository holds the current immutable ``Schedule`` snapshot, the
selection and a generation counter. Every public mutation delegates to a pure
function in ``engine``, swaps the held snapshot only when the function
produced a new one, and reports whether anything happened. Rejected mutations
return ``False`` and leave the pool, the semesters and the placement exactly
as they were.

The repository is framework-agnostic and designed to be exercised by offline
tests and invoked by service/WebSocket layers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import Any

from . import engine
from .aggregates import schedule_summary
from .const import DEFAULT_CATEGORY, DOMAIN
from .exceptions import NotFoundError
from .models import (
    Course,
    CourseCreate,
    CourseFilter,
    CourseUpdate,
    RequirementGroup,
    Schedule,
    Semester,
    create_course_from_create,
    filter_courses,
    normalize_requirement_tags,
    sort_courses_for_library,
    sort_semesters,
    validate_semester_type,
    validate_text,
    validate_year,
)
from .selection import Selection

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DropRequest:
    """Decoded drop intent.

    The descriptor is a request, not state: ``from_semester_id`` is only a hint
    and is re-derived from the placement index when the drop is applied.
    ``position`` is the gap index in the target (``None`` appends).
    """

    course_id: str
    to_semester_id: str
    from_semester_id: str | None = None
    position: int | None = None
    multi_select: bool = False


class Repository:
    """Holds the current schedule snapshot and applies mutations atomically."""

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def __init__(self, schedule: Schedule | None = None) -> None:
        self._schedule: Schedule = engine.ensure_mandatory(schedule or Schedule())
        self._selection = Selection()
        self._generation = 0

    @property
    def schedule(self) -> Schedule:
        return self._schedule

    @property
    def selection(self) -> Selection:
        return self._selection

    @property
    def generation(self) -> int:
        """Monotonic counter bumped on every committed mutation."""

        return self._generation

    # -----------------------------
    # Internal helpers
    # -----------------------------

    def _commit(self, op: str, nxt: Schedule, *, consume_selection: bool = False, **ctx: Any) -> bool:
        if nxt is self._schedule:
            LOGGER.debug(
                "Mutation rejected",
                extra={"domain": DOMAIN, "op": op, **ctx},
            )
            return False
        self._schedule = nxt
        self._generation += 1
        if consume_selection:
            self._selection.clear()
        LOGGER.debug(
            "Mutation applied",
            extra={"domain": DOMAIN, "op": op, "generation": self._generation, **ctx},
        )
        return True

    def _bulk_ids(self, course_ids: Iterable[str] | None) -> tuple[list[str], bool]:
        """Explicit ids, or the current selection (which the action then consumes)."""

        if course_ids is None:
            return self._selection.ids(), True
        return list(course_ids), False

    def _run_bulk(
        self,
        op: str,
        course_ids: Iterable[str] | None,
        apply: Callable[[list[str]], Schedule],
        **ctx: Any,
    ) -> bool:
        ids, from_selection = self._bulk_ids(course_ids)
        if not ids:
            return False
        return self._commit(op, apply(ids), consume_selection=from_selection, count=len(ids), **ctx)

    # -----------------------------
    # Container Set
    # -----------------------------

    def add_semester(self, semester_type: str, year: int) -> bool:
        semester_type = validate_semester_type(semester_type)
        year = validate_year(year)
        return self._commit(
            "add_semester",
            engine.add_semester(self._schedule, semester_type, year),
            semester_type=semester_type,
            year=year,
        )

    def remove_semester(self, semester_id: str) -> bool:
        return self._commit(
            "remove_semester",
            engine.remove_semester(self._schedule, semester_id),
            semester_id=semester_id,
        )

    def rename_semester(self, semester_id: str, new_name: str) -> bool:
        new_name = validate_text(new_name, field_name="name")
        return self._commit(
            "rename_semester",
            engine.rename_semester(self._schedule, semester_id, new_name),
            semester_id=semester_id,
        )

    def clear_semester(self, semester_id: str) -> bool:
        return self._commit(
            "clear_semester",
            engine.clear_semester(self._schedule, semester_id),
            semester_id=semester_id,
        )

    def get_semester(self, semester_id: str) -> Semester:
        semester = self._schedule.get_semester(semester_id)
        if semester is None:
            raise NotFoundError(f"semester not found: {semester_id}")
        return semester

    def list_semesters(self) -> list[Semester]:
        return list(self._schedule.semesters)

    # -----------------------------
    # Placement Index
    # -----------------------------

    def insert_at(self, semester_id: str, course_id: str, position: int | None) -> bool:
        return self._commit(
            "insert_at",
            engine.insert_at(self._schedule, semester_id, course_id, position),
            semester_id=semester_id,
            course_id=course_id,
            position=position,
        )

    def append(self, semester_id: str, course_id: str) -> bool:
        return self.insert_at(semester_id, course_id, None)

    def remove_from_semester(self, semester_id: str, course_id: str) -> bool:
        return self._commit(
            "remove_from_semester",
            engine.remove_from_semester(self._schedule, semester_id, course_id),
            semester_id=semester_id,
            course_id=course_id,
        )

    def reorder(self, semester_id: str, from_index: int, to_index: int) -> bool:
        return self._commit(
            "reorder",
            engine.reorder(self._schedule, semester_id, from_index, to_index),
            semester_id=semester_id,
            from_index=from_index,
            to_index=to_index,
        )

    def reorder_to_drop_position(self, semester_id: str, from_index: int, drop_position: int) -> bool:
        return self._commit(
            "reorder_to_drop_position",
            engine.reorder_to_drop_position(self._schedule, semester_id, from_index, drop_position),
            semester_id=semester_id,
            from_index=from_index,
            drop_position=drop_position,
        )

    def move_between(
        self,
        from_semester_id: str,
        to_semester_id: str,
        course_id: str,
        position: int | None = None,
    ) -> bool:
        return self._commit(
            "move_between",
            engine.move_between(
                self._schedule, from_semester_id, to_semester_id, course_id, position
            ),
            from_semester_id=from_semester_id,
            to_semester_id=to_semester_id,
            course_id=course_id,
            position=position,
        )

    def insert_selected_at(
        self, semester_id: str, position: int | None = None, course_ids: Iterable[str] | None = None
    ) -> bool:
        return self._run_bulk(
            "insert_selected_at",
            course_ids,
            lambda ids: engine.insert_selected_at(self._schedule, semester_id, ids, position),
            semester_id=semester_id,
            position=position,
        )

    def move_selected_between(
        self,
        from_semester_id: str,
        to_semester_id: str,
        position: int | None = None,
        course_ids: Iterable[str] | None = None,
    ) -> bool:
        return self._run_bulk(
            "move_selected_between",
            course_ids,
            lambda ids: engine.move_selected_between(
                self._schedule, from_semester_id, to_semester_id, ids, position
            ),
            from_semester_id=from_semester_id,
            to_semester_id=to_semester_id,
            position=position,
        )

    def remove_selected_from_semester(
        self, semester_id: str, course_ids: Iterable[str] | None = None
    ) -> bool:
        return self._run_bulk(
            "remove_selected_from_semester",
            course_ids,
            lambda ids: engine.remove_many_from_semester(self._schedule, semester_id, ids),
            semester_id=semester_id,
        )

    def reorder_selected(
        self, semester_id: str, drop_position: int, course_ids: Iterable[str] | None = None
    ) -> bool:
        return self._run_bulk(
            "reorder_selected",
            course_ids,
            lambda ids: engine.reorder_many(self._schedule, semester_id, ids, drop_position),
            semester_id=semester_id,
            drop_position=drop_position,
        )

    def apply_drop(self, request: DropRequest) -> bool:
        """Resolve a drop intent against the current state and apply it.

        - unknown course or target semester: no-op
        - the source semester is taken from the placement index, not the request
        - same source and target: reorder by drop position
        - ``multi_select`` with the dragged course selected: bulk path
        - ``multi_select`` with the dragged course not selected: single-item path
        """

        schedule = self._schedule
        course_id = request.course_id
        target = schedule.get_semester(request.to_semester_id)
        if course_id not in schedule.courses or target is None:
            LOGGER.debug(
                "Drop ignored: unknown course or semester",
                extra={
                    "domain": DOMAIN,
                    "op": "apply_drop",
                    "course_id": course_id,
                    "to_semester_id": request.to_semester_id,
                },
            )
            return False

        source_id = schedule.placement.get(course_id)
        if request.from_semester_id is not None and request.from_semester_id != source_id:
            LOGGER.debug(
                "Drop source corrected from placement index",
                extra={
                    "domain": DOMAIN,
                    "op": "apply_drop",
                    "course_id": course_id,
                    "requested_from": request.from_semester_id,
                    "actual_from": source_id,
                },
            )
        bulk = request.multi_select and course_id in self._selection

        if source_id == target.id:
            drop = len(target.course_ids) if request.position is None else request.position
            if bulk:
                return self.reorder_selected(target.id, drop)
            return self.reorder_to_drop_position(
                target.id, target.course_ids.index(course_id), drop
            )

        if bulk:
            if source_id is None:
                return self.insert_selected_at(target.id, request.position)
            return self.move_selected_between(source_id, target.id, request.position)

        if source_id is None:
            return self.insert_at(target.id, course_id, request.position)
        return self.move_between(source_id, target.id, course_id, request.position)

    # -----------------------------
    # Item Pool
    # -----------------------------

    def create_course(self, payload: CourseCreate) -> Course:
        """Validate a payload, add the new course to the pool and return it."""

        course = create_course_from_create(payload)
        self._commit(
            "create_course", engine.add_course(self._schedule, course), course_id=course.id
        )
        return course

    def add_course(self, course: Course) -> bool:
        return self._commit(
            "add_course", engine.add_course(self._schedule, course), course_id=course.id
        )

    def insert_new_course_at(
        self, semester_id: str, payload: CourseCreate, position: int | None = None
    ) -> Course | None:
        """Create a course and place it in one step; ``None`` if the semester is unknown."""

        course = create_course_from_create(payload)
        applied = self._commit(
            "insert_new_course_at",
            engine.insert_new_course_at(self._schedule, semester_id, course, position),
            semester_id=semester_id,
            course_id=course.id,
            position=position,
        )
        return course if applied else None

    def get_course(self, course_id: str) -> Course:
        course = self._schedule.courses.get(course_id)
        if course is None:
            raise NotFoundError(f"course not found: {course_id}")
        return course

    def update_course(self, course_id: str, update: CourseUpdate) -> Course:
        self._commit(
            "update_course",
            engine.update_course(self._schedule, course_id, update),
            course_id=course_id,
        )
        return self._schedule.courses[course_id]

    def remove_course(self, course_id: str) -> bool:
        applied = self._commit(
            "remove_course", engine.remove_course(self._schedule, course_id), course_id=course_id
        )
        if applied:
            self._selection.remove(course_id)
        return applied

    def remove_courses(self, course_ids: Iterable[str] | None = None) -> bool:
        """Remove courses (default: the selection) from the pool and every semester."""

        applied = self._run_bulk(
            "remove_courses",
            course_ids,
            lambda ids: engine.remove_courses(self._schedule, ids),
        )
        if applied:
            self._selection.prune(self._schedule.courses)
        return applied

    def toggle_completion(self, course_id: str) -> bool:
        return self._commit(
            "toggle_completion",
            engine.toggle_completion(self._schedule, course_id),
            course_id=course_id,
        )

    def set_completion(self, completed: bool, course_ids: Iterable[str] | None = None) -> bool:
        """Mark courses (default: the selection) completed or not; keeps the selection."""

        ids = self._selection.ids() if course_ids is None else list(course_ids)
        return self._commit(
            "set_completion",
            engine.set_completion(self._schedule, ids, completed),
            completed=completed,
            count=len(ids),
        )

    # -----------------------------
    # Selection Set
    # -----------------------------

    def toggle_selection(self, course_id: str) -> bool:
        """Toggle a pool course; returns the new membership."""

        self.get_course(course_id)
        return self._selection.toggle(course_id)

    def select(self, course_id: str) -> None:
        self.get_course(course_id)
        self._selection.add(course_id)

    def deselect(self, course_id: str) -> None:
        self._selection.remove(course_id)

    def clear_selection(self) -> None:
        self._selection.clear()

    def select_all(self, course_ids: Iterable[str] | None = None) -> None:
        """Replace the selection with the given ids (default: the whole pool)."""

        pool = self._schedule.courses
        ids = pool.keys() if course_ids is None else course_ids
        self._selection.select_all(cid for cid in ids if cid in pool)

    def selected_courses(self) -> list[Course]:
        pool = self._schedule.courses
        return [pool[cid] for cid in self._selection if cid in pool]

    # -----------------------------
    # Queries
    # -----------------------------

    def find_course_semester(self, course_id: str) -> Semester | None:
        return engine.find_course_semester(self._schedule, course_id)

    def search_placed(self, term: str) -> list[tuple[Semester, Course]]:
        return engine.search_placed(self._schedule, term)

    def list_courses(
        self, flt: CourseFilter | None = None, majors: Iterable[RequirementGroup] = ()
    ) -> list[Course]:
        """Library view: filtered pool in requirement priority, then code order."""

        matched = filter_courses(
            self._schedule.courses.values(), flt, placement=self._schedule.placement
        )
        return sort_courses_for_library(matched, majors)

    def summary(self, majors: Iterable[RequirementGroup]) -> dict[str, Any]:
        return schedule_summary(self._schedule, majors)

    # -----------------------------
    # Persistence: export/import
    # -----------------------------

    def export_state(self) -> dict[str, Any]:
        """Serialize the schedule to the normalized store shape.

        Shape:
            {"courses": {id -> CourseDict},
             "semesters": {id -> SemesterDict},
             "semester_courses": [{semester_id, course_id, order_index}]}

        ``order_index`` equals the course's position in its semester.
        """

        def _serialize_course(course: Course) -> dict[str, Any]:
            return {
                "id": course.id,
                "code": course.code,
                "name": course.name,
                "credits": course.credits,
                "major_requirements": list(course.major_requirements),
                "is_completed": bool(course.is_completed),
                "category": course.category,
                "created_at": course.created_at,
                "updated_at": course.updated_at,
            }

        def _serialize_semester(semester: Semester) -> dict[str, Any]:
            return {
                "id": semester.id,
                "name": semester.name,
                "type": semester.type,
                "year": int(semester.year),
                "created_at": semester.created_at,
                "updated_at": semester.updated_at,
            }

        schedule = self._schedule
        courses = {cid: _serialize_course(c) for cid, c in schedule.courses.items()}
        semesters = {s.id: _serialize_semester(s) for s in schedule.semesters}
        joins = [
            {"semester_id": s.id, "course_id": cid, "order_index": idx}
            for s in schedule.semesters
            for idx, cid in enumerate(s.course_ids)
        ]
        return {"courses": courses, "semesters": semesters, "semester_courses": joins}

    def load_state(self, data: dict[str, Any]) -> None:
        """Replace the schedule with a persisted payload.

        Malformed rows are skipped with a warning. Join rows referencing unknown
        ids are dropped, and a course placed more than once keeps only its first
        placement in semester order. Mandatory semesters are synthesized and the
        result sorted before anything observes it. The selection is reset.
        """

        self._selection = Selection()
        self._generation = 0
        if not isinstance(data, dict):
            self._schedule = engine.ensure_mandatory(Schedule())
            return

        courses: dict[str, Course] = {}
        rows = data.get("courses") or {}
        if isinstance(rows, dict):
            for course_id, row in rows.items():
                try:
                    course = Course(
                        id=str(row.get("id", course_id)),
                        code=str(row.get("code", "")),
                        name=str(row.get("name", "")),
                        credits=_as_credits(row.get("credits", 0)),
                        is_completed=bool(row.get("is_completed", False)),
                        category=str(row.get("category") or DEFAULT_CATEGORY),
                        major_requirements=normalize_requirement_tags(
                            row.get("major_requirements")
                        ),
                        created_at=str(row.get("created_at", "")),
                        updated_at=str(row.get("updated_at", "")),
                    )
                except (AttributeError, TypeError, ValueError):
                    LOGGER.warning(
                        "Failed to load course from persisted state",
                        extra={
                            "domain": DOMAIN,
                            "op": "load_state_courses",
                            "course_id": str(course_id),
                        },
                        exc_info=True,
                    )
                    continue
                courses[course.id] = course

        semester_rows: dict[str, dict[str, Any]] = {}
        rows = data.get("semesters") or {}
        if isinstance(rows, dict):
            for semester_id, row in rows.items():
                try:
                    semester_rows[str(row.get("id", semester_id))] = {
                        "name": str(row["name"]),
                        "type": str(row["type"]),
                        "year": int(row["year"]),
                        "created_at": str(row.get("created_at", "")),
                        "updated_at": str(row.get("updated_at", "")),
                    }
                except (AttributeError, KeyError, TypeError, ValueError):
                    LOGGER.warning(
                        "Failed to load semester from persisted state",
                        extra={
                            "domain": DOMAIN,
                            "op": "load_state_semesters",
                            "semester_id": str(semester_id),
                        },
                        exc_info=True,
                    )

        sequences: dict[str, list[tuple[int, str]]] = {sid: [] for sid in semester_rows}
        joins = data.get("semester_courses") or []
        if isinstance(joins, list):
            for join in joins:
                try:
                    semester_id = str(join["semester_id"])
                    course_id = str(join["course_id"])
                    order_index = int(join["order_index"])
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning(
                        "Skipping malformed placement row",
                        extra={"domain": DOMAIN, "op": "load_state_placements"},
                    )
                    continue
                if semester_id not in sequences or course_id not in courses:
                    LOGGER.warning(
                        "Skipping placement row with unknown reference",
                        extra={
                            "domain": DOMAIN,
                            "op": "load_state_placements",
                            "semester_id": semester_id,
                            "course_id": course_id,
                        },
                    )
                    continue
                sequences[semester_id].append((order_index, course_id))

        semesters = sort_semesters(
            Semester(
                id=semester_id,
                course_ids=tuple(cid for _, cid in sorted(sequences[semester_id])),
                **fields,
            )
            for semester_id, fields in semester_rows.items()
        )

        # First placement in semester order wins
        placed: set[str] = set()
        deduped: list[Semester] = []
        for semester in semesters:
            keep = tuple(cid for cid in dict.fromkeys(semester.course_ids) if cid not in placed)
            if keep != semester.course_ids:
                LOGGER.warning(
                    "Dropping duplicate placements",
                    extra={"domain": DOMAIN, "op": "load_state_placements", "semester_id": semester.id},
                )
                semester = replace(semester, course_ids=keep)
            placed.update(keep)
            deduped.append(semester)

        self._schedule = engine.ensure_mandatory(
            Schedule(courses=courses, semesters=tuple(deduped))
        )

    @staticmethod
    def from_state(data: dict[str, Any]) -> Repository:
        """Create a Repository instance from a persisted payload."""

        repo = Repository()
        repo.load_state(data)
        return repo


def _as_credits(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise TypeError("credits must be a number")
    return value
