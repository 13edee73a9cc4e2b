"""Typed models and validation helpers for Semester Planner.

This module defines the immutable shapes for Course, Semester,
RequirementGroup and the Schedule snapshot, along with lightweight input
schemas for create/update/filter operations. It also provides the validation
helpers used at the edit boundary and the academic-year ordering of semesters.

The intent is to keep these models framework-agnostic and free of I/O. Higher
layers (engine, repository, storage, services) compose these helpers.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from functools import cached_property
from typing import NotRequired, TypedDict

from .const import (
    COURSE_CATEGORIES,
    DEFAULT_CATEGORY,
    MAX_CREDITS,
    REQUIREMENT_FILTER_OTHER,
    SEMESTER_FILTER_CREDIT_ONLY,
    SEMESTER_SPRING,
    SEMESTER_TYPE_RANK,
    SEMESTER_TYPES,
)
from .exceptions import ValidationError

CODE_MAX_LENGTH = 32
NAME_MAX_LENGTH = 120
YEAR_MIN = 1900
YEAR_MAX = 2999


@dataclass(frozen=True)
class Course:
    """Catalog entry held in the course pool."""

    id: str
    code: str
    name: str
    credits: float = 0
    is_completed: bool = False
    category: str = DEFAULT_CATEGORY
    major_requirements: tuple[str, ...] = ()
    created_at: str = field(default_factory=lambda: iso_utc_now())
    updated_at: str = field(default_factory=lambda: iso_utc_now())


@dataclass(frozen=True)
class Semester:
    """Named, typed, year-scoped ordered list of course ids.

    The semester stores order only; course content lives in the pool.
    """

    id: str
    name: str
    type: str
    year: int
    course_ids: tuple[str, ...] = ()
    created_at: str = field(default_factory=lambda: iso_utc_now())
    updated_at: str = field(default_factory=lambda: iso_utc_now())


@dataclass(frozen=True)
class RequirementGroup:
    """User-defined requirement bucket used for credit reporting."""

    id: str
    name: str
    color: str
    display_order: int


@dataclass(frozen=True)
class Schedule:
    """Immutable snapshot of the course pool and the ordered semesters.

    ``courses`` is insertion ordered; ``semesters`` is kept sorted by
    ``sort_semesters``. Snapshots are never mutated in place: engine functions
    return a new Schedule, or the very same object when nothing changed.
    """

    courses: Mapping[str, Course] = field(default_factory=dict)
    semesters: tuple[Semester, ...] = ()

    @cached_property
    def placement(self) -> dict[str, str]:
        """Map of course id -> id of the semester that holds it."""

        index: dict[str, str] = {}
        for semester in self.semesters:
            for course_id in semester.course_ids:
                index.setdefault(course_id, semester.id)
        return index

    @cached_property
    def semesters_by_id(self) -> dict[str, Semester]:
        return {semester.id: semester for semester in self.semesters}

    def get_semester(self, semester_id: str) -> Semester | None:
        return self.semesters_by_id.get(semester_id)

    def semester_of(self, course_id: str) -> Semester | None:
        semester_id = self.placement.get(course_id)
        return self.semesters_by_id.get(semester_id) if semester_id is not None else None


class CourseCreate(TypedDict, total=False):
    """Creation input for Course. ``code`` and ``name`` are required."""

    code: str
    name: str
    credits: float
    is_completed: bool
    category: str
    major_requirements: list[str]


class CourseUpdate(TypedDict, total=False):
    """Update input for Course. All fields are optional; identity is immutable."""

    code: str
    name: str
    credits: float
    is_completed: bool
    category: str
    major_requirements: list[str]


class CourseFilter(TypedDict, total=False):
    """Library filter options for querying courses."""

    q: str
    show_completed: bool
    show_incomplete: bool
    categories: list[str]
    requirements: list[str]
    semesters: NotRequired[list[str]]


# -----------------------------
# Utility helpers
# -----------------------------


def iso_utc_now() -> str:
    """Return ISO-8601 UTC timestamp string with 'Z'."""

    now = datetime.now(tz=UTC)
    # No microseconds to keep it compact and stable
    return now.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def monotonic_timestamp_after(previous_ts: str) -> str:
    """Return a UTC ISO-8601 'Z' timestamp strictly after previous_ts.

    If iso_utc_now() is not greater than the previous timestamp (due to second
    resolution), bump by one second to maintain monotonicity.
    """

    now_dt = datetime.now(tz=UTC).replace(microsecond=0)
    try:
        prev_dt = datetime.strptime(previous_ts, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)
    except (TypeError, ValueError):
        prev_dt = now_dt - timedelta(seconds=1)
    if now_dt <= prev_dt:
        now_dt = prev_dt + timedelta(seconds=1)
    return now_dt.isoformat().replace("+00:00", "Z")


def new_course_id() -> str:
    """Generate an opaque course id."""

    return str(uuid.uuid4())


def new_semester_id(semester_type: str, year: int) -> str:
    """Generate a unique id for a user-added semester."""

    return f"semester_{year}_{semester_type.lower()}_{uuid.uuid4().hex[:8]}"


def mandatory_semester_id(semester_type: str, year: int) -> str:
    """Deterministic id of a mandatory semester."""

    return f"semester_{year}_{semester_type.lower()}"


def default_semester_name(semester_type: str, year: int) -> str:
    return f"{semester_type} {year}"


def normalize_requirement_tags(tags: Iterable[str] | None) -> tuple[str, ...]:
    """Trim and de-duplicate requirement ids, preserving order.

    Requirement ids are case-sensitive (e.g. "DSCT"), so no case folding.
    """

    if not tags:
        return ()
    seen: set[str] = set()
    result: list[str] = []
    for raw in tags:
        if raw is None:
            continue
        tag = str(raw).strip()
        if tag and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return tuple(result)


# -----------------------------
# Field validation (edit boundary)
# -----------------------------


def validate_text(value: object, *, field_name: str, max_length: int = NAME_MAX_LENGTH) -> str:
    """Validate a required text field and return the trimmed value."""

    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required and must be a non-empty string")
    trimmed = value.strip()
    if len(trimmed) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return trimmed


def validate_credits(value: object) -> float:
    """Validate a credit weight in ``[0, MAX_CREDITS]``."""

    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValidationError("credits must be a number")
    if value < 0 or value > MAX_CREDITS:
        raise ValidationError(f"credits must be between 0 and {MAX_CREDITS}")
    return value


def validate_category(value: object) -> str:
    if value not in COURSE_CATEGORIES:
        raise ValidationError("category must be one of: " + ", ".join(COURSE_CATEGORIES))
    return str(value)


def validate_semester_type(value: object) -> str:
    if value not in SEMESTER_TYPES:
        raise ValidationError("type must be one of: " + ", ".join(SEMESTER_TYPES))
    return str(value)


def validate_year(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("year must be an integer")
    if value < YEAR_MIN or value > YEAR_MAX:
        raise ValidationError(f"year must be between {YEAR_MIN} and {YEAR_MAX}")
    return value


# -----------------------------
# Creation and update helpers
# -----------------------------


def create_course_from_create(payload: CourseCreate, *, course_id: str | None = None) -> Course:
    """Create a validated Course from a CourseCreate payload."""

    code = validate_text(payload.get("code"), field_name="code", max_length=CODE_MAX_LENGTH)
    name = validate_text(payload.get("name"), field_name="name")
    credits = validate_credits(payload.get("credits", 3))
    category = validate_category(payload.get("category", DEFAULT_CATEGORY))
    created_ts = iso_utc_now()
    return Course(
        id=course_id or new_course_id(),
        code=code,
        name=name,
        credits=credits,
        is_completed=bool(payload.get("is_completed", False)),
        category=category,
        major_requirements=normalize_requirement_tags(payload.get("major_requirements")),
        created_at=created_ts,
        updated_at=created_ts,
    )


def apply_course_update(course: Course, update: CourseUpdate) -> Course:
    """Validate an update payload and return a new merged Course.

    Raises ValidationError before anything is merged, so a failed update
    leaves the original untouched.
    """

    changes: dict[str, object] = {}
    if "code" in update:
        changes["code"] = validate_text(
            update["code"], field_name="code", max_length=CODE_MAX_LENGTH
        )
    if "name" in update:
        changes["name"] = validate_text(update["name"], field_name="name")
    if "credits" in update:
        changes["credits"] = validate_credits(update["credits"])
    if "category" in update:
        changes["category"] = validate_category(update["category"])
    if "is_completed" in update:
        changes["is_completed"] = bool(update["is_completed"])
    if "major_requirements" in update:
        changes["major_requirements"] = normalize_requirement_tags(
            update.get("major_requirements") or []
        )
    if not changes:
        return course
    changes["updated_at"] = monotonic_timestamp_after(course.updated_at)
    return replace(course, **changes)


# -----------------------------
# Semester ordering
# -----------------------------


def academic_year_key(semester: Semester) -> int:
    """Academic year a semester belongs to.

    Fall opens the academic year; Spring closes the one opened the previous
    calendar year. Every other type keeps its calendar year.
    """

    if semester.type == SEMESTER_SPRING:
        return semester.year - 1
    return semester.year


def semester_sort_key(semester: Semester) -> tuple[int, int, str]:
    rank = SEMESTER_TYPE_RANK.get(semester.type, len(SEMESTER_TYPE_RANK) + 1)
    return academic_year_key(semester), rank, semester.id


def sort_semesters(semesters: Iterable[Semester]) -> tuple[Semester, ...]:
    """Total order by (academic year, type rank, id)."""

    return tuple(sorted(semesters, key=semester_sort_key))


# -----------------------------
# Library filtering and ordering
# -----------------------------


def _matches_text(course: Course, q: str) -> bool:
    if not q:
        return True
    needle = q.casefold()
    return needle in course.code.casefold() or needle in course.name.casefold()


def _matches_requirements(course: Course, requirements: list[str]) -> bool:
    if not requirements:
        return True
    if REQUIREMENT_FILTER_OTHER in requirements and not course.major_requirements:
        return True
    return any(
        req != REQUIREMENT_FILTER_OTHER and req in course.major_requirements
        for req in requirements
    )


def _matches_semesters(course: Course, semesters: list[str], placement: Mapping[str, str]) -> bool:
    if not semesters:
        return True
    placed_in = placement.get(course.id)
    if placed_in is None:
        return SEMESTER_FILTER_CREDIT_ONLY in semesters
    if SEMESTER_FILTER_CREDIT_ONLY in semesters:
        return False
    return placed_in in semesters


def filter_courses(
    courses: Iterable[Course],
    flt: CourseFilter | None = None,
    *,
    placement: Mapping[str, str] | None = None,
) -> list[Course]:
    """Filter courses according to CourseFilter semantics.

    - q: case-insensitive substring of code or name
    - show_completed / show_incomplete: both default to True
    - categories: exact category membership
    - requirements: any requirement id matches; ``OTHER`` admits untagged courses
    - semesters: placed in one of the ids; ``CREDIT_ONLY`` selects unplaced courses
    """

    if not flt:
        return list(courses)

    q = (flt.get("q") or "").strip()
    show_completed = bool(flt.get("show_completed", True))
    show_incomplete = bool(flt.get("show_incomplete", True))
    categories = list(flt.get("categories") or [])
    requirements = list(flt.get("requirements") or [])
    semesters = list(flt.get("semesters") or [])
    placement = placement or {}

    filtered: list[Course] = []
    for course in courses:
        if course.is_completed and not show_completed:
            continue
        if not course.is_completed and not show_incomplete:
            continue
        if categories and course.category not in categories:
            continue
        if not _matches_text(course, q):
            continue
        if not _matches_requirements(course, requirements):
            continue
        if not _matches_semesters(course, semesters, placement):
            continue
        filtered.append(course)
    return filtered


def requirement_priority(course: Course, majors: list[RequirementGroup]) -> int:
    """1-based position of the first group (in display order) the course belongs to."""

    for idx, major in enumerate(majors):
        if major.id in course.major_requirements:
            return idx + 1
    return len(majors) + 1


def sort_courses_for_library(
    courses: Iterable[Course], majors: Iterable[RequirementGroup] = ()
) -> list[Course]:
    """Order by requirement priority, then by course code."""

    ordered_majors = sorted(majors, key=lambda m: m.display_order)
    return sorted(
        courses, key=lambda c: (requirement_priority(c, ordered_majors), c.code.casefold())
    )
