"""Pure mutation functions over the immutable Schedule snapshot.

Every function takes the current ``Schedule`` and returns the next one. When a
mutation is rejected by an invariant (duplicate placement, unknown id, index
out of range, mandatory semester) the input snapshot itself is returned, so
callers detect a no-op with an identity check::

    nxt = engine.insert_at(current, "semester_2024_fall", "7", 0)
    if nxt is current:
        ...  # nothing happened

Only field validation on course edits raises (ValidationError / NotFoundError).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from .const import MANDATORY_SEMESTERS
from .exceptions import NotFoundError
from .models import (
    Course,
    CourseUpdate,
    Schedule,
    Semester,
    apply_course_update,
    default_semester_name,
    iso_utc_now,
    mandatory_semester_id,
    monotonic_timestamp_after,
    new_semester_id,
    sort_semesters,
)

_MANDATORY_PAIRS: frozenset[tuple[str, int]] = frozenset(MANDATORY_SEMESTERS)


def is_mandatory(semester: Semester) -> bool:
    """True for any semester holding a mandatory (type, year) pair, whatever its id."""

    return (semester.type, semester.year) in _MANDATORY_PAIRS


def _clamp(position: int | None, length: int) -> int:
    if position is None or position > length:
        return length
    return max(position, 0)


def _with_sequence(semester: Semester, course_ids: Iterable[str]) -> Semester:
    return replace(
        semester,
        course_ids=tuple(course_ids),
        updated_at=monotonic_timestamp_after(semester.updated_at),
    )


def _replace_semesters(schedule: Schedule, changed: dict[str, Semester]) -> Schedule:
    semesters = tuple(changed.get(s.id, s) for s in schedule.semesters)
    return Schedule(courses=schedule.courses, semesters=semesters)


# -----------------------------
# Container Set
# -----------------------------


def sort(schedule: Schedule) -> Schedule:
    ordered = sort_semesters(schedule.semesters)
    if ordered == schedule.semesters:
        return schedule
    return Schedule(courses=schedule.courses, semesters=ordered)


def ensure_mandatory(schedule: Schedule) -> Schedule:
    """Create any missing mandatory semester, then sort. Idempotent."""

    existing = schedule.semesters_by_id
    present = {(s.type, s.year) for s in schedule.semesters}
    missing: list[Semester] = []
    for semester_type, year in MANDATORY_SEMESTERS:
        semester_id = mandatory_semester_id(semester_type, year)
        if semester_id in existing or (semester_type, year) in present:
            continue
        now = iso_utc_now()
        missing.append(
            Semester(
                id=semester_id,
                name=default_semester_name(semester_type, year),
                type=semester_type,
                year=year,
                created_at=now,
                updated_at=now,
            )
        )
    if not missing:
        return sort(schedule)
    return Schedule(
        courses=schedule.courses,
        semesters=sort_semesters((*schedule.semesters, *missing)),
    )


def add_semester(
    schedule: Schedule, semester_type: str, year: int, *, semester_id: str | None = None
) -> Schedule:
    """Add an empty semester unless one with the same (type, year) exists."""

    if any(s.type == semester_type and s.year == year for s in schedule.semesters):
        return schedule
    new_id = semester_id or new_semester_id(semester_type, year)
    if new_id in schedule.semesters_by_id:
        return schedule
    now = iso_utc_now()
    semester = Semester(
        id=new_id,
        name=default_semester_name(semester_type, year),
        type=semester_type,
        year=year,
        created_at=now,
        updated_at=now,
    )
    return Schedule(
        courses=schedule.courses,
        semesters=sort_semesters((*schedule.semesters, semester)),
    )


def remove_semester(schedule: Schedule, semester_id: str) -> Schedule:
    """Delete a non-mandatory semester; its courses stay in the pool unplaced."""

    semester = schedule.get_semester(semester_id)
    if semester is None or is_mandatory(semester):
        return schedule
    return Schedule(
        courses=schedule.courses,
        semesters=tuple(s for s in schedule.semesters if s.id != semester_id),
    )


def rename_semester(schedule: Schedule, semester_id: str, new_name: str) -> Schedule:
    semester = schedule.get_semester(semester_id)
    if semester is None or semester.name == new_name:
        return schedule
    renamed = replace(
        semester, name=new_name, updated_at=monotonic_timestamp_after(semester.updated_at)
    )
    return _replace_semesters(schedule, {semester_id: renamed})


def clear_semester(schedule: Schedule, semester_id: str) -> Schedule:
    semester = schedule.get_semester(semester_id)
    if semester is None or not semester.course_ids:
        return schedule
    return _replace_semesters(schedule, {semester_id: _with_sequence(semester, ())})


# -----------------------------
# Placement Index
# -----------------------------


def insert_at(
    schedule: Schedule, semester_id: str, course_id: str, position: int | None
) -> Schedule:
    """Splice an unplaced pool course into a semester at a clamped position."""

    semester = schedule.get_semester(semester_id)
    if semester is None or course_id not in schedule.courses:
        return schedule
    if course_id in schedule.placement:
        return schedule
    seq = list(semester.course_ids)
    seq.insert(_clamp(position, len(seq)), course_id)
    return _replace_semesters(schedule, {semester_id: _with_sequence(semester, seq)})


def append(schedule: Schedule, semester_id: str, course_id: str) -> Schedule:
    return insert_at(schedule, semester_id, course_id, None)


def remove_from_semester(schedule: Schedule, semester_id: str, course_id: str) -> Schedule:
    semester = schedule.get_semester(semester_id)
    if semester is None or course_id not in semester.course_ids:
        return schedule
    seq = [cid for cid in semester.course_ids if cid != course_id]
    return _replace_semesters(schedule, {semester_id: _with_sequence(semester, seq)})


def reorder(schedule: Schedule, semester_id: str, from_index: int, to_index: int) -> Schedule:
    """Move the element at from_index to to_index within one semester."""

    semester = schedule.get_semester(semester_id)
    if semester is None or from_index == to_index:
        return schedule
    length = len(semester.course_ids)
    if not (0 <= from_index < length and 0 <= to_index < length):
        return schedule
    seq = list(semester.course_ids)
    moved = seq.pop(from_index)
    seq.insert(to_index, moved)
    return _replace_semesters(schedule, {semester_id: _with_sequence(semester, seq)})


def reorder_to_drop_position(
    schedule: Schedule, semester_id: str, from_index: int, drop_position: int
) -> Schedule:
    """Single-item drag within a semester.

    ``drop_position`` is the gap index measured against the sequence before the
    dragged course is lifted out, so dropping right above or right below the
    course leaves it where it is, and dragging downward lands one slot earlier.
    """

    semester = schedule.get_semester(semester_id)
    if semester is None:
        return schedule
    length = len(semester.course_ids)
    if not 0 <= from_index < length:
        return schedule
    drop_position = _clamp(drop_position, length)
    if drop_position in (from_index, from_index + 1):
        return schedule
    to_index = drop_position - 1 if drop_position > from_index else drop_position
    return reorder(schedule, semester_id, from_index, to_index)


def reorder_many(
    schedule: Schedule, semester_id: str, course_ids: Iterable[str], drop_position: int
) -> Schedule:
    """Bulk reorder of several courses inside one semester.

    Moved courses keep their relative order. The drop position is measured
    against the pre-removal sequence and is decremented once for every moved
    course that sat above it.
    """

    semester = schedule.get_semester(semester_id)
    if semester is None:
        return schedule
    wanted = set(course_ids)
    seq = semester.course_ids
    moved = [cid for cid in seq if cid in wanted]
    if not moved:
        return schedule
    drop_position = _clamp(drop_position, len(seq))
    shift = sum(1 for idx, cid in enumerate(seq) if cid in wanted and idx < drop_position)
    remaining = [cid for cid in seq if cid not in wanted]
    target = _clamp(drop_position - shift, len(remaining))
    reordered = (*remaining[:target], *moved, *remaining[target:])
    if reordered == seq:
        return schedule
    return _replace_semesters(schedule, {semester_id: _with_sequence(semester, reordered)})


def move_between(
    schedule: Schedule,
    from_semester_id: str,
    to_semester_id: str,
    course_id: str,
    position: int | None = None,
) -> Schedule:
    """Atomically remove a course from one semester and insert it into another."""

    if from_semester_id == to_semester_id:
        return schedule
    source = schedule.get_semester(from_semester_id)
    target = schedule.get_semester(to_semester_id)
    if source is None or target is None:
        return schedule
    if course_id not in source.course_ids or course_id in target.course_ids:
        return schedule
    src_seq = [cid for cid in source.course_ids if cid != course_id]
    dst_seq = list(target.course_ids)
    dst_seq.insert(_clamp(position, len(dst_seq)), course_id)
    return _replace_semesters(
        schedule,
        {
            from_semester_id: _with_sequence(source, src_seq),
            to_semester_id: _with_sequence(target, dst_seq),
        },
    )


def insert_selected_at(
    schedule: Schedule, semester_id: str, course_ids: Iterable[str], position: int | None
) -> Schedule:
    """Insert several unplaced pool courses as one block.

    Block order follows the pool order. Courses that are unknown or already
    placed somewhere are skipped; the rest are still inserted.
    """

    semester = schedule.get_semester(semester_id)
    if semester is None:
        return schedule
    wanted = set(course_ids)
    block = [
        cid for cid in schedule.courses if cid in wanted and cid not in schedule.placement
    ]
    if not block:
        return schedule
    seq = list(semester.course_ids)
    at = _clamp(position, len(seq))
    seq[at:at] = block
    return _replace_semesters(schedule, {semester_id: _with_sequence(semester, seq)})


def move_selected_between(
    schedule: Schedule,
    from_semester_id: str,
    to_semester_id: str,
    course_ids: Iterable[str],
    position: int | None = None,
) -> Schedule:
    """Move the selected courses found in the source semester as one block."""

    if from_semester_id == to_semester_id:
        return schedule
    source = schedule.get_semester(from_semester_id)
    target = schedule.get_semester(to_semester_id)
    if source is None or target is None:
        return schedule
    wanted = set(course_ids)
    block = [
        cid for cid in source.course_ids if cid in wanted and cid not in target.course_ids
    ]
    if not block:
        return schedule
    moving = set(block)
    src_seq = [cid for cid in source.course_ids if cid not in moving]
    dst_seq = list(target.course_ids)
    at = _clamp(position, len(dst_seq))
    dst_seq[at:at] = block
    return _replace_semesters(
        schedule,
        {
            from_semester_id: _with_sequence(source, src_seq),
            to_semester_id: _with_sequence(target, dst_seq),
        },
    )


def remove_many_from_semester(
    schedule: Schedule, semester_id: str, course_ids: Iterable[str]
) -> Schedule:
    semester = schedule.get_semester(semester_id)
    if semester is None:
        return schedule
    wanted = set(course_ids)
    seq = [cid for cid in semester.course_ids if cid not in wanted]
    if len(seq) == len(semester.course_ids):
        return schedule
    return _replace_semesters(schedule, {semester_id: _with_sequence(semester, seq)})


# -----------------------------
# Item Pool
# -----------------------------


def add_course(schedule: Schedule, course: Course) -> Schedule:
    """Add a pre-built course to the pool. The pool trusts its caller."""

    if course.id in schedule.courses:
        return schedule
    courses = dict(schedule.courses)
    courses[course.id] = course
    return Schedule(courses=courses, semesters=schedule.semesters)


def insert_new_course_at(
    schedule: Schedule, semester_id: str, course: Course, position: int | None
) -> Schedule:
    """Add a course to the pool and place it, or do neither."""

    if schedule.get_semester(semester_id) is None or course.id in schedule.courses:
        return schedule
    return insert_at(add_course(schedule, course), semester_id, course.id, position)


def update_course(schedule: Schedule, course_id: str, update: CourseUpdate) -> Schedule:
    """Merge validated fields into a course. Identity cannot change."""

    current = schedule.courses.get(course_id)
    if current is None:
        raise NotFoundError(f"course not found: {course_id}")
    merged = apply_course_update(current, update)
    if merged is current:
        return schedule
    courses = dict(schedule.courses)
    courses[course_id] = merged
    return Schedule(courses=courses, semesters=schedule.semesters)


def remove_courses(schedule: Schedule, course_ids: Iterable[str]) -> Schedule:
    """Delete courses from the pool and from every semester sequence."""

    doomed = {cid for cid in course_ids if cid in schedule.courses}
    if not doomed:
        return schedule
    courses = {cid: c for cid, c in schedule.courses.items() if cid not in doomed}
    changed = {
        s.id: _with_sequence(s, [cid for cid in s.course_ids if cid not in doomed])
        for s in schedule.semesters
        if doomed.intersection(s.course_ids)
    }
    semesters = tuple(changed.get(s.id, s) for s in schedule.semesters)
    return Schedule(courses=courses, semesters=semesters)


def remove_course(schedule: Schedule, course_id: str) -> Schedule:
    return remove_courses(schedule, (course_id,))


def set_completion(schedule: Schedule, course_ids: Iterable[str], completed: bool) -> Schedule:
    courses = dict(schedule.courses)
    touched = False
    for cid in course_ids:
        course = courses.get(cid)
        if course is None or course.is_completed == completed:
            continue
        courses[cid] = replace(
            course,
            is_completed=completed,
            updated_at=monotonic_timestamp_after(course.updated_at),
        )
        touched = True
    if not touched:
        return schedule
    return Schedule(courses=courses, semesters=schedule.semesters)


def toggle_completion(schedule: Schedule, course_id: str) -> Schedule:
    course = schedule.courses.get(course_id)
    if course is None:
        return schedule
    return set_completion(schedule, (course_id,), not course.is_completed)


# -----------------------------
# Queries
# -----------------------------


def find_course_semester(schedule: Schedule, course_id: str) -> Semester | None:
    return schedule.semester_of(course_id)


def search_placed(schedule: Schedule, term: str) -> list[tuple[Semester, Course]]:
    """Placed courses whose code or name contains term, in semester order."""

    needle = (term or "").strip().casefold()
    results: list[tuple[Semester, Course]] = []
    if not needle:
        return results
    for semester in schedule.semesters:
        for cid in semester.course_ids:
            course = schedule.courses.get(cid)
            if course is None:
                continue
            if needle in course.code.casefold() or needle in course.name.casefold():
                results.append((semester, course))
    return results
