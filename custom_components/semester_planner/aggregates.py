"""Derived credit aggregates, recomputed on every read and never stored."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypedDict

from .models import Course, RequirementGroup, Schedule


class CreditTotals(TypedDict):
    completed: float
    total: float


def all_courses(schedule: Schedule) -> list[Course]:
    """Every course in the pool; placed courses are always pool courses."""

    return list(schedule.courses.values())


def total_credits(courses: Iterable[Course]) -> float:
    return sum(c.credits for c in courses)


def completed_credits(courses: Iterable[Course]) -> float:
    return sum(c.credits for c in courses if c.is_completed)


def requirement_credits(
    courses: Iterable[Course], requirement_ids: Iterable[str]
) -> dict[str, CreditTotals]:
    """Per requirement group ``{completed, total}`` over courses tagged with it."""

    course_list = list(courses)
    result: dict[str, CreditTotals] = {}
    for req in requirement_ids:
        tagged = [c for c in course_list if req in c.major_requirements]
        result[req] = {
            "completed": completed_credits(tagged),
            "total": total_credits(tagged),
        }
    return result


def semester_courses(schedule: Schedule, semester_id: str) -> list[Course]:
    semester = schedule.get_semester(semester_id)
    if semester is None:
        return []
    return [schedule.courses[cid] for cid in semester.course_ids if cid in schedule.courses]


def semester_summary(
    schedule: Schedule, semester_id: str, majors: Iterable[RequirementGroup]
) -> dict[str, object]:
    courses = semester_courses(schedule, semester_id)
    return {
        "semester_id": semester_id,
        "total_credits": total_credits(courses),
        "completed_credits": completed_credits(courses),
        "requirements": requirement_credits(courses, [m.id for m in majors]),
    }


def schedule_summary(
    schedule: Schedule, majors: Iterable[RequirementGroup]
) -> dict[str, object]:
    """Totals for the whole plan plus one entry per semester."""

    major_list = list(majors)
    courses = all_courses(schedule)
    return {
        "total_credits": total_credits(courses),
        "completed_credits": completed_credits(courses),
        "requirements": requirement_credits(courses, [m.id for m in major_list]),
        "semesters": [semester_summary(schedule, s.id, major_list) for s in schedule.semesters],
    }
