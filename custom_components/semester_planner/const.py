"""Constants for the Semester Planner integration.

Defines the integration domain, the public integration version, the fixed
vocabularies for course categories and semester types, the mandatory
semesters and the built-in requirement groups.
"""

from typing import Final

# Integration domain used across all modules
DOMAIN: Final[str] = "semester_planner"

# Public integration version (kept in sync with manifest.json)
INTEGRATION_VERSION: Final[str] = "0.1.0"

# Course categories, in display order
CATEGORY_PREREQUISITES: Final[str] = "Prerequisites"
CATEGORY_MAJOR_REQUIREMENTS: Final[str] = "Major Requirements"
CATEGORY_ELECTIVES: Final[str] = "Electives"
CATEGORY_OTHER: Final[str] = "Other"

COURSE_CATEGORIES: Final[tuple[str, ...]] = (
    CATEGORY_PREREQUISITES,
    CATEGORY_MAJOR_REQUIREMENTS,
    CATEGORY_ELECTIVES,
    CATEGORY_OTHER,
)

# Category applied when a persisted course carries none
DEFAULT_CATEGORY: Final[str] = CATEGORY_MAJOR_REQUIREMENTS

# Semester types and their tie-break rank inside one academic year
SEMESTER_FALL: Final[str] = "Fall"
SEMESTER_SPRING: Final[str] = "Spring"
SEMESTER_WINTER: Final[str] = "Winter"
SEMESTER_SUMMER: Final[str] = "Summer"

SEMESTER_TYPES: Final[tuple[str, ...]] = (
    SEMESTER_FALL,
    SEMESTER_WINTER,
    SEMESTER_SPRING,
    SEMESTER_SUMMER,
)

SEMESTER_TYPE_RANK: Final[dict[str, int]] = {
    SEMESTER_FALL: 1,
    SEMESTER_SPRING: 2,
    SEMESTER_WINTER: 3,
    SEMESTER_SUMMER: 4,
}

# Semesters that always exist and cannot be removed: (type, year)
MANDATORY_SEMESTERS: Final[tuple[tuple[str, int], ...]] = (
    (SEMESTER_FALL, 2024),
    (SEMESTER_SPRING, 2025),
    (SEMESTER_FALL, 2025),
    (SEMESTER_SPRING, 2026),
    (SEMESTER_FALL, 2026),
    (SEMESTER_SPRING, 2027),
    (SEMESTER_FALL, 2027),
    (SEMESTER_SPRING, 2028),
)

# Upper bound for a course's credit weight, enforced at the edit boundary
MAX_CREDITS: Final[float] = 20

# Library filter pseudo-ids
REQUIREMENT_FILTER_OTHER: Final[str] = "OTHER"
SEMESTER_FILTER_CREDIT_ONLY: Final[str] = "CREDIT_ONLY"

# Requirement groups used whenever the persisted list is empty
DEFAULT_MAJORS: Final[tuple[dict[str, object], ...]] = (
    {"id": "DSCT", "name": "Data Science & Technology", "color": "#2563eb", "display_order": 1},
    {"id": "COSC", "name": "Computer Science", "color": "#16a34a", "display_order": 2},
    {"id": "CCC", "name": "Common Core Courses", "color": "#9333ea", "display_order": 3},
)

# Fallback color for requirement ids without a definition
UNKNOWN_MAJOR_COLOR: Final[str] = "#6b7280"
