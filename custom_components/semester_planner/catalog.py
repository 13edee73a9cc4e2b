"""Built-in course catalog used to seed the pool on a first run."""

from __future__ import annotations

from .const import CATEGORY_ELECTIVES as EL
from .const import CATEGORY_MAJOR_REQUIREMENTS as MR
from .const import CATEGORY_PREREQUISITES as PR
from .models import Course, iso_utc_now

_BOTH = ("DSCT", "COSC")

# (id, code, name, credits, requirement ids, category)
DEFAULT_CATALOG: tuple[tuple[str, str, str, float, tuple[str, ...], str], ...] = (
    # Prerequisites shared by DSCT and COSC
    ("1", "MATH1014", "Calculus II", 3, _BOTH, PR),
    ("2", "MATH1023", "Honors Calculus I", 3, _BOTH, PR),
    ("3", "COMP1022P", "Introduction to Computing with Java", 3, _BOTH, PR),
    # DSCT only
    ("4", "DSCT4900", "Academic and Professional Development", 0, ("DSCT",), MR),
    ("5", "MATH2023", "Multivariable Calculus", 4, ("DSCT",), MR),
    ("7", "MATH2411", "Applied Statistics", 4, ("DSCT",), MR),
    ("8", "MATH2421", "Probability", 4, ("DSCT",), MR),
    ("9", "MATH3322", "Matrix Computation", 3, ("DSCT",), MR),
    ("10", "MATH3332", "Data Analytic Tools", 3, ("DSCT",), MR),
    ("11", "MATH3423", "Statistical Inference", 3, ("DSCT",), MR),
    ("12", "MATH3424", "Regression Analysis", 3, ("DSCT",), MR),
    ("13", "MATH4432", "Statistical Machine Learning", 3, ("DSCT",), MR),
    ("22", "MATH4425", "Introductory Time Series", 3, ("DSCT",), EL),
    # Shared requirements
    ("6", "MATH2121", "Linear Algebra", 4, _BOTH, MR),
    ("16", "COMP2011", "Programming with C++", 4, _BOTH, MR),
    ("17", "COMP2012", "Object-Oriented Programming and Data Structures", 4, _BOTH, MR),
    ("18", "COMP2711", "Discrete Mathematical Tools for Computer Science", 4, _BOTH, MR),
    ("19", "COMP3711H", "Honors Design and Analysis of Algorithms", 4, _BOTH, MR),
    # Shared electives
    ("14", "COMP5212", "Machine Learning", 3, _BOTH, EL),
    ("15", "COMP4981", "Final Year Project", 6, _BOTH, MR),
    ("20", "COMP2211", "Exploring Artificial Intelligence", 3, _BOTH, EL),
    ("21", "COMP4222", "Machine Learning with Structured Data", 3, _BOTH, EL),
    # COSC only
    ("23", "COMP2611", "Computer Organization", 4, ("COSC",), MR),
    ("24", "COMP3111", "Software Engineering", 4, ("COSC",), MR),
    ("25", "COMP3511", "Operating Systems", 3, ("COSC",), MR),
    ("26", "COMP4900", "Academic and Professional Development", 0, ("COSC",), MR),
    ("27", "ISOM2500", "Business Statistics", 3, ("COSC",), MR),
    ("28", "COMP3031", "Principles of Programming Languages", 3, ("COSC",), EL),
    ("29", "COMP4211", "Machine Learning", 3, ("COSC",), EL),
    ("30", "COMP4332", "Big Data Mining and Management", 3, ("COSC",), EL),
    # Common core
    ("31", "LANG1002", "English for University Studies", 3, ("CCC",), PR),
    ("32", "LANG1003", "English Communication", 3, ("CCC",), PR),
    ("33", "SOSC1440", "Introduction to Economics", 3, ("CCC",), MR),
    ("34", "HUMA1000", "Cultures and Values", 3, ("CCC",), MR),
    ("35", "HUMA1440", "Introduction to Psychology", 3, ("CCC",), EL),
)


def default_courses() -> list[Course]:
    """Return fresh Course objects for the built-in catalog, in catalog order."""

    now = iso_utc_now()
    return [
        Course(
            id=course_id,
            code=code,
            name=name,
            credits=credits,
            category=category,
            major_requirements=tags,
            created_at=now,
            updated_at=now,
        )
        for course_id, code, name, credits, tags, category in DEFAULT_CATALOG
    ]
