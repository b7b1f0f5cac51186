"""
Academic period value object (``registrar_kernel.domain.academic``).

The current academic year and semester are read by nearly every admin
page.  They are process-wide read-only configuration, passed explicitly
to the components that need them -- never looked up from a global.

Historic data spells them several ways (``"2024-2025"`` vs
``"2024/2025"``, ``1`` vs ``"First Semester"``); ``AcademicPeriod.parse``
normalises all of them to one canonical form.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_YEAR_PATTERN = re.compile(r"^\s*(\d{4})\s*[-/]\s*(\d{4})\s*$")

_SEMESTER_WORDS = {
    "1": 1,
    "first": 1,
    "first semester": 1,
    "semester 1": 1,
    "2": 2,
    "second": 2,
    "second semester": 2,
    "semester 2": 2,
}


def normalize_academic_year(value: Any) -> str:
    """Return the ``YYYY/YYYY`` form of an academic year.

    Raises:
        ValueError: if the value is not two consecutive four-digit years.
    """
    match = _YEAR_PATTERN.match(str(value))
    if match is None:
        raise ValueError(f"Unrecognised academic year: {value!r}")
    start, end = int(match.group(1)), int(match.group(2))
    if end != start + 1:
        raise ValueError(f"Academic year must span consecutive years: {value!r}")
    return f"{start}/{end}"


def normalize_semester(value: Any) -> int:
    """Return the semester number (1 or 2).

    Raises:
        ValueError: for anything that is not a first/second semester spelling.
    """
    if isinstance(value, bool):
        raise ValueError(f"Unrecognised semester: {value!r}")
    if isinstance(value, int):
        if value in (1, 2):
            return value
        raise ValueError(f"Unrecognised semester: {value!r}")
    key = " ".join(str(value).strip().lower().split())
    if key not in _SEMESTER_WORDS:
        raise ValueError(f"Unrecognised semester: {value!r}")
    return _SEMESTER_WORDS[key]


@dataclass(frozen=True)
class AcademicPeriod:
    """The academic year and semester currently in force."""

    academic_year: str
    semester: int

    def __post_init__(self) -> None:
        if normalize_academic_year(self.academic_year) != self.academic_year:
            raise ValueError(
                f"academic_year must be in YYYY/YYYY form, got {self.academic_year!r}"
            )
        if self.semester not in (1, 2):
            raise ValueError(f"semester must be 1 or 2, got {self.semester!r}")

    @classmethod
    def parse(cls, academic_year: Any, semester: Any) -> AcademicPeriod:
        return cls(
            academic_year=normalize_academic_year(academic_year),
            semester=normalize_semester(semester),
        )

    def as_payload(self) -> dict[str, Any]:
        return {"academicYear": self.academic_year, "semester": self.semester}
