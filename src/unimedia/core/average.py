"""Weighted average calculator.

Grades are on the Italian 0-30 scale and are weighted by CFU. An exam
contributes to the average only when its grade parses to a finite number
in [0, 30] and its CFU weight is positive.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from unimedia.core.tracker import Exam

MIN_GRADE = 0.0
MAX_GRADE = 30.0

# Plain decimal literal: no underscores, hex, or words like "nan"
DECIMAL_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$", re.ASCII)


def parse_grade(text: str) -> float | None:
    """Parse a grade string.

    Args:
        text: Raw grade as typed by the user ("" means not recorded)

    Returns:
        The grade as float, or None if empty, not numeric, or out of range
    """
    t = str(text).strip()
    if not DECIMAL_RE.match(t):
        return None
    n = float(t)
    if not math.isfinite(n):
        return None
    if n < MIN_GRADE or n > MAX_GRADE:
        return None
    return n


def parse_cfu(value: Any) -> int:
    """Coerce a CFU value to a non-negative integer (floor).

    Non-numeric and non-finite input yields 0; text must be a plain
    decimal literal.
    """
    if isinstance(value, str) and not DECIMAL_RE.match(value.strip()):
        return 0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(n):
        return 0
    return max(0, math.floor(n))


def weighted_average(exams: Iterable[Exam]) -> float | None:
    """Compute the CFU-weighted average of recorded grades.

    Returns:
        sum(grade * cfu) / sum(cfu) over counted exams, or None when no
        credit is counted
    """
    total = 0.0
    credits = 0
    for exam in exams:
        grade = parse_grade(exam.grade)
        if grade is None:
            continue
        if exam.cfu <= 0:
            continue
        total += grade * exam.cfu
        credits += exam.cfu
    if credits == 0:
        return None
    return total / credits


def what_if_average(
    exams: Iterable[Exam],
    exam_id: str,
    hypothetical: str,
) -> float | None:
    """Recompute the average with one exam's grade overridden.

    Args:
        exams: Current exam list (left untouched)
        exam_id: Exam whose grade is simulated
        hypothetical: Simulated grade; if it does not parse, the current
            average is returned unchanged

    Returns:
        Simulated weighted average, or None when no credit is counted
    """
    exams = list(exams)
    grade = parse_grade(hypothetical)
    if grade is None:
        return weighted_average(exams)

    simulated = [
        _with_grade(e, _format_grade(grade)) if e.id == exam_id else e
        for e in exams
    ]
    return weighted_average(simulated)


def _with_grade(exam: Exam, grade: str) -> Exam:
    return replace(exam, grade=grade)


def _format_grade(grade: float) -> str:
    # 28.0 -> "28", 27.5 -> "27.5"
    return str(int(grade)) if grade.is_integer() else str(grade)


@dataclass
class CreditSummary:
    """Credit totals shown next to the average."""

    total_cfu: int
    graded_cfu: int
    graded_exams: int
    total_exams: int


def credit_summary(exams: Iterable[Exam]) -> CreditSummary:
    """Summarize credits across the exam list."""
    total_cfu = 0
    graded_cfu = 0
    graded_exams = 0
    total_exams = 0
    for exam in exams:
        total_exams += 1
        total_cfu += max(0, exam.cfu)
        if parse_grade(exam.grade) is not None and exam.cfu > 0:
            graded_cfu += exam.cfu
            graded_exams += 1
    return CreditSummary(
        total_cfu=total_cfu,
        graded_cfu=graded_cfu,
        graded_exams=graded_exams,
        total_exams=total_exams,
    )


def format_average(value: float | None) -> str:
    """Render an average with two decimals, or a dash when undefined."""
    if value is None:
        return "—"
    return f"{value:.2f}"
