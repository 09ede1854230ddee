"""
Letter grade and GPA lookup shared by submission and course grading.
"""

import math
from typing import NamedTuple, Tuple


class GradeBand(NamedTuple):
    lower_bound: float
    letter: str
    gpa: float


# Inclusive lower bounds, highest first.
GRADE_BREAKPOINTS: Tuple[GradeBand, ...] = (
    GradeBand(97, "A+", 4.0),
    GradeBand(93, "A", 4.0),
    GradeBand(90, "A-", 3.7),
    GradeBand(87, "B+", 3.3),
    GradeBand(83, "B", 3.0),
    GradeBand(80, "B-", 2.7),
    GradeBand(77, "C+", 2.3),
    GradeBand(73, "C", 2.0),
    GradeBand(70, "C-", 1.7),
    GradeBand(67, "D+", 1.3),
    GradeBand(60, "D", 1.0),
)

FAILING_BAND = GradeBand(0, "F", 0.0)


def is_finite_number(value) -> bool:
    """True for a real int or float that fits in a float and is not inf or NaN."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def clamp_percentage(value: float) -> float:
    """Clamp a percentage into ``[0, 100]``; NaN becomes 0."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except OverflowError:
        return 100.0 if value > 0 else 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, min(100.0, number))


def round_percentage(value: float) -> float:
    """Round a percentage the way it is stored."""
    return round(float(value), 2)


def letter_and_gpa(percentage: float) -> Tuple[str, float]:
    """Map a percentage to its letter grade and GPA point.

    Total over all inputs: negative values grade as 0 and values above 100
    grade as 100.
    """
    value = clamp_percentage(percentage)
    for band in GRADE_BREAKPOINTS:
        if value >= band.lower_bound:
            return band.letter, band.gpa
    return FAILING_BAND.letter, FAILING_BAND.gpa
