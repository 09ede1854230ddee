"""
Course-level grades: provisional upserts, the finalize latch and GPA.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from ..app_logger import get_logger
from ..core.entities import CourseGrade, utc_now
from ..core.exceptions import (
    AlreadyFinalizedError, DuplicateEntityError, NotFoundError, ValidationError,
)
from ..core.grading import is_finite_number, letter_and_gpa, round_percentage
from ..persistence.repositories import CourseGradeRepository, EnrollmentRepository

logger = get_logger("services.course_grades")


@dataclass
class GpaSummary:
    student_id: str
    gpa: float
    course_count: int
    finalized_count: int
    provisional: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "gpa": self.gpa,
            "course_count": self.course_count,
            "finalized_count": self.finalized_count,
            "provisional": self.provisional,
        }


class CourseGradeFinalizer:
    """Service for course grades; a finalized grade can never change again."""

    def __init__(self, grades: CourseGradeRepository, enrollments: EnrollmentRepository):
        self._grades = grades
        self._enrollments = enrollments

    def upsert_grade(self, student_id: str, course_id: str, percentage: float) -> CourseGrade:
        """Create or update a provisional course grade."""
        if not is_finite_number(percentage) or percentage < 0:
            raise ValidationError("percentage must be a non-negative number",
                                  details={"percentage": percentage})

        value = round_percentage(percentage)
        letter, gpa = letter_and_gpa(value)

        existing = self._grades.find_by_pair(student_id, course_id)
        if existing is not None and existing.finalized:
            raise self._finalized_error(existing)

        if existing is None:
            try:
                self._grades.insert(CourseGrade(student_id=student_id, course_id=course_id,
                                                percentage=value, letter_grade=letter, gpa_point=gpa))
            except DuplicateEntityError:
                # Created concurrently; fall through to the guarded update.
                existing = self._grades.find_by_pair(student_id, course_id)

        if existing is not None and not self._grades.update_unfinalized(
                student_id, course_id, value, letter, gpa):
            raise self._finalized_error(self.get_grade(student_id, course_id))

        # Skipped once finalized; finalize writes the frozen values itself.
        self._enrollments.mirror_final_grade(student_id, course_id, value, letter, gpa)

        logger.info("Course grade for student %s in %s set to %.2f%% (%s)",
                    student_id, course_id, value, letter)
        return self.get_grade(student_id, course_id)

    def finalize(self, student_id: str, course_id: str) -> CourseGrade:
        """Latch the grade against any further change."""
        grade = self.get_grade(student_id, course_id)
        if grade.finalized or not self._grades.finalize(student_id, course_id, utc_now()):
            raise self._finalized_error(self.get_grade(student_id, course_id))

        # Re-read after the latch: these values can no longer change.
        grade = self.get_grade(student_id, course_id)
        self._enrollments.finalize_final_grade(student_id, course_id, grade.percentage,
                                               grade.letter_grade, grade.gpa_point)

        logger.info("Finalized course grade for student %s in %s", student_id, course_id)
        return grade

    @staticmethod
    def _finalized_error(grade: CourseGrade) -> AlreadyFinalizedError:
        return AlreadyFinalizedError(
            f"Course grade for student {grade.student_id} in {grade.course_id} is finalized",
            details={"student_id": grade.student_id, "course_id": grade.course_id,
                     "finalized_at": grade.finalized_at.isoformat() if grade.finalized_at else None},
        )

    def get_grade(self, student_id: str, course_id: str) -> CourseGrade:
        grade = self._grades.find_by_pair(student_id, course_id)
        if grade is None:
            raise NotFoundError(f"No course grade for student {student_id} in {course_id}",
                                details={"student_id": student_id, "course_id": course_id})
        return grade

    def list_course_grades(self, course_id: str) -> List[CourseGrade]:
        return self._grades.find_by_course(course_id)

    def cumulative_gpa(self, student_id: str, include_provisional: bool = True) -> GpaSummary:
        """Average GPA point across a student's course grades.

        By default unfinalized grades count and the result is flagged as
        provisional; pass ``include_provisional=False`` for the official GPA.
        """
        grades = self._grades.find_by_student(student_id)
        if not include_provisional:
            grades = [g for g in grades if g.finalized]

        finalized_count = sum(1 for g in grades if g.finalized)
        gpa = round(sum(g.gpa_point for g in grades) / len(grades), 2) if grades else 0.0
        return GpaSummary(
            student_id=student_id,
            gpa=gpa,
            course_count=len(grades),
            finalized_count=finalized_count,
            provisional=finalized_count < len(grades),
        )
