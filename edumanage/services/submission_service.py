"""
Assignments, submissions and submission grading.
"""

from datetime import datetime
from typing import List, Optional, Union

from ..app_logger import get_logger
from ..core.entities import (
    Assignment, LateSubmissionPolicy, Submission, SubmissionGrade, parse_datetime, utc_now,
)
from ..core.enums import EnrollmentStatus
from ..core.exceptions import (
    DuplicateEntityError, DuplicateSubmissionError, InvalidPointsError,
    LateSubmissionRejectedError, NotFoundError, UnknownEnrollmentError, ValidationError,
)
from ..core.grading import is_finite_number, letter_and_gpa, round_percentage
from ..persistence.repositories import (
    AssignmentRepository, CourseRepository, EnrollmentRepository, SubmissionRepository,
)

logger = get_logger("services.submissions")


def apply_late_penalty(raw_percentage: float, penalty_percent: float) -> float:
    """Deduct ``penalty_percent`` of the score, never going below zero."""
    return max(0.0, raw_percentage - raw_percentage * (penalty_percent / 100))


class SubmissionGrader:
    """Service for assignments, submissions and their grades."""

    def __init__(self, courses: CourseRepository, enrollments: EnrollmentRepository,
                 assignments: AssignmentRepository, submissions: SubmissionRepository):
        self._courses = courses
        self._enrollments = enrollments
        self._assignments = assignments
        self._submissions = submissions

    def create_assignment(self, course_id: str, title: str, total_points: float,
                          due_date: Union[str, datetime], late_allowed: bool = False,
                          penalty_percent: float = 0.0) -> Assignment:
        if self._courses.find_by_id(course_id) is None:
            raise NotFoundError(f"Course {course_id} not found", details={"course_id": course_id})
        if not (title or "").strip():
            raise ValidationError("Assignment title is required")
        if not is_finite_number(total_points) or total_points <= 0:
            raise ValidationError("total_points must be a positive number",
                                  details={"total_points": total_points})
        if not is_finite_number(penalty_percent) or not 0 <= penalty_percent <= 100:
            raise ValidationError("penalty_percent must be between 0 and 100",
                                  details={"penalty_percent": penalty_percent})
        due = parse_datetime(due_date)
        if due is None:
            raise ValidationError("due_date is required")

        assignment = Assignment(
            course_id=course_id,
            title=title.strip(),
            total_points=float(total_points),
            due_date=due,
            late_policy=LateSubmissionPolicy(allowed=bool(late_allowed),
                                             penalty_percent=float(penalty_percent)),
        )
        self._assignments.insert(assignment)
        logger.info("Created assignment %s (%s) in course %s", assignment.title, assignment.id, course_id)
        return assignment

    def get_assignment(self, assignment_id: str) -> Assignment:
        assignment = self._assignments.find_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found",
                                details={"assignment_id": assignment_id})
        return assignment

    def submit(self, assignment_id: str, student_id: str,
               submitted_at: Optional[Union[str, datetime]] = None, content: str = "") -> Submission:
        """Record a submission; lateness is decided here, once."""
        assignment = self.get_assignment(assignment_id)

        enrollment = self._enrollments.find_by_pair(student_id, assignment.course_id)
        if enrollment is None or enrollment.status != EnrollmentStatus.ENROLLED:
            raise UnknownEnrollmentError(
                f"Student {student_id} is not actively enrolled in course {assignment.course_id}",
                details={"student_id": student_id, "course_id": assignment.course_id},
            )

        when = parse_datetime(submitted_at) or utc_now()
        is_late = when > assignment.due_date
        if is_late and not assignment.late_policy.allowed:
            raise LateSubmissionRejectedError(
                f"Assignment {assignment.title} does not accept late submissions",
                details={"assignment_id": assignment_id, "due_date": assignment.due_date.isoformat(),
                         "submitted_at": when.isoformat()},
            )

        submission = Submission(assignment_id=assignment_id, student_id=student_id,
                                submitted_at=when, is_late=is_late, content=content or "")
        try:
            self._submissions.insert(submission)
        except DuplicateEntityError as e:
            raise DuplicateSubmissionError(
                f"Student {student_id} already submitted assignment {assignment_id}",
                details={"assignment_id": assignment_id, "student_id": student_id},
            ) from e

        logger.info("Student %s submitted assignment %s%s", student_id, assignment_id,
                    " (late)" if is_late else "")
        return submission

    def grade(self, submission_id: str, points: float, feedback: str = "") -> Submission:
        """Grade or re-grade a submission; the percentage is always derived."""
        submission = self.get_submission(submission_id)
        assignment = self._assignments.find_by_id(submission.assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {submission.assignment_id} not found",
                                details={"assignment_id": submission.assignment_id})

        if not is_finite_number(points) or points < 0 or points > assignment.total_points:
            raise InvalidPointsError(
                f"Points must be between 0 and {assignment.total_points:g}",
                details={"points": points, "total_points": assignment.total_points},
            )

        percentage = points / assignment.total_points * 100
        if submission.is_late:
            if not assignment.late_policy.allowed:
                # Should have been refused at submission time.
                raise LateSubmissionRejectedError(
                    f"Submission {submission_id} is late and assignment {assignment.id} refuses late work",
                    details={"submission_id": submission_id, "assignment_id": assignment.id},
                )
            percentage = apply_late_penalty(percentage, assignment.late_policy.penalty_percent)

        percentage = round_percentage(percentage)
        letter, _ = letter_and_gpa(percentage)
        grade = SubmissionGrade(points=float(points), percentage=percentage, letter_grade=letter,
                                feedback=feedback or "", graded_at=utc_now())
        if not self._submissions.save_grade(submission_id, grade):
            raise NotFoundError(f"Submission {submission_id} not found",
                                details={"submission_id": submission_id})

        logger.info("Graded submission %s: %.2f%% (%s)", submission_id, percentage, letter)
        return self.get_submission(submission_id)

    def get_submission(self, submission_id: str) -> Submission:
        submission = self._submissions.find_by_id(submission_id)
        if submission is None:
            raise NotFoundError(f"Submission {submission_id} not found",
                                details={"submission_id": submission_id})
        return submission

    def list_assignment_submissions(self, assignment_id: str) -> List[Submission]:
        self.get_assignment(assignment_id)
        return self._submissions.find_by_assignment(assignment_id)
