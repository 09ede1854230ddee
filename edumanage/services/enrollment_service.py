"""
Enrollment ledger: the student/course relationship and the course seat counter.

An enrollment and its seat are one logical unit. The seat is reserved first
with a conditional increment, then the enrollment row is written; if that
write fails the reservation is released. Drops work the other way around
and put the status back if the counter cannot be decremented. Either way an
enrolled row never exists without its seat.

Concurrent writers are ordered by the storage layer only: conditional
updates on the counter and the status, and the unique (student, course)
constraint. Re-enrollment after a drop reuses the dropped row, so the pair
stays unique.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..app_logger import get_logger
from ..core.entities import Enrollment, utc_now
from ..core.enums import EnrollmentStatus, TERMINAL_STATUSES
from ..core.exceptions import (
    AlreadyTerminalError, CourseFullError, CourseNotApprovedError, DuplicateEnrollmentError,
    DuplicateEntityError, EduManageError, NotFoundError, StorageError, ValidationError,
)
from ..persistence.repositories import CourseRepository, EnrollmentRepository

logger = get_logger("services.enrollment")

_LIVE_STATUSES = (EnrollmentStatus.ENROLLED, EnrollmentStatus.SUSPENDED)


@dataclass
class SeatReconciliation:
    """Outcome of comparing a course's cached seat counter with its enrollments."""
    course_id: str
    cached: int
    actual: int
    corrected: bool

    @property
    def drift(self) -> int:
        return self.cached - self.actual

    def to_dict(self) -> Dict[str, Any]:
        return {
            "course_id": self.course_id,
            "cached": self.cached,
            "actual": self.actual,
            "drift": self.drift,
            "corrected": self.corrected,
        }


class EnrollmentLedger:
    """Service that owns enrollments and the denormalized seat counter."""

    def __init__(self, courses: CourseRepository, enrollments: EnrollmentRepository):
        self._courses = courses
        self._enrollments = enrollments

    def enroll(self, student_id: str, course_id: str) -> Enrollment:
        """Enroll a student in a course."""
        if not student_id:
            raise ValidationError("student_id is required")

        course = self._courses.find_by_id(course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found", details={"course_id": course_id})
        if not course.accepts_enrollment:
            raise CourseNotApprovedError(
                f"Course {course.code} is not open for enrollment",
                details={"course_id": course_id, "is_approved": course.is_approved,
                         "is_active": course.is_active},
            )

        existing = self._enrollments.find_by_pair(student_id, course_id)
        if existing is not None and existing.status != EnrollmentStatus.DROPPED:
            raise DuplicateEnrollmentError(
                f"Student {student_id} already has a {existing.status.value} enrollment in {course.code}",
                details={"enrollment_id": existing.id, "status": existing.status.value},
            )

        if course.is_full:
            raise CourseFullError(
                f"Course {course.code} is full",
                details={"course_id": course_id, "max_seats": course.max_seats},
            )

        if not self._courses.reserve_seat(course_id):
            raise self._reservation_failure(course_id)

        try:
            enrollment = self._write_enrollment(student_id, course_id, existing)
        except EduManageError as e:
            self._release_reserved_seat(course_id, e)
            if isinstance(e, DuplicateEntityError):
                raise DuplicateEnrollmentError(
                    f"Student {student_id} is already enrolled in {course.code}",
                    details={"course_id": course_id, "student_id": student_id},
                ) from e
            raise

        logger.info("Enrolled student %s in course %s (%s)", student_id, course.code, enrollment.id)
        return enrollment

    def _reservation_failure(self, course_id: str) -> EduManageError:
        # The conditional increment lost a race; explain from fresh state.
        course = self._courses.find_by_id(course_id)
        if course is None:
            return NotFoundError(f"Course {course_id} not found", details={"course_id": course_id})
        if not course.accepts_enrollment:
            return CourseNotApprovedError(f"Course {course.code} is not open for enrollment",
                                          details={"course_id": course_id})
        return CourseFullError(f"Course {course.code} is full",
                               details={"course_id": course_id, "max_seats": course.max_seats})

    def _write_enrollment(self, student_id: str, course_id: str,
                          existing: Optional[Enrollment]) -> Enrollment:
        if existing is None:
            return self._enrollments.insert(Enrollment(student_id=student_id, course_id=course_id))

        if not self._enrollments.reactivate(existing.id, utc_now()):
            raise DuplicateEnrollmentError(
                f"Enrollment {existing.id} changed while re-enrolling",
                details={"enrollment_id": existing.id},
            )
        logger.info("Re-enrolling student %s in course %s using enrollment %s",
                    student_id, course_id, existing.id)
        return self.get_enrollment(existing.id)

    def _release_reserved_seat(self, course_id: str, cause: Exception) -> None:
        try:
            self._courses.release_seat(course_id)
            logger.warning("Released reserved seat in course %s after failed enrollment: %s",
                           course_id, cause)
        except StorageError:
            logger.exception("Could not release reserved seat in course %s; "
                             "the counter over-counts until reconciled", course_id)

    def drop(self, enrollment_id: str) -> Enrollment:
        """Drop an enrollment and give its seat back."""
        snapshot = self.get_enrollment(enrollment_id)
        self._ensure_not_terminal(snapshot)

        # Only one concurrent drop can win this transition.
        if not self._enrollments.transition(enrollment_id, _LIVE_STATUSES, EnrollmentStatus.DROPPED,
                                            completion_date=utc_now(), set_completion=True):
            raise self._terminal_error(self.get_enrollment(enrollment_id))

        try:
            released = self._courses.release_seat(snapshot.course_id)
        except StorageError:
            self._undo_drop(snapshot)
            raise

        if not released:
            logger.warning("Seat counter for course %s was already 0 when dropping %s",
                           snapshot.course_id, enrollment_id)

        logger.info("Dropped enrollment %s (student %s, course %s)",
                    enrollment_id, snapshot.student_id, snapshot.course_id)
        return self.get_enrollment(enrollment_id)

    def _undo_drop(self, snapshot: Enrollment) -> None:
        try:
            restored = self._enrollments.undo_drop(snapshot.id, snapshot.status, snapshot.completion_date)
        except StorageError:
            logger.exception("Could not restore enrollment %s after seat counter failure", snapshot.id)
            return
        if restored:
            logger.warning("Restored enrollment %s to %s after seat counter failure",
                           snapshot.id, snapshot.status.value)
        else:
            logger.warning("Enrollment %s changed after its drop; seat counter for course %s "
                           "over-counts until reconciled", snapshot.id, snapshot.course_id)

    def complete(self, enrollment_id: str) -> Enrollment:
        """Mark an enrollment completed; the seat stays counted."""
        return self._change_status(enrollment_id, _LIVE_STATUSES, EnrollmentStatus.COMPLETED,
                                   set_completion=True)

    def suspend(self, enrollment_id: str) -> Enrollment:
        """Suspend an active enrollment; the seat stays counted."""
        return self._change_status(enrollment_id, (EnrollmentStatus.ENROLLED,), EnrollmentStatus.SUSPENDED)

    def reinstate(self, enrollment_id: str) -> Enrollment:
        """Return a suspended enrollment to active."""
        return self._change_status(enrollment_id, (EnrollmentStatus.SUSPENDED,), EnrollmentStatus.ENROLLED)

    def _change_status(self, enrollment_id: str, from_statuses, to_status: EnrollmentStatus,
                       set_completion: bool = False) -> Enrollment:
        current = self.get_enrollment(enrollment_id)
        self._ensure_not_terminal(current)
        if current.status not in from_statuses:
            raise ValidationError(
                f"Enrollment {enrollment_id} is {current.status.value}; cannot become {to_status.value}",
                details={"status": current.status.value, "target": to_status.value},
            )
        if not self._enrollments.transition(enrollment_id, from_statuses, to_status,
                                            completion_date=utc_now(), set_completion=set_completion):
            latest = self.get_enrollment(enrollment_id)
            if latest.status in TERMINAL_STATUSES:
                raise self._terminal_error(latest)
            raise ValidationError(
                f"Enrollment {enrollment_id} is {latest.status.value}; cannot become {to_status.value}",
                details={"status": latest.status.value, "target": to_status.value},
            )

        logger.info("Enrollment %s moved from %s to %s", enrollment_id, current.status.value, to_status.value)
        return self.get_enrollment(enrollment_id)

    def _ensure_not_terminal(self, enrollment: Enrollment) -> None:
        if enrollment.status in TERMINAL_STATUSES:
            raise self._terminal_error(enrollment)

    @staticmethod
    def _terminal_error(enrollment: Enrollment) -> AlreadyTerminalError:
        return AlreadyTerminalError(
            f"Enrollment {enrollment.id} is already {enrollment.status.value}",
            details={"enrollment_id": enrollment.id, "status": enrollment.status.value},
        )

    def get_enrollment(self, enrollment_id: str) -> Enrollment:
        enrollment = self._enrollments.find_by_id(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found",
                                details={"enrollment_id": enrollment_id})
        return enrollment

    def find_enrollment(self, student_id: str, course_id: str) -> Optional[Enrollment]:
        return self._enrollments.find_by_pair(student_id, course_id)

    def list_course_enrollments(self, course_id: str,
                                status: Optional[EnrollmentStatus] = None) -> List[Enrollment]:
        return self._enrollments.find_by_course(course_id, status)

    def list_student_enrollments(self, student_id: str) -> List[Enrollment]:
        return self._enrollments.find_by_student(student_id)

    def reconcile_seat_count(self, course_id: str, fix: bool = True) -> SeatReconciliation:
        """Compare the cached seat counter with the enrollment rows."""
        course = self._courses.find_by_id(course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found", details={"course_id": course_id})
        actual = self._enrollments.count_seat_holders(course_id)
        corrected = False
        if actual != course.current_enrollment:
            logger.warning("Seat counter drift on course %s: cached=%d actual=%d",
                           course_id, course.current_enrollment, actual)
            if fix:
                # Recounted inside the UPDATE so enrollments landing meanwhile are included.
                corrected = self._courses.sync_seat_count(course_id)
        return SeatReconciliation(course_id=course_id, cached=course.current_enrollment,
                                  actual=actual, corrected=corrected)
