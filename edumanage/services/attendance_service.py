"""
Attendance aggregation: record a class meeting and fold it into each
student's running attendance totals.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..app_logger import get_logger
from ..core.entities import AttendanceMark, AttendanceSession, Enrollment, parse_date
from ..core.enums import ATTENDED_STATUSES, AttendanceStatus, EnrollmentStatus
from ..core.exceptions import (
    DuplicateEntityError, DuplicateSessionError, EduManageError, NotFoundError,
    UnknownEnrollmentError, ValidationError,
)
from ..persistence.repositories import AttendanceRepository, CourseRepository, EnrollmentRepository
from .concurrency_manager import ConcurrencyManager

logger = get_logger("services.attendance")

MarkInput = Union[Tuple[str, Union[str, AttendanceStatus]], Mapping[str, Any]]


@dataclass
class AttendanceOutcome:
    """What happened to one student's totals for one session."""
    student_id: str
    status: AttendanceStatus
    applied: bool
    enrollment: Optional[Enrollment] = None
    error_kind: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "status": self.status.value,
            "applied": self.applied,
            "attendance": self.enrollment.attendance.to_dict() if self.enrollment else None,
            "error": self.error_kind,
            "message": self.message,
        }


@dataclass
class AttendanceResult:
    session: AttendanceSession
    outcomes: List[AttendanceOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [o.student_id for o in self.outcomes if o.applied]

    @property
    def failed(self) -> List[str]:
        return [o.student_id for o in self.outcomes if not o.applied]

    @property
    def is_complete(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "succeeded": self.succeeded,
            "failed": self.failed,
            "complete": self.is_complete,
        }


def _normalize_marks(marks: Iterable[MarkInput]) -> List[AttendanceMark]:
    normalized: List[AttendanceMark] = []
    seen = set()
    for item in marks:
        if isinstance(item, Mapping):
            student_id = item.get("student_id") or item.get("studentId")
            raw_status = item.get("status")
        else:
            try:
                student_id, raw_status = item
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid attendance entry: {item!r}") from e

        if not student_id:
            raise ValidationError("Every attendance entry needs a student id")
        try:
            status = raw_status if isinstance(raw_status, AttendanceStatus) else AttendanceStatus(raw_status)
        except ValueError as e:
            raise ValidationError(
                f"Unknown attendance status {raw_status!r}",
                details={"student_id": student_id, "allowed": [s.value for s in AttendanceStatus]},
            ) from e
        if student_id in seen:
            raise ValidationError(f"Student {student_id} is listed twice",
                                  details={"student_id": student_id})
        seen.add(student_id)
        normalized.append(AttendanceMark(student_id=student_id, status=status))

    if not normalized:
        raise ValidationError("An attendance session needs at least one student")
    return normalized


class AttendanceAggregator:
    """Service that records sessions and maintains enrollment attendance totals."""

    def __init__(self, courses: CourseRepository, enrollments: EnrollmentRepository,
                 sessions: AttendanceRepository, concurrency_manager: ConcurrencyManager,
                 session_write_retries: int = 2):
        self._courses = courses
        self._enrollments = enrollments
        self._sessions = sessions
        self._concurrency_manager = concurrency_manager
        self._session_write_retries = session_write_retries

    def record_session(self, course_id: str, session_date: Union[str, date],
                       marks: Sequence[MarkInput]) -> AttendanceResult:
        """Record one class meeting and update every listed student's totals.

        Nothing is written unless every listed student holds an active
        enrollment. Once the session row exists, each student's update is
        applied independently and reported in the result.
        """
        normalized = _normalize_marks(marks)
        day = parse_date(session_date)

        if self._courses.find_by_id(course_id) is None:
            raise NotFoundError(f"Course {course_id} not found", details={"course_id": course_id})

        existing = self._sessions.find_by_course_and_date(course_id, day)
        if existing is not None:
            raise self._duplicate(course_id, day, existing.id)

        unknown = [
            mark.student_id for mark in normalized
            if not self._is_active(self._enrollments.find_by_pair(mark.student_id, course_id))
        ]
        if unknown:
            raise UnknownEnrollmentError(
                f"{len(unknown)} student(s) are not actively enrolled in course {course_id}",
                details={"course_id": course_id, "student_ids": unknown},
            )

        session = AttendanceSession(course_id=course_id, session_date=day, marks=normalized)
        self._concurrency_manager.execute_with_retry(
            lambda: self._write_session(session),
            max_retries=self._session_write_retries,
        )
        logger.info("Recorded attendance session %s for course %s on %s (%d students)",
                    session.id, course_id, day.isoformat(), len(normalized))

        return self._aggregate(session, session.marks)

    def _write_session(self, session: AttendanceSession) -> AttendanceSession:
        try:
            return self._sessions.create(session)
        except DuplicateEntityError as e:
            stored = self._sessions.find_by_course_and_date(session.course_id, session.session_date)
            if stored is not None and stored.id == session.id:
                # An earlier attempt committed before reporting failure.
                return stored
            raise self._duplicate(session.course_id, session.session_date,
                                  stored.id if stored else None) from e

    @staticmethod
    def _duplicate(course_id: str, day: date, session_id: Optional[str]) -> DuplicateSessionError:
        return DuplicateSessionError(
            f"Attendance for course {course_id} on {day.isoformat()} was already recorded",
            details={"course_id": course_id, "date": day.isoformat(), "session_id": session_id},
        )

    @staticmethod
    def _is_active(enrollment: Optional[Enrollment]) -> bool:
        return enrollment is not None and enrollment.status == EnrollmentStatus.ENROLLED

    def _aggregate(self, session: AttendanceSession, marks: List[AttendanceMark]) -> AttendanceResult:
        result = AttendanceResult(session=session)
        for mark in marks:
            result.outcomes.append(self._apply_mark(session, mark))

        if result.failed:
            logger.warning("Attendance session %s left %d student(s) pending: %s",
                           session.id, len(result.failed), ", ".join(result.failed))
        return result

    def _apply_mark(self, session: AttendanceSession, mark: AttendanceMark) -> AttendanceOutcome:
        attended = mark.status in ATTENDED_STATUSES
        try:
            applied = self._sessions.apply_mark(session.id, session.course_id, mark.student_id, attended)
            enrollment = self._enrollments.find_by_pair(mark.student_id, session.course_id)
        except EduManageError as e:
            logger.error("Failed to apply attendance for student %s in session %s: %s",
                         mark.student_id, session.id, e.message)
            return AttendanceOutcome(student_id=mark.student_id, status=mark.status, applied=False,
                                     error_kind=e.kind, message=e.message)

        if not applied:
            message = f"Student {mark.student_id} is no longer actively enrolled"
            logger.warning("Skipped attendance for session %s: %s", session.id, message)
            return AttendanceOutcome(student_id=mark.student_id, status=mark.status, applied=False,
                                     enrollment=enrollment, error_kind=UnknownEnrollmentError.__name__,
                                     message=message)

        mark.applied = True
        return AttendanceOutcome(student_id=mark.student_id, status=mark.status, applied=True,
                                 enrollment=enrollment)

    def reapply_pending(self, session_id: str) -> AttendanceResult:
        """Retry the marks of a session that were not folded into totals yet."""
        session = self._sessions.find_by_id(session_id)
        if session is None:
            raise NotFoundError(f"Attendance session {session_id} not found",
                                details={"session_id": session_id})
        pending = session.pending_marks
        logger.info("Reapplying %d pending mark(s) for session %s", len(pending), session_id)
        return self._aggregate(session, pending)

    def get_session(self, course_id: str, session_date: Union[str, date]) -> AttendanceSession:
        day = parse_date(session_date)
        session = self._sessions.find_by_course_and_date(course_id, day)
        if session is None:
            raise NotFoundError(f"No attendance for course {course_id} on {day.isoformat()}",
                                details={"course_id": course_id, "date": day.isoformat()})
        return session

    def list_sessions(self, course_id: str) -> List[AttendanceSession]:
        return self._sessions.find_by_course(course_id)

    def attendance_summary(self, course_id: str) -> List[Enrollment]:
        """Enrollments of a course with their attendance totals."""
        if self._courses.find_by_id(course_id) is None:
            raise NotFoundError(f"Course {course_id} not found", details={"course_id": course_id})
        return self._enrollments.find_by_course(course_id)
