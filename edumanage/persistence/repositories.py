"""
Repository pattern implementations for data access.

Shared aggregates (the course seat counter, enrollment attendance totals and
the finalize latches) are only ever changed by single conditional UPDATE
statements, never by read-modify-write in Python.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from ..core.entities import (
    Assignment, AttendanceMark, AttendanceSession, Course, CourseGrade,
    Enrollment, Submission, SubmissionGrade, parse_datetime, to_iso, utc_now,
)
from ..core.enums import AttendanceStatus, EnrollmentStatus, SEAT_HOLDING_STATUSES
from .database import DatabaseManager

T = TypeVar("T")


def _flag(value: bool) -> int:
    return 1 if value else 0


def _status_values(statuses: Iterable[EnrollmentStatus]) -> List[str]:
    return sorted(status.value for status in statuses)


class BaseRepository(ABC, Generic[T]):
    """Base repository implementation with common functionality."""

    table: str = ""

    def __init__(self, database: DatabaseManager):
        self._database = database

    @property
    def database(self) -> DatabaseManager:
        return self._database

    @abstractmethod
    def _entity_from_row(self, row: Dict[str, Any]) -> T:
        """Convert a storage row to an entity instance."""
        pass

    def _insert(self, values: Dict[str, Any]) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        self._database.execute_update(
            f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )

    def _where(self, filters: Optional[Dict[str, Any]]) -> tuple:
        if not filters:
            return "", ()
        clauses = " AND ".join(f"{column} = ?" for column in filters)
        return f" WHERE {clauses}", tuple(filters.values())

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID."""
        results = self._database.execute_query(
            f"SELECT * FROM {self.table} WHERE id = ?", (entity_id,)
        )
        return self._entity_from_row(results[0]) if results else None

    def find_all(self, filters: Optional[Dict[str, Any]] = None, order_by: str = "id") -> List[T]:
        """Find all entities whose columns equal the given filter values."""
        where, params = self._where(filters)
        results = self._database.execute_query(
            f"SELECT * FROM {self.table}{where} ORDER BY {order_by}", params
        )
        return [self._entity_from_row(row) for row in results]

    def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count entities matching filters."""
        where, params = self._where(filters)
        results = self._database.execute_query(
            f"SELECT COUNT(*) AS count FROM {self.table}{where}", params
        )
        return int(results[0]["count"]) if results else 0


class CourseRepository(BaseRepository[Course]):
    """Repository for courses and their seat counter."""

    table = "courses"

    def _entity_from_row(self, row: Dict[str, Any]) -> Course:
        return Course.from_row(row)

    def insert(self, course: Course) -> Course:
        self._insert({
            "id": course.id,
            "code": course.code,
            "title": course.title,
            "description": course.description,
            "instructor_id": course.instructor_id,
            "max_seats": course.max_seats,
            "current_enrollment": 0,
            "is_approved": _flag(course.is_approved),
            "is_active": _flag(course.is_active),
            "created_at": to_iso(course.created_at),
            "updated_at": to_iso(course.updated_at),
        })
        course.current_enrollment = 0
        return course

    def find_by_code(self, code: str) -> Optional[Course]:
        courses = self.find_all({"code": code})
        return courses[0] if courses else None

    def reserve_seat(self, course_id: str) -> bool:
        """Take one seat if the course is open and not full."""
        affected = self._database.execute_update(
            """
            UPDATE courses
            SET current_enrollment = current_enrollment + 1, updated_at = ?
            WHERE id = ? AND current_enrollment < max_seats
              AND is_approved = 1 AND is_active = 1
            """,
            (to_iso(utc_now()), course_id),
        )
        return affected == 1

    def release_seat(self, course_id: str) -> bool:
        """Give back one seat; never goes below zero."""
        affected = self._database.execute_update(
            """
            UPDATE courses
            SET current_enrollment = current_enrollment - 1, updated_at = ?
            WHERE id = ? AND current_enrollment > 0
            """,
            (to_iso(utc_now()), course_id),
        )
        return affected == 1

    def set_seat_count(self, course_id: str, count: int) -> bool:
        affected = self._database.execute_update(
            "UPDATE courses SET current_enrollment = ?, updated_at = ? WHERE id = ?",
            (count, to_iso(utc_now()), course_id),
        )
        return affected == 1

    def sync_seat_count(self, course_id: str) -> bool:
        """Set the counter to the number of seat-holding rows in one statement."""
        statuses = _status_values(SEAT_HOLDING_STATUSES)
        placeholders = ", ".join("?" for _ in statuses)
        count_query = f"""
            SELECT COUNT(*) FROM enrollments
            WHERE course_id = ? AND status IN ({placeholders})
        """
        affected = self._database.execute_update(
            f"""
            UPDATE courses SET current_enrollment = ({count_query}), updated_at = ?
            WHERE id = ? AND current_enrollment <> ({count_query})
            """,
            (course_id, *statuses, to_iso(utc_now()), course_id, course_id, *statuses),
        )
        return affected == 1

    def update_flags(self, course_id: str, is_approved: Optional[bool] = None,
                     is_active: Optional[bool] = None) -> bool:
        assignments = []
        params: List[Any] = []
        if is_approved is not None:
            assignments.append("is_approved = ?")
            params.append(_flag(is_approved))
        if is_active is not None:
            assignments.append("is_active = ?")
            params.append(_flag(is_active))
        if not assignments:
            return False
        assignments.append("updated_at = ?")
        params.extend([to_iso(utc_now()), course_id])
        affected = self._database.execute_update(
            f"UPDATE courses SET {', '.join(assignments)} WHERE id = ?", tuple(params)
        )
        return affected == 1

    def update_capacity(self, course_id: str, max_seats: int) -> bool:
        """Change capacity unless it would fall below the seats in use."""
        affected = self._database.execute_update(
            """
            UPDATE courses SET max_seats = ?, updated_at = ?
            WHERE id = ? AND current_enrollment <= ?
            """,
            (max_seats, to_iso(utc_now()), course_id, max_seats),
        )
        return affected == 1


class EnrollmentRepository(BaseRepository[Enrollment]):
    """Repository for enrollments."""

    table = "enrollments"

    def _entity_from_row(self, row: Dict[str, Any]) -> Enrollment:
        return Enrollment.from_row(row)

    def insert(self, enrollment: Enrollment) -> Enrollment:
        self._insert({
            "id": enrollment.id,
            "student_id": enrollment.student_id,
            "course_id": enrollment.course_id,
            "status": enrollment.status.value,
            "enrollment_date": to_iso(enrollment.enrollment_date),
            "completion_date": to_iso(enrollment.completion_date),
            "total_classes": enrollment.attendance.total_classes,
            "attended_classes": enrollment.attendance.attended_classes,
            "attendance_percentage": enrollment.attendance.percentage,
            "updated_at": to_iso(enrollment.updated_at),
        })
        return enrollment

    def find_by_pair(self, student_id: str, course_id: str) -> Optional[Enrollment]:
        enrollments = self.find_all({"student_id": student_id, "course_id": course_id})
        return enrollments[0] if enrollments else None

    def find_by_course(self, course_id: str, status: Optional[EnrollmentStatus] = None) -> List[Enrollment]:
        filters: Dict[str, Any] = {"course_id": course_id}
        if status is not None:
            filters["status"] = status.value
        return self.find_all(filters, order_by="enrollment_date")

    def find_by_student(self, student_id: str) -> List[Enrollment]:
        return self.find_all({"student_id": student_id}, order_by="enrollment_date")

    def count_seat_holders(self, course_id: str) -> int:
        statuses = _status_values(SEAT_HOLDING_STATUSES)
        placeholders = ", ".join("?" for _ in statuses)
        results = self._database.execute_query(
            f"""
            SELECT COUNT(*) AS count FROM enrollments
            WHERE course_id = ? AND status IN ({placeholders})
            """,
            (course_id, *statuses),
        )
        return int(results[0]["count"])

    def transition(self, enrollment_id: str, from_statuses: Iterable[EnrollmentStatus],
                   to_status: EnrollmentStatus, completion_date: Optional[datetime] = None,
                   set_completion: bool = False) -> bool:
        """Move to ``to_status`` only if the current status is one of ``from_statuses``."""
        statuses = _status_values(from_statuses)
        placeholders = ", ".join("?" for _ in statuses)
        completion_clause = ", completion_date = ?" if set_completion else ""
        params: List[Any] = [to_status.value, to_iso(utc_now())]
        if set_completion:
            params.append(to_iso(completion_date))
        params.extend([enrollment_id, *statuses])
        affected = self._database.execute_update(
            f"""
            UPDATE enrollments SET status = ?, updated_at = ?{completion_clause}
            WHERE id = ? AND status IN ({placeholders})
            """,
            tuple(params),
        )
        return affected == 1

    def reactivate(self, enrollment_id: str, enrollment_date: datetime) -> bool:
        """Turn a dropped row back into a fresh enrollment."""
        affected = self._database.execute_update(
            """
            UPDATE enrollments
            SET status = ?, enrollment_date = ?, completion_date = NULL,
                total_classes = 0, attended_classes = 0, attendance_percentage = 0,
                updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (EnrollmentStatus.ENROLLED.value, to_iso(enrollment_date), to_iso(utc_now()),
             enrollment_id, EnrollmentStatus.DROPPED.value),
        )
        return affected == 1

    def undo_drop(self, enrollment_id: str, status: EnrollmentStatus,
                  completion_date: Optional[datetime]) -> bool:
        """Put a dropped row back to ``status``; attendance and grade columns are left alone."""
        affected = self._database.execute_update(
            """
            UPDATE enrollments SET status = ?, completion_date = ?, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (status.value, to_iso(completion_date), to_iso(utc_now()),
             enrollment_id, EnrollmentStatus.DROPPED.value),
        )
        return affected == 1

    def mirror_final_grade(self, student_id: str, course_id: str, percentage: float,
                           letter_grade: str, gpa_point: float) -> bool:
        affected = self._database.execute_update(
            """
            UPDATE enrollments
            SET final_percentage = ?, final_letter_grade = ?, final_gpa_point = ?, updated_at = ?
            WHERE student_id = ? AND course_id = ? AND final_finalized = 0
            """,
            (percentage, letter_grade, gpa_point, to_iso(utc_now()), student_id, course_id),
        )
        return affected == 1

    def finalize_final_grade(self, student_id: str, course_id: str, percentage: float,
                             letter_grade: str, gpa_point: float) -> bool:
        """Freeze the mirror with the finalized grade's values."""
        affected = self._database.execute_update(
            """
            UPDATE enrollments
            SET final_percentage = ?, final_letter_grade = ?, final_gpa_point = ?,
                final_finalized = 1, updated_at = ?
            WHERE student_id = ? AND course_id = ? AND final_finalized = 0
            """,
            (percentage, letter_grade, gpa_point, to_iso(utc_now()), student_id, course_id),
        )
        return affected == 1


class AttendanceRepository(BaseRepository[AttendanceSession]):
    """Repository for attendance sessions and their marks."""

    table = "attendance_sessions"

    def _entity_from_row(self, row: Dict[str, Any]) -> AttendanceSession:
        marks = self._database.execute_query(
            "SELECT * FROM attendance_marks WHERE session_id = ? ORDER BY student_id",
            (row["id"],),
        )
        return AttendanceSession(
            id=row["id"],
            course_id=row["course_id"],
            session_date=date.fromisoformat(row["session_date"]),
            created_at=parse_datetime(row["created_at"]),
            marks=[
                AttendanceMark(
                    student_id=mark["student_id"],
                    status=AttendanceStatus(mark["status"]),
                    applied=bool(mark["applied"]),
                )
                for mark in marks
            ],
        )

    def create(self, session: AttendanceSession) -> AttendanceSession:
        """Write the session and every mark in one transaction."""
        statements = [(
            "INSERT INTO attendance_sessions (id, course_id, session_date, created_at) VALUES (?, ?, ?, ?)",
            (session.id, session.course_id, session.session_date.isoformat(), to_iso(session.created_at)),
        )]
        for mark in session.marks:
            statements.append((
                "INSERT INTO attendance_marks (session_id, student_id, status, applied) VALUES (?, ?, ?, 0)",
                (session.id, mark.student_id, mark.status.value),
            ))
        self._database.execute_transaction(statements)
        return session

    def find_by_course_and_date(self, course_id: str, session_date: date) -> Optional[AttendanceSession]:
        sessions = self.find_all({"course_id": course_id, "session_date": session_date.isoformat()})
        return sessions[0] if sessions else None

    def find_by_course(self, course_id: str) -> List[AttendanceSession]:
        return self.find_all({"course_id": course_id}, order_by="session_date")

    def apply_mark(self, session_id: str, course_id: str, student_id: str, attended: bool) -> bool:
        """Fold one mark into the student's enrollment totals exactly once.

        The mark is flagged first; that row is the claim, so a concurrent
        apply of the same mark matches nothing and rolls back. The enrollment
        increment only runs if the claim succeeded, and if it matches no row
        the claim is rolled back with it.
        """
        now = to_iso(utc_now())
        increment = 1 if attended else 0
        enrolled = EnrollmentStatus.ENROLLED.value
        rowcounts = self._database.execute_transaction([
            (
                """
                UPDATE attendance_marks SET applied = 1, applied_at = ?
                WHERE session_id = ? AND student_id = ? AND applied = 0
                  AND EXISTS (
                      SELECT 1 FROM enrollments
                      WHERE student_id = ? AND course_id = ? AND status = ?
                  )
                """,
                (now, session_id, student_id, student_id, course_id, enrolled),
            ),
            (
                """
                UPDATE enrollments
                SET total_classes = total_classes + 1,
                    attended_classes = attended_classes + ?,
                    attendance_percentage =
                        CAST(attended_classes + ? AS DOUBLE PRECISION) / (total_classes + 1) * 100,
                    updated_at = ?
                WHERE student_id = ? AND course_id = ? AND status = ?
                """,
                (increment, increment, now, student_id, course_id, enrolled),
            ),
        ], require_rows=True)
        return rowcounts == [1, 1]


class AssignmentRepository(BaseRepository[Assignment]):
    """Repository for assignments."""

    table = "assignments"

    def _entity_from_row(self, row: Dict[str, Any]) -> Assignment:
        return Assignment.from_row(row)

    def insert(self, assignment: Assignment) -> Assignment:
        self._insert({
            "id": assignment.id,
            "course_id": assignment.course_id,
            "title": assignment.title,
            "total_points": assignment.total_points,
            "due_date": to_iso(assignment.due_date),
            "late_allowed": _flag(assignment.late_policy.allowed),
            "late_penalty_percent": assignment.late_policy.penalty_percent,
            "created_at": to_iso(assignment.created_at),
        })
        return assignment

    def find_by_course(self, course_id: str) -> List[Assignment]:
        return self.find_all({"course_id": course_id}, order_by="due_date")


class SubmissionRepository(BaseRepository[Submission]):
    """Repository for submissions and their embedded grade."""

    table = "submissions"

    def _entity_from_row(self, row: Dict[str, Any]) -> Submission:
        return Submission.from_row(row)

    def insert(self, submission: Submission) -> Submission:
        self._insert({
            "id": submission.id,
            "assignment_id": submission.assignment_id,
            "student_id": submission.student_id,
            "submitted_at": to_iso(submission.submitted_at),
            "is_late": _flag(submission.is_late),
            "content": submission.content,
        })
        return submission

    def find_by_assignment(self, assignment_id: str) -> List[Submission]:
        return self.find_all({"assignment_id": assignment_id}, order_by="submitted_at")

    def save_grade(self, submission_id: str, grade: SubmissionGrade) -> bool:
        affected = self._database.execute_update(
            """
            UPDATE submissions
            SET grade_points = ?, grade_percentage = ?, grade_letter = ?,
                grade_feedback = ?, graded_at = ?
            WHERE id = ?
            """,
            (grade.points, grade.percentage, grade.letter_grade, grade.feedback,
             to_iso(grade.graded_at), submission_id),
        )
        return affected == 1


class CourseGradeRepository(BaseRepository[CourseGrade]):
    """Repository for course-level grades."""

    table = "course_grades"

    def _entity_from_row(self, row: Dict[str, Any]) -> CourseGrade:
        return CourseGrade.from_row(row)

    def insert(self, grade: CourseGrade) -> CourseGrade:
        now = to_iso(grade.updated_at)
        self._insert({
            "id": grade.id,
            "student_id": grade.student_id,
            "course_id": grade.course_id,
            "percentage": grade.percentage,
            "letter_grade": grade.letter_grade,
            "gpa_point": grade.gpa_point,
            "finalized": _flag(grade.finalized),
            "finalized_at": to_iso(grade.finalized_at),
            "created_at": now,
            "updated_at": now,
        })
        return grade

    def find_by_pair(self, student_id: str, course_id: str) -> Optional[CourseGrade]:
        grades = self.find_all({"student_id": student_id, "course_id": course_id})
        return grades[0] if grades else None

    def find_by_student(self, student_id: str) -> List[CourseGrade]:
        return self.find_all({"student_id": student_id}, order_by="course_id")

    def find_by_course(self, course_id: str) -> List[CourseGrade]:
        return self.find_all({"course_id": course_id}, order_by="student_id")

    def update_unfinalized(self, student_id: str, course_id: str, percentage: float,
                           letter_grade: str, gpa_point: float) -> bool:
        affected = self._database.execute_update(
            """
            UPDATE course_grades
            SET percentage = ?, letter_grade = ?, gpa_point = ?, updated_at = ?
            WHERE student_id = ? AND course_id = ? AND finalized = 0
            """,
            (percentage, letter_grade, gpa_point, to_iso(utc_now()), student_id, course_id),
        )
        return affected == 1

    def finalize(self, student_id: str, course_id: str, finalized_at: datetime) -> bool:
        affected = self._database.execute_update(
            """
            UPDATE course_grades SET finalized = 1, finalized_at = ?, updated_at = ?
            WHERE student_id = ? AND course_id = ? AND finalized = 0
            """,
            (to_iso(finalized_at), to_iso(finalized_at), student_id, course_id),
        )
        return affected == 1
