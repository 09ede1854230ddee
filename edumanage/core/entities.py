"""
Core entities for the edumanage consistency subsystem.

Entities are plain dataclasses. Repositories build them from storage rows via
``from_row`` and the HTTP layer renders them with ``to_dict``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .enums import AttendanceStatus, EnrollmentStatus
from .exceptions import ValidationError


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Union[str, date, datetime]) -> date:
    """Parse a calendar date for attendance sessions."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        # A full ISO timestamp names its calendar date; trailing junk does not parse.
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


def to_iso(value: Optional[Union[datetime, date]]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Course:
    """A course offering with its cached seat counter."""
    code: str
    title: str
    max_seats: int
    current_enrollment: int = 0
    is_approved: bool = False
    is_active: bool = True
    description: str = ""
    instructor_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_full(self) -> bool:
        return self.current_enrollment >= self.max_seats

    @property
    def available_seats(self) -> int:
        return max(0, self.max_seats - self.current_enrollment)

    @property
    def accepts_enrollment(self) -> bool:
        return self.is_approved and self.is_active

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Course":
        return cls(
            id=row["id"],
            code=row["code"],
            title=row["title"],
            description=row.get("description") or "",
            instructor_id=row.get("instructor_id"),
            max_seats=int(row["max_seats"]),
            current_enrollment=int(row["current_enrollment"]),
            is_approved=bool(row["is_approved"]),
            is_active=bool(row["is_active"]),
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "instructor_id": self.instructor_id,
            "max_seats": self.max_seats,
            "current_enrollment": self.current_enrollment,
            "available_seats": self.available_seats,
            "is_approved": self.is_approved,
            "is_active": self.is_active,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class AttendanceSummary:
    """Running attendance totals embedded in an enrollment."""
    total_classes: int = 0
    attended_classes: int = 0
    percentage: float = 0.0

    @staticmethod
    def compute_percentage(attended: int, total: int) -> float:
        if total <= 0:
            return 0.0
        return attended / total * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_classes": self.total_classes,
            "attended_classes": self.attended_classes,
            "percentage": self.percentage,
        }


@dataclass
class FinalGrade:
    """Course-level grade mirrored onto an enrollment."""
    percentage: float
    letter_grade: str
    gpa_point: float
    finalized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percentage": self.percentage,
            "letter_grade": self.letter_grade,
            "gpa_point": self.gpa_point,
            "finalized": self.finalized,
        }


@dataclass
class Enrollment:
    """A student's standing in one course."""
    student_id: str
    course_id: str
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    attendance: AttendanceSummary = field(default_factory=AttendanceSummary)
    final_grade: Optional[FinalGrade] = None
    enrollment_date: datetime = field(default_factory=utc_now)
    completion_date: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ENROLLED

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Enrollment":
        final_grade = None
        if row.get("final_letter_grade") is not None:
            final_grade = FinalGrade(
                percentage=float(row["final_percentage"]),
                letter_grade=row["final_letter_grade"],
                gpa_point=float(row["final_gpa_point"]),
                finalized=bool(row["final_finalized"]),
            )
        return cls(
            id=row["id"],
            student_id=row["student_id"],
            course_id=row["course_id"],
            status=EnrollmentStatus(row["status"]),
            attendance=AttendanceSummary(
                total_classes=int(row["total_classes"]),
                attended_classes=int(row["attended_classes"]),
                percentage=float(row["attendance_percentage"]),
            ),
            final_grade=final_grade,
            enrollment_date=parse_datetime(row["enrollment_date"]),
            completion_date=parse_datetime(row.get("completion_date")),
            updated_at=parse_datetime(row["updated_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "status": self.status.value,
            "attendance": self.attendance.to_dict(),
            "final_grade": self.final_grade.to_dict() if self.final_grade else None,
            "enrollment_date": to_iso(self.enrollment_date),
            "completion_date": to_iso(self.completion_date),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class AttendanceMark:
    student_id: str
    status: AttendanceStatus
    applied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "status": self.status.value,
            "applied": self.applied,
        }


@dataclass
class AttendanceSession:
    """One class meeting and the statuses recorded for it."""
    course_id: str
    session_date: date
    marks: List[AttendanceMark] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def pending_marks(self) -> List[AttendanceMark]:
        return [mark for mark in self.marks if not mark.applied]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "date": self.session_date.isoformat(),
            "sessions": [mark.to_dict() for mark in self.marks],
            "created_at": to_iso(self.created_at),
        }


@dataclass
class LateSubmissionPolicy:
    allowed: bool = False
    penalty_percent: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "penalty_percent": self.penalty_percent}


@dataclass
class Assignment:
    course_id: str
    title: str
    total_points: float
    due_date: datetime
    late_policy: LateSubmissionPolicy = field(default_factory=LateSubmissionPolicy)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Assignment":
        return cls(
            id=row["id"],
            course_id=row["course_id"],
            title=row["title"],
            total_points=float(row["total_points"]),
            due_date=parse_datetime(row["due_date"]),
            late_policy=LateSubmissionPolicy(
                allowed=bool(row["late_allowed"]),
                penalty_percent=float(row["late_penalty_percent"]),
            ),
            created_at=parse_datetime(row["created_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "title": self.title,
            "total_points": self.total_points,
            "due_date": to_iso(self.due_date),
            "late_submission_policy": self.late_policy.to_dict(),
            "created_at": to_iso(self.created_at),
        }


@dataclass
class SubmissionGrade:
    points: float
    percentage: float
    letter_grade: str
    feedback: str
    graded_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": self.points,
            "percentage": self.percentage,
            "letter_grade": self.letter_grade,
            "feedback": self.feedback,
            "graded_at": to_iso(self.graded_at),
        }


@dataclass
class Submission:
    assignment_id: str
    student_id: str
    submitted_at: datetime
    is_late: bool
    content: str = ""
    grade: Optional[SubmissionGrade] = None
    id: str = field(default_factory=new_id)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Submission":
        grade = None
        if row.get("graded_at") is not None:
            grade = SubmissionGrade(
                points=float(row["grade_points"]),
                percentage=float(row["grade_percentage"]),
                letter_grade=row["grade_letter"],
                feedback=row.get("grade_feedback") or "",
                graded_at=parse_datetime(row["graded_at"]),
            )
        return cls(
            id=row["id"],
            assignment_id=row["assignment_id"],
            student_id=row["student_id"],
            submitted_at=parse_datetime(row["submitted_at"]),
            is_late=bool(row["is_late"]),
            content=row.get("content") or "",
            grade=grade,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "student_id": self.student_id,
            "submitted_at": to_iso(self.submitted_at),
            "is_late": self.is_late,
            "content": self.content,
            "grade": self.grade.to_dict() if self.grade else None,
        }


@dataclass
class CourseGrade:
    """Official course-level grade; a one-way latch once finalized."""
    student_id: str
    course_id: str
    percentage: float
    letter_grade: str
    gpa_point: float
    finalized: bool = False
    finalized_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CourseGrade":
        return cls(
            id=row["id"],
            student_id=row["student_id"],
            course_id=row["course_id"],
            percentage=float(row["percentage"]),
            letter_grade=row["letter_grade"],
            gpa_point=float(row["gpa_point"]),
            finalized=bool(row["finalized"]),
            finalized_at=parse_datetime(row.get("finalized_at")),
            updated_at=parse_datetime(row["updated_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "percentage": self.percentage,
            "letter_grade": self.letter_grade,
            "gpa_point": self.gpa_point,
            "finalized": self.finalized,
            "finalized_at": to_iso(self.finalized_at),
            "updated_at": to_iso(self.updated_at),
        }
