"""
REST API adapter for the edumanage core using FastAPI.

Routes only translate plain request data into service calls; every
business-rule failure reaches the client as ``{"error": <kind>, ...}`` with
the status code from ``ERROR_STATUS_CODES``.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..app_logger import get_logger
from ..core.exceptions import (
    AlreadyFinalizedError, AlreadyTerminalError, CourseFullError, CourseNotApprovedError,
    DuplicateCourseError, DuplicateEnrollmentError, DuplicateSessionError,
    DuplicateSubmissionError, EduManageError, InvalidPointsError, LateSubmissionRejectedError,
    NotFoundError, StorageError, UnknownEnrollmentError, ValidationError,
)
from ..services import (
    AttendanceAggregator, CourseCatalog, CourseGradeFinalizer, EnrollmentLedger, SubmissionGrader,
)

logger = get_logger("api.rest")

ERROR_STATUS_CODES: Dict[Type[EduManageError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DuplicateEnrollmentError: status.HTTP_409_CONFLICT,
    DuplicateSessionError: status.HTTP_409_CONFLICT,
    DuplicateSubmissionError: status.HTTP_409_CONFLICT,
    DuplicateCourseError: status.HTTP_409_CONFLICT,
    CourseFullError: status.HTTP_409_CONFLICT,
    AlreadyFinalizedError: status.HTTP_409_CONFLICT,
    AlreadyTerminalError: status.HTTP_409_CONFLICT,
    CourseNotApprovedError: status.HTTP_400_BAD_REQUEST,
    UnknownEnrollmentError: status.HTTP_400_BAD_REQUEST,
    InvalidPointsError: status.HTTP_400_BAD_REQUEST,
    LateSubmissionRejectedError: status.HTTP_400_BAD_REQUEST,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(error: EduManageError) -> int:
    for klass in type(error).__mro__:
        if klass in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# Pydantic models for API
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CourseCreate(_CamelModel):
    code: str = Field(..., min_length=1, max_length=32)
    title: str = Field(..., min_length=1, max_length=200)
    max_seats: int = Field(..., alias="maxSeats", ge=1)
    is_approved: bool = Field(False, alias="isApproved")
    is_active: bool = Field(True, alias="isActive")
    description: str = Field("", max_length=2000)
    instructor_id: Optional[str] = Field(None, alias="instructorId")


class CapacityUpdate(_CamelModel):
    max_seats: int = Field(..., alias="maxSeats", ge=1)


class ApprovalUpdate(_CamelModel):
    approved: bool = True


class EnrollmentRequest(_CamelModel):
    student_id: str = Field(..., alias="studentId", min_length=1)
    course_id: str = Field(..., alias="courseId", min_length=1)


class AttendanceEntry(_CamelModel):
    student_id: str = Field(..., alias="studentId", min_length=1)
    status: str


class AttendanceRequest(_CamelModel):
    course_id: str = Field(..., alias="courseId", min_length=1)
    date: str = Field(..., min_length=10)
    sessions: List[AttendanceEntry] = Field(..., min_length=1)


class AssignmentCreate(_CamelModel):
    course_id: str = Field(..., alias="courseId", min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    total_points: float = Field(..., alias="totalPoints", gt=0)
    due_date: datetime = Field(..., alias="dueDate")
    late_allowed: bool = Field(False, alias="lateAllowed")
    penalty_percent: float = Field(0.0, alias="penaltyPercent", ge=0, le=100)


class SubmissionCreate(_CamelModel):
    assignment_id: str = Field(..., alias="assignmentId", min_length=1)
    student_id: str = Field(..., alias="studentId", min_length=1)
    submitted_at: Optional[datetime] = Field(None, alias="submittedAt")
    content: str = ""


class GradeRequest(_CamelModel):
    submission_id: str = Field(..., alias="submissionId", min_length=1)
    points: float
    feedback: str = ""


class CourseGradeRequest(_CamelModel):
    student_id: str = Field(..., alias="studentId", min_length=1)
    course_id: str = Field(..., alias="courseId", min_length=1)
    percentage: float


class FinalizeRequest(_CamelModel):
    student_id: str = Field(..., alias="studentId", min_length=1)
    course_id: str = Field(..., alias="courseId", min_length=1)


class EduManageRestAPI:
    """REST API over the consistency services."""

    def __init__(self, catalog: CourseCatalog, ledger: EnrollmentLedger,
                 aggregator: AttendanceAggregator, grader: SubmissionGrader,
                 finalizer: CourseGradeFinalizer, cors_origins: Optional[List[str]] = None):
        self._catalog = catalog
        self._ledger = ledger
        self._aggregator = aggregator
        self._grader = grader
        self._finalizer = finalizer

        self.app = FastAPI(
            title="EduManage Course Consistency API",
            description="Enrollment, attendance and grading with consistent denormalized counters",
            version=__version__,
            docs_url="/docs",
            redoc_url="/redoc",
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_routes()

    @staticmethod
    def _call(operation: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a service call and translate its error kind to an HTTP error."""
        try:
            return operation(*args, **kwargs)
        except EduManageError as e:
            code = status_code_for(e)
            if code >= 500:
                logger.error("%s failed: %s", getattr(operation, "__name__", "operation"), e.message)
            raise HTTPException(status_code=code, detail=e.to_dict()) from e

    def _setup_routes(self):
        """Setup API routes."""
        app = self.app

        @app.get("/", response_model=Dict[str, str])
        def root():
            """Root endpoint."""
            return {
                "message": "EduManage Course Consistency API",
                "version": __version__,
                "docs": "/docs",
            }

        @app.get("/health", response_model=Dict[str, str])
        def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # Course endpoints
        @app.post("/courses", status_code=status.HTTP_201_CREATED)
        def create_course(body: CourseCreate):
            course = self._call(
                self._catalog.create_course, body.code, body.title, body.max_seats,
                is_approved=body.is_approved, is_active=body.is_active,
                description=body.description, instructor_id=body.instructor_id,
            )
            return course.to_dict()

        @app.get("/courses")
        def list_courses(approved_only: bool = False, skip: int = 0, limit: int = 100):
            courses = self._call(self._catalog.list_courses, approved_only)
            return [course.to_dict() for course in courses[skip:skip + limit]]

        @app.get("/courses/{course_id}")
        def get_course(course_id: str):
            return self._call(self._catalog.get_course, course_id).to_dict()

        @app.post("/courses/{course_id}/approval")
        def set_approval(course_id: str, body: ApprovalUpdate):
            return self._call(self._catalog.approve, course_id, body.approved).to_dict()

        @app.put("/courses/{course_id}/capacity")
        def update_capacity(course_id: str, body: CapacityUpdate):
            return self._call(self._catalog.update_capacity, course_id, body.max_seats).to_dict()

        @app.post("/courses/{course_id}/reconcile")
        def reconcile(course_id: str):
            return self._call(self._ledger.reconcile_seat_count, course_id).to_dict()

        @app.get("/courses/{course_id}/enrollments")
        def course_enrollments(course_id: str):
            self._call(self._catalog.get_course, course_id)
            return [e.to_dict() for e in self._call(self._ledger.list_course_enrollments, course_id)]

        @app.get("/courses/{course_id}/attendance")
        def course_attendance(course_id: str):
            return [e.to_dict() for e in self._call(self._aggregator.attendance_summary, course_id)]

        @app.get("/courses/{course_id}/grades")
        def course_grades(course_id: str):
            self._call(self._catalog.get_course, course_id)
            return [g.to_dict() for g in self._call(self._finalizer.list_course_grades, course_id)]

        # Enrollment endpoints
        @app.post("/enrollments", status_code=status.HTTP_201_CREATED)
        def enroll(body: EnrollmentRequest):
            return self._call(self._ledger.enroll, body.student_id, body.course_id).to_dict()

        @app.get("/enrollments/{enrollment_id}")
        def get_enrollment(enrollment_id: str):
            return self._call(self._ledger.get_enrollment, enrollment_id).to_dict()

        @app.post("/enrollments/{enrollment_id}/drop")
        def drop(enrollment_id: str):
            return self._call(self._ledger.drop, enrollment_id).to_dict()

        @app.post("/enrollments/{enrollment_id}/complete")
        def complete(enrollment_id: str):
            return self._call(self._ledger.complete, enrollment_id).to_dict()

        @app.post("/enrollments/{enrollment_id}/suspend")
        def suspend(enrollment_id: str):
            return self._call(self._ledger.suspend, enrollment_id).to_dict()

        @app.post("/enrollments/{enrollment_id}/reinstate")
        def reinstate(enrollment_id: str):
            return self._call(self._ledger.reinstate, enrollment_id).to_dict()

        @app.get("/students/{student_id}/enrollments")
        def student_enrollments(student_id: str):
            return [e.to_dict() for e in self._call(self._ledger.list_student_enrollments, student_id)]

        # Attendance endpoints
        @app.post("/attendance", status_code=status.HTTP_201_CREATED)
        def record_attendance(body: AttendanceRequest):
            marks = [(entry.student_id, entry.status) for entry in body.sessions]
            return self._call(self._aggregator.record_session, body.course_id, body.date, marks).to_dict()

        @app.post("/attendance/{session_id}/reapply")
        def reapply_attendance(session_id: str):
            return self._call(self._aggregator.reapply_pending, session_id).to_dict()

        # Assignment and submission endpoints
        @app.post("/assignments", status_code=status.HTTP_201_CREATED)
        def create_assignment(body: AssignmentCreate):
            assignment = self._call(
                self._grader.create_assignment, body.course_id, body.title, body.total_points,
                body.due_date, late_allowed=body.late_allowed, penalty_percent=body.penalty_percent,
            )
            return assignment.to_dict()

        @app.get("/assignments/{assignment_id}/submissions")
        def assignment_submissions(assignment_id: str):
            return [s.to_dict() for s in self._call(self._grader.list_assignment_submissions, assignment_id)]

        @app.post("/submissions", status_code=status.HTTP_201_CREATED)
        def submit(body: SubmissionCreate):
            submission = self._call(self._grader.submit, body.assignment_id, body.student_id,
                                    submitted_at=body.submitted_at, content=body.content)
            return submission.to_dict()

        @app.post("/submissions/grade")
        def grade_submission(body: GradeRequest):
            return self._call(self._grader.grade, body.submission_id, body.points, body.feedback).to_dict()

        # Course grade endpoints
        @app.put("/grades")
        def upsert_grade(body: CourseGradeRequest):
            return self._call(self._finalizer.upsert_grade, body.student_id, body.course_id,
                              body.percentage).to_dict()

        @app.post("/grades/finalize")
        def finalize_grade(body: FinalizeRequest):
            return self._call(self._finalizer.finalize, body.student_id, body.course_id).to_dict()

        @app.get("/students/{student_id}/gpa")
        def cumulative_gpa(student_id: str, include_provisional: bool = True):
            return self._call(self._finalizer.cumulative_gpa, student_id,
                              include_provisional=include_provisional).to_dict()
