"""
Services module containing the consistency-preserving operations.
"""

from .concurrency_manager import ConcurrencyManager
from .course_service import CourseCatalog
from .enrollment_service import EnrollmentLedger, SeatReconciliation
from .attendance_service import AttendanceAggregator, AttendanceOutcome, AttendanceResult
from .submission_service import SubmissionGrader
from .course_grade_service import CourseGradeFinalizer, GpaSummary

__all__ = [
    "ConcurrencyManager",
    "CourseCatalog",
    "EnrollmentLedger",
    "SeatReconciliation",
    "AttendanceAggregator",
    "AttendanceOutcome",
    "AttendanceResult",
    "SubmissionGrader",
    "CourseGradeFinalizer",
    "GpaSummary",
]
