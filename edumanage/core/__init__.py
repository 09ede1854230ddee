"""
Core module containing entities, enums, the error taxonomy and grade lookup.
"""

from .entities import *
from .enums import *
from .exceptions import *
from .grading import GRADE_BREAKPOINTS, GradeBand, letter_and_gpa, round_percentage

__all__ = [
    # Entities
    "Course",
    "Enrollment",
    "AttendanceSummary",
    "FinalGrade",
    "AttendanceSession",
    "AttendanceMark",
    "Assignment",
    "LateSubmissionPolicy",
    "Submission",
    "SubmissionGrade",
    "CourseGrade",

    # Enums
    "EnrollmentStatus",
    "AttendanceStatus",

    # Grading
    "GRADE_BREAKPOINTS",
    "GradeBand",
    "letter_and_gpa",
    "round_percentage",

    # Exceptions
    "EduManageError",
    "ValidationError",
    "NotFoundError",
    "DuplicateEnrollmentError",
    "DuplicateSessionError",
    "DuplicateSubmissionError",
    "DuplicateCourseError",
    "CourseFullError",
    "CourseNotApprovedError",
    "UnknownEnrollmentError",
    "InvalidPointsError",
    "LateSubmissionRejectedError",
    "AlreadyFinalizedError",
    "AlreadyTerminalError",
    "StorageError",
    "ConfigurationError",
]
