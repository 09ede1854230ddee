"""
Exception taxonomy for the edumanage core.

Every business-rule violation surfaces as exactly one subclass of
``EduManageError`` with a stable ``error_code`` so callers can tell the
kinds apart without parsing messages.
"""

from typing import Optional, Any, Dict


class EduManageError(Exception):
    """Base exception for all edumanage errors."""

    default_code = "EDUMANAGE_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}

    @property
    def kind(self) -> str:
        """Name of the error kind, e.g. ``CourseFullError``."""
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(EduManageError):
    """Raised when input data is malformed."""
    default_code = "VALIDATION_ERROR"


class NotFoundError(EduManageError):
    """Raised when a requested record does not exist."""
    default_code = "NOT_FOUND"


class DuplicateEnrollmentError(EduManageError):
    """Raised when a student already holds a live enrollment in a course."""
    default_code = "DUPLICATE_ENROLLMENT"


class DuplicateSessionError(EduManageError):
    """Raised when attendance was already recorded for a course and date."""
    default_code = "DUPLICATE_SESSION"


class DuplicateSubmissionError(EduManageError):
    """Raised when a student submits the same assignment twice."""
    default_code = "DUPLICATE_SUBMISSION"


class DuplicateCourseError(EduManageError):
    """Raised when a course code is already taken."""
    default_code = "DUPLICATE_COURSE"


class CourseFullError(EduManageError):
    """Raised when a course has no free seats."""
    default_code = "COURSE_FULL"


class CourseNotApprovedError(EduManageError):
    """Raised when enrolling into a course that is unapproved or inactive."""
    default_code = "COURSE_NOT_APPROVED"


class UnknownEnrollmentError(EduManageError):
    """Raised when a student has no active enrollment in the course."""
    default_code = "UNKNOWN_ENROLLMENT"


class InvalidPointsError(EduManageError):
    """Raised when awarded points fall outside ``[0, total_points]``."""
    default_code = "INVALID_POINTS"


class LateSubmissionRejectedError(EduManageError):
    """Raised when late work is not accepted by the assignment's policy."""
    default_code = "LATE_SUBMISSION_REJECTED"


class AlreadyFinalizedError(EduManageError):
    """Raised when mutating a finalized course grade."""
    default_code = "ALREADY_FINALIZED"


class AlreadyTerminalError(EduManageError):
    """Raised when an enrollment is already completed or dropped."""
    default_code = "ALREADY_TERMINAL"


class StorageError(EduManageError):
    """Raised when the storage layer fails unexpectedly."""
    default_code = "STORAGE_ERROR"


class DuplicateEntityError(EduManageError):
    """Raised by the storage layer on a unique constraint violation."""
    default_code = "DUPLICATE_ENTITY"


class ConfigurationError(EduManageError):
    """Raised when configuration is invalid."""
    default_code = "CONFIGURATION_ERROR"
