"""
Persistence module for storage backends, schema migrations and repositories.
"""

from .database import DatabaseManager, SQLiteDatabase, PostgreSQLDatabase, DatabaseFactory
from .migrations import MigrationManager, Migration, SCHEMA_MIGRATIONS
from .repositories import (
    CourseRepository, EnrollmentRepository, AttendanceRepository,
    AssignmentRepository, SubmissionRepository, CourseGradeRepository,
)

__all__ = [
    "DatabaseManager",
    "SQLiteDatabase",
    "PostgreSQLDatabase",
    "DatabaseFactory",
    "MigrationManager",
    "Migration",
    "SCHEMA_MIGRATIONS",
    "CourseRepository",
    "EnrollmentRepository",
    "AttendanceRepository",
    "AssignmentRepository",
    "SubmissionRepository",
    "CourseGradeRepository",
]
