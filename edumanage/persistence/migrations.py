"""
Database migration system for schema versioning.

The schema is portable between SQLite and PostgreSQL: flags are stored as
0/1 integers and timestamps as ISO-8601 text.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..app_logger import get_logger
from ..core.exceptions import EduManageError, StorageError
from .database import DatabaseManager

logger = get_logger("persistence.migrations")


@dataclass
class Migration:
    """Represents a database migration."""
    id: str
    name: str
    version: int
    up_sql: str
    down_sql: str
    description: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


SCHEMA_MIGRATIONS: List[Migration] = [
    Migration(
        id="0001_create_courses",
        name="create_courses",
        version=1,
        up_sql="""
            CREATE TABLE IF NOT EXISTS courses (
                id VARCHAR(64) PRIMARY KEY,
                code VARCHAR(32) NOT NULL,
                title VARCHAR(200) NOT NULL,
                description TEXT,
                instructor_id VARCHAR(64),
                max_seats INTEGER NOT NULL,
                current_enrollment INTEGER NOT NULL DEFAULT 0,
                is_approved INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at VARCHAR(40) NOT NULL,
                updated_at VARCHAR(40) NOT NULL,
                CONSTRAINT uq_course_code UNIQUE (code),
                CONSTRAINT ck_course_max_seats CHECK (max_seats >= 1),
                CONSTRAINT ck_course_seat_counter CHECK (current_enrollment >= 0 AND current_enrollment <= max_seats)
            )
        """,
        down_sql="DROP TABLE IF EXISTS courses",
        description="Courses with the cached seat counter",
    ),
    Migration(
        id="0002_create_enrollments",
        name="create_enrollments",
        version=2,
        up_sql="""
            CREATE TABLE IF NOT EXISTS enrollments (
                id VARCHAR(64) PRIMARY KEY,
                student_id VARCHAR(64) NOT NULL,
                course_id VARCHAR(64) NOT NULL REFERENCES courses(id),
                status VARCHAR(16) NOT NULL DEFAULT 'enrolled',
                enrollment_date VARCHAR(40) NOT NULL,
                completion_date VARCHAR(40),
                total_classes INTEGER NOT NULL DEFAULT 0,
                attended_classes INTEGER NOT NULL DEFAULT 0,
                attendance_percentage DOUBLE PRECISION NOT NULL DEFAULT 0,
                final_percentage DOUBLE PRECISION,
                final_letter_grade VARCHAR(4),
                final_gpa_point DOUBLE PRECISION,
                final_finalized INTEGER NOT NULL DEFAULT 0,
                updated_at VARCHAR(40) NOT NULL,
                CONSTRAINT uq_enrollment_student_course UNIQUE (student_id, course_id),
                CONSTRAINT ck_enrollment_attendance CHECK (attended_classes >= 0 AND attended_classes <= total_classes)
            );
            CREATE INDEX IF NOT EXISTS idx_enrollments_course_status ON enrollments(course_id, status);
            CREATE INDEX IF NOT EXISTS idx_enrollments_student ON enrollments(student_id)
        """,
        down_sql="""
            DROP INDEX IF EXISTS idx_enrollments_student;
            DROP INDEX IF EXISTS idx_enrollments_course_status;
            DROP TABLE IF EXISTS enrollments
        """,
        description="Enrollments with embedded attendance summary and final grade",
    ),
    Migration(
        id="0003_create_attendance",
        name="create_attendance",
        version=3,
        up_sql="""
            CREATE TABLE IF NOT EXISTS attendance_sessions (
                id VARCHAR(64) PRIMARY KEY,
                course_id VARCHAR(64) NOT NULL REFERENCES courses(id),
                session_date VARCHAR(10) NOT NULL,
                created_at VARCHAR(40) NOT NULL,
                CONSTRAINT uq_attendance_course_date UNIQUE (course_id, session_date)
            );
            CREATE TABLE IF NOT EXISTS attendance_marks (
                session_id VARCHAR(64) NOT NULL REFERENCES attendance_sessions(id),
                student_id VARCHAR(64) NOT NULL,
                status VARCHAR(16) NOT NULL,
                applied INTEGER NOT NULL DEFAULT 0,
                applied_at VARCHAR(40),
                PRIMARY KEY (session_id, student_id)
            )
        """,
        down_sql="""
            DROP TABLE IF EXISTS attendance_marks;
            DROP TABLE IF EXISTS attendance_sessions
        """,
        description="Attendance sessions and per-student marks",
    ),
    Migration(
        id="0004_create_assignments",
        name="create_assignments",
        version=4,
        up_sql="""
            CREATE TABLE IF NOT EXISTS assignments (
                id VARCHAR(64) PRIMARY KEY,
                course_id VARCHAR(64) NOT NULL REFERENCES courses(id),
                title VARCHAR(200) NOT NULL,
                total_points DOUBLE PRECISION NOT NULL,
                due_date VARCHAR(40) NOT NULL,
                late_allowed INTEGER NOT NULL DEFAULT 0,
                late_penalty_percent DOUBLE PRECISION NOT NULL DEFAULT 0,
                created_at VARCHAR(40) NOT NULL,
                CONSTRAINT ck_assignment_points CHECK (total_points > 0)
            );
            CREATE TABLE IF NOT EXISTS submissions (
                id VARCHAR(64) PRIMARY KEY,
                assignment_id VARCHAR(64) NOT NULL REFERENCES assignments(id),
                student_id VARCHAR(64) NOT NULL,
                submitted_at VARCHAR(40) NOT NULL,
                is_late INTEGER NOT NULL DEFAULT 0,
                content TEXT,
                grade_points DOUBLE PRECISION,
                grade_percentage DOUBLE PRECISION,
                grade_letter VARCHAR(4),
                grade_feedback TEXT,
                graded_at VARCHAR(40),
                CONSTRAINT uq_submission_assignment_student UNIQUE (assignment_id, student_id)
            )
        """,
        down_sql="""
            DROP TABLE IF EXISTS submissions;
            DROP TABLE IF EXISTS assignments
        """,
        description="Assignments and graded submissions",
    ),
    Migration(
        id="0005_create_course_grades",
        name="create_course_grades",
        version=5,
        up_sql="""
            CREATE TABLE IF NOT EXISTS course_grades (
                id VARCHAR(64) PRIMARY KEY,
                student_id VARCHAR(64) NOT NULL,
                course_id VARCHAR(64) NOT NULL REFERENCES courses(id),
                percentage DOUBLE PRECISION NOT NULL,
                letter_grade VARCHAR(4) NOT NULL,
                gpa_point DOUBLE PRECISION NOT NULL,
                finalized INTEGER NOT NULL DEFAULT 0,
                finalized_at VARCHAR(40),
                created_at VARCHAR(40) NOT NULL,
                updated_at VARCHAR(40) NOT NULL,
                CONSTRAINT uq_course_grade_student_course UNIQUE (student_id, course_id)
            );
            CREATE INDEX IF NOT EXISTS idx_course_grades_student ON course_grades(student_id)
        """,
        down_sql="""
            DROP INDEX IF EXISTS idx_course_grades_student;
            DROP TABLE IF EXISTS course_grades
        """,
        description="Course-level grades with the finalize latch",
    ),
]


class MigrationManager:
    """Manages database migrations and schema versioning."""

    def __init__(self, database: DatabaseManager, migrations: Optional[List[Migration]] = None):
        self._database = database
        self._migrations: Dict[str, Migration] = {
            m.id: m for m in (migrations if migrations is not None else SCHEMA_MIGRATIONS)
        }
        self._lock = threading.RLock()
        self._ensure_migrations_table()

    def _ensure_migrations_table(self) -> None:
        """Ensure the migrations table exists."""
        self._database.execute_update("""
            CREATE TABLE IF NOT EXISTS migrations (
                id VARCHAR(255) PRIMARY KEY,
                name VARCHAR(255) UNIQUE NOT NULL,
                version INTEGER NOT NULL,
                applied_at VARCHAR(40) NOT NULL,
                description TEXT
            )
        """)

    @property
    def migrations(self) -> List[Migration]:
        return sorted(self._migrations.values(), key=lambda m: m.version)

    def _get_applied_migrations(self) -> Dict[str, str]:
        """Get applied migration IDs mapped to names."""
        results = self._database.execute_query("SELECT id, name FROM migrations ORDER BY version")
        return {row["id"]: row["name"] for row in results}

    def get_pending_migrations(self) -> List[Migration]:
        """Get migrations that haven't been applied yet."""
        with self._lock:
            applied = self._get_applied_migrations()
            return [m for m in self.migrations if m.id not in applied]

    @staticmethod
    def _split(sql: str) -> List[str]:
        return [stmt.strip() for stmt in sql.split(";") if stmt.strip()]

    def apply_migration(self, migration: Migration) -> bool:
        """Apply a migration and record it in the same transaction."""
        with self._lock:
            if migration.id in self._get_applied_migrations():
                return True

            statements = [(stmt, None) for stmt in self._split(migration.up_sql)]
            statements.append((
                """
                INSERT INTO migrations (id, name, version, applied_at, description)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    migration.id,
                    migration.name,
                    migration.version,
                    datetime.now(timezone.utc).isoformat(),
                    migration.description,
                ),
            ))
            try:
                self._database.execute_transaction(statements)
            except EduManageError as e:
                raise StorageError(
                    f"Failed to apply migration {migration.name}: {e.message}",
                    details={"migration": migration.id},
                ) from e

            logger.info("Applied migration %s (v%d)", migration.name, migration.version)
            return True

    def rollback_migration(self, migration: Migration) -> bool:
        """Rollback a migration."""
        with self._lock:
            if migration.id not in self._get_applied_migrations():
                return True

            statements = [(stmt, None) for stmt in self._split(migration.down_sql)]
            statements.append(("DELETE FROM migrations WHERE id = ?", (migration.id,)))
            try:
                self._database.execute_transaction(statements)
            except EduManageError as e:
                raise StorageError(
                    f"Failed to rollback migration {migration.name}: {e.message}",
                    details={"migration": migration.id},
                ) from e

            logger.info("Rolled back migration %s (v%d)", migration.name, migration.version)
            return True

    def migrate_up(self, target_version: Optional[int] = None) -> List[Migration]:
        """Apply pending migrations up to target version."""
        with self._lock:
            applied = []
            for migration in self.get_pending_migrations():
                if target_version is not None and migration.version > target_version:
                    break
                self.apply_migration(migration)
                applied.append(migration)
            return applied

    def migrate_down(self, target_version: int = 0) -> List[Migration]:
        """Rollback applied migrations above target version, newest first."""
        with self._lock:
            applied_ids = self._get_applied_migrations()
            rolled_back = []
            for migration in reversed(self.migrations):
                if migration.version <= target_version:
                    break
                if migration.id in applied_ids:
                    self.rollback_migration(migration)
                    rolled_back.append(migration)
            return rolled_back

    def get_migration_status(self) -> Dict[str, Any]:
        """Get migration status information."""
        with self._lock:
            applied = self._get_applied_migrations()
            return {
                "total_migrations": len(self._migrations),
                "applied_migrations": len(applied),
                "pending_migrations": len(self._migrations) - len(applied),
                "current_version": max((m.version for m in self._migrations.values()), default=0),
                "applied_version": max((m.version for m in self._migrations.values()
                                        if m.id in applied), default=0),
            }

    def validate_migrations(self) -> List[str]:
        """Validate all migrations for consistency."""
        errors = []
        versions: Dict[int, str] = {}
        for migration in self._migrations.values():
            if migration.version in versions:
                errors.append(f"Duplicate version {migration.version} in migration {migration.name}")
            versions[migration.version] = migration.name

            if not migration.up_sql.strip():
                errors.append(f"Empty up_sql in migration {migration.name}")

            if not migration.down_sql.strip():
                errors.append(f"Empty down_sql in migration {migration.name}")
        return errors
