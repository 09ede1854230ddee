import pytest

from edumanage.core.entities import Course, Enrollment, utc_now
from edumanage.core.enums import EnrollmentStatus
from edumanage.core.exceptions import ConfigurationError, DuplicateEntityError, StorageError
from edumanage.persistence import (
    CourseRepository, DatabaseFactory, EnrollmentRepository, MigrationManager, SCHEMA_MIGRATIONS,
    SQLiteDatabase,
)


@pytest.fixture
def raw_database(tmp_path):
    return DatabaseFactory.create_database("sqlite", database_path=str(tmp_path / "raw.db"))


class TestMigrationManager:
    def test_migrate_up_creates_schema(self, raw_database):
        manager = MigrationManager(raw_database)

        applied = manager.migrate_up()

        assert [m.id for m in applied] == [m.id for m in SCHEMA_MIGRATIONS]
        for table in ("courses", "enrollments", "attendance_sessions", "attendance_marks",
                      "assignments", "submissions", "course_grades"):
            assert raw_database.table_exists(table)
        assert manager.get_pending_migrations() == []

    def test_migrate_up_is_idempotent(self, raw_database):
        manager = MigrationManager(raw_database)
        manager.migrate_up()

        assert manager.migrate_up() == []
        status = manager.get_migration_status()
        assert status["applied_migrations"] == len(SCHEMA_MIGRATIONS)
        assert status["pending_migrations"] == 0

    def test_target_version_and_rollback(self, raw_database):
        manager = MigrationManager(raw_database)
        manager.migrate_up(target_version=2)
        assert raw_database.table_exists("enrollments")
        assert not raw_database.table_exists("attendance_sessions")

        rolled_back = manager.migrate_down(target_version=1)
        assert [m.version for m in rolled_back] == [2]
        assert not raw_database.table_exists("enrollments")
        assert raw_database.table_exists("courses")

    def test_validate_migrations(self, raw_database):
        assert MigrationManager(raw_database).validate_migrations() == []


class TestStorageGuards:
    def test_unique_violation_is_translated(self, database):
        courses = CourseRepository(database)
        courses.insert(Course(code="CS101", title="Intro", max_seats=2))

        with pytest.raises(DuplicateEntityError):
            courses.insert(Course(code="CS101", title="Intro again", max_seats=2))

    def test_one_enrollment_per_pair(self, database):
        course = CourseRepository(database).insert(Course(code="CS101", title="Intro", max_seats=2))
        enrollments = EnrollmentRepository(database)
        enrollments.insert(Enrollment(student_id="s1", course_id=course.id))

        with pytest.raises(DuplicateEntityError):
            enrollments.insert(Enrollment(student_id="s1", course_id=course.id))

    def test_reserve_stops_at_capacity(self, database):
        courses = CourseRepository(database)
        course = courses.insert(Course(code="CS101", title="Intro", max_seats=1, is_approved=True))

        assert courses.reserve_seat(course.id)
        assert not courses.reserve_seat(course.id)
        assert courses.find_by_id(course.id).current_enrollment == 1

    def test_reserve_requires_open_course(self, database):
        courses = CourseRepository(database)
        course = courses.insert(Course(code="CS101", title="Intro", max_seats=5))

        assert not courses.reserve_seat(course.id)

    def test_release_never_goes_negative(self, database):
        courses = CourseRepository(database)
        course = courses.insert(Course(code="CS101", title="Intro", max_seats=1, is_approved=True))

        assert not courses.release_seat(course.id)
        assert courses.find_by_id(course.id).current_enrollment == 0

    def test_counter_check_constraint(self, database):
        courses = CourseRepository(database)
        course = courses.insert(Course(code="CS101", title="Intro", max_seats=1))

        with pytest.raises(StorageError):
            courses.set_seat_count(course.id, 5)

    def test_transaction_with_required_rows_rolls_back(self, database):
        courses = CourseRepository(database)
        course = courses.insert(Course(code="CS101", title="Intro", max_seats=3, is_approved=True))

        rowcounts = database.execute_transaction([
            ("UPDATE courses SET current_enrollment = 1 WHERE id = ?", (course.id,)),
            ("UPDATE courses SET max_seats = 9 WHERE id = ?", ("missing",)),
            ("UPDATE courses SET title = 'never' WHERE id = ?", (course.id,)),
        ], require_rows=True)

        assert rowcounts == [1, 0]
        stored = courses.find_by_id(course.id)
        assert stored.current_enrollment == 0
        assert stored.title == "Intro"

    def test_sync_seat_count_recounts_in_place(self, database):
        courses = CourseRepository(database)
        enrollments = EnrollmentRepository(database)
        course = courses.insert(Course(code="CS101", title="Intro", max_seats=5, is_approved=True))
        enrollments.insert(Enrollment(student_id="s1", course_id=course.id))
        enrollments.insert(Enrollment(student_id="s2", course_id=course.id))

        assert courses.sync_seat_count(course.id)
        assert courses.find_by_id(course.id).current_enrollment == 2
        assert not courses.sync_seat_count(course.id)

    def test_undo_drop_only_touches_dropped_rows(self, database):
        courses = CourseRepository(database)
        enrollments = EnrollmentRepository(database)
        course = courses.insert(Course(code="CS101", title="Intro", max_seats=5, is_approved=True))
        enrollment = enrollments.insert(Enrollment(student_id="s1", course_id=course.id))

        assert not enrollments.undo_drop(enrollment.id, EnrollmentStatus.SUSPENDED, None)
        assert enrollments.find_by_id(enrollment.id).status == EnrollmentStatus.ENROLLED

        enrollments.transition(enrollment.id, [EnrollmentStatus.ENROLLED], EnrollmentStatus.DROPPED,
                               completion_date=utc_now(), set_completion=True)
        assert enrollments.undo_drop(enrollment.id, EnrollmentStatus.ENROLLED, None)
        restored = enrollments.find_by_id(enrollment.id)
        assert restored.status == EnrollmentStatus.ENROLLED
        assert restored.completion_date is None


class TestDatabaseFactory:
    def test_sqlite(self, tmp_path):
        db = DatabaseFactory.create_database("sqlite", database_path=str(tmp_path / "x.db"))
        assert isinstance(db, SQLiteDatabase)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            DatabaseFactory.create_database("oracle")

    def test_in_memory_sqlite_is_refused(self):
        with pytest.raises(ConfigurationError):
            SQLiteDatabase(":memory:")
