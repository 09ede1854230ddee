import pytest

from edumanage.persistence import (
    AssignmentRepository, AttendanceRepository, CourseGradeRepository, CourseRepository,
    DatabaseFactory, EnrollmentRepository, MigrationManager, SubmissionRepository,
)
from edumanage.services import (
    AttendanceAggregator, ConcurrencyManager, CourseCatalog, CourseGradeFinalizer,
    EnrollmentLedger, SubmissionGrader,
)


@pytest.fixture
def database(tmp_path):
    db = DatabaseFactory.create_database("sqlite", database_path=str(tmp_path / "edumanage.db"))
    MigrationManager(db).migrate_up()
    return db


@pytest.fixture
def concurrency_manager():
    return ConcurrencyManager(backoff_factor=0.0)


@pytest.fixture
def course_repo(database):
    return CourseRepository(database)


@pytest.fixture
def enrollment_repo(database):
    return EnrollmentRepository(database)


@pytest.fixture
def attendance_repo(database):
    return AttendanceRepository(database)


@pytest.fixture
def assignment_repo(database):
    return AssignmentRepository(database)


@pytest.fixture
def submission_repo(database):
    return SubmissionRepository(database)


@pytest.fixture
def grade_repo(database):
    return CourseGradeRepository(database)


@pytest.fixture
def catalog(course_repo):
    return CourseCatalog(course_repo)


@pytest.fixture
def ledger(course_repo, enrollment_repo):
    return EnrollmentLedger(course_repo, enrollment_repo)


@pytest.fixture
def aggregator(course_repo, enrollment_repo, attendance_repo, concurrency_manager):
    return AttendanceAggregator(course_repo, enrollment_repo, attendance_repo, concurrency_manager)


@pytest.fixture
def grader(course_repo, enrollment_repo, assignment_repo, submission_repo):
    return SubmissionGrader(course_repo, enrollment_repo, assignment_repo, submission_repo)


@pytest.fixture
def finalizer(grade_repo, enrollment_repo):
    return CourseGradeFinalizer(grade_repo, enrollment_repo)


@pytest.fixture
def make_course(catalog):
    counter = {"n": 0}

    def _make(max_seats=30, is_approved=True, is_active=True, code=None):
        counter["n"] += 1
        return catalog.create_course(code or f"CS{100 + counter['n']}", "Intro to Computing",
                                     max_seats, is_approved=is_approved, is_active=is_active)

    return _make
