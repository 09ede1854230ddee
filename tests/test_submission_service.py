import math
from datetime import datetime, timezone

import pytest

from edumanage.core.entities import Submission
from edumanage.core.exceptions import (
    DuplicateSubmissionError, InvalidPointsError, LateSubmissionRejectedError, NotFoundError,
    UnknownEnrollmentError, ValidationError,
)
from edumanage.services.submission_service import apply_late_penalty

DUE = datetime(2024, 9, 10, 23, 59, tzinfo=timezone.utc)
ON_TIME = "2024-09-10T12:00:00Z"
LATE = "2024-09-11T08:00:00Z"


@pytest.fixture
def course(make_course, ledger):
    course = make_course()
    ledger.enroll("s1", course.id)
    ledger.enroll("s2", course.id)
    return course


@pytest.fixture
def strict_assignment(grader, course):
    return grader.create_assignment(course.id, "Problem Set 1", 100, DUE)


@pytest.fixture
def lenient_assignment(grader, course):
    return grader.create_assignment(course.id, "Essay", 100, DUE, late_allowed=True, penalty_percent=10)


class TestSubmit:
    def test_on_time_submission(self, grader, strict_assignment):
        submission = grader.submit(strict_assignment.id, "s1", submitted_at=ON_TIME)
        assert not submission.is_late
        assert submission.grade is None

    def test_late_submission_rejected_when_not_allowed(self, grader, strict_assignment):
        with pytest.raises(LateSubmissionRejectedError):
            grader.submit(strict_assignment.id, "s1", submitted_at=LATE)
        assert grader.list_assignment_submissions(strict_assignment.id) == []

    def test_late_submission_flagged_when_allowed(self, grader, lenient_assignment):
        assert grader.submit(lenient_assignment.id, "s1", submitted_at=LATE).is_late

    def test_duplicate_submission(self, grader, strict_assignment):
        grader.submit(strict_assignment.id, "s1", submitted_at=ON_TIME)
        with pytest.raises(DuplicateSubmissionError):
            grader.submit(strict_assignment.id, "s1", submitted_at=ON_TIME)

    def test_requires_active_enrollment(self, grader, strict_assignment):
        with pytest.raises(UnknownEnrollmentError):
            grader.submit(strict_assignment.id, "outsider", submitted_at=ON_TIME)

    def test_unknown_assignment(self, grader):
        with pytest.raises(NotFoundError):
            grader.submit("missing", "s1")


class TestGrade:
    def test_on_time_grade(self, grader, strict_assignment):
        submission = grader.submit(strict_assignment.id, "s1", submitted_at=ON_TIME)

        graded = grader.grade(submission.id, 85, feedback="Solid work")

        assert graded.grade.percentage == 85.0
        assert graded.grade.letter_grade == "B"
        assert graded.grade.feedback == "Solid work"
        assert graded.grade.graded_at is not None

    def test_late_penalty_applied(self, grader, lenient_assignment):
        submission = grader.submit(lenient_assignment.id, "s1", submitted_at=LATE)

        graded = grader.grade(submission.id, 80)

        assert graded.grade.percentage == 72.0
        assert graded.grade.letter_grade == "C-"
        assert graded.grade.points == 80.0

    def test_percentage_is_rounded(self, grader, course):
        assignment = grader.create_assignment(course.id, "Quiz", 3, DUE)
        submission = grader.submit(assignment.id, "s1", submitted_at=ON_TIME)

        assert grader.grade(submission.id, 2).grade.percentage == 66.67

    def test_regrade_replaces_grade(self, grader, strict_assignment):
        submission = grader.submit(strict_assignment.id, "s1", submitted_at=ON_TIME)
        grader.grade(submission.id, 50)

        regraded = grader.grade(submission.id, 95)
        assert regraded.grade.letter_grade == "A"

    @pytest.mark.parametrize("points", [-1, 100.5, math.nan, math.inf, 10 ** 400])
    def test_invalid_points(self, grader, strict_assignment, points):
        submission = grader.submit(strict_assignment.id, "s1", submitted_at=ON_TIME)

        with pytest.raises(InvalidPointsError):
            grader.grade(submission.id, points)
        assert grader.get_submission(submission.id).grade is None

    def test_boundary_points_are_valid(self, grader, strict_assignment):
        first = grader.submit(strict_assignment.id, "s1", submitted_at=ON_TIME)
        second = grader.submit(strict_assignment.id, "s2", submitted_at=ON_TIME)

        assert grader.grade(first.id, 0).grade.letter_grade == "F"
        assert grader.grade(second.id, 100).grade.letter_grade == "A+"

    def test_late_submission_on_strict_assignment_cannot_be_graded(self, grader, submission_repo,
                                                                   strict_assignment):
        submission = submission_repo.insert(Submission(
            assignment_id=strict_assignment.id,
            student_id="s1",
            submitted_at=datetime(2024, 9, 12, tzinfo=timezone.utc),
            is_late=True,
        ))

        with pytest.raises(LateSubmissionRejectedError):
            grader.grade(submission.id, 90)

    def test_unknown_submission(self, grader):
        with pytest.raises(NotFoundError):
            grader.grade("missing", 10)


class TestCreateAssignment:
    @pytest.mark.parametrize("total_points, penalty", [
        (0, 0), (-5, 0), (10, 150), (10, -1), (10 ** 400, 0), (10, 10 ** 400),
    ])
    def test_invalid_assignment(self, grader, course, total_points, penalty):
        with pytest.raises(ValidationError):
            grader.create_assignment(course.id, "Bad", total_points, DUE, penalty_percent=penalty)

    def test_unknown_course(self, grader):
        with pytest.raises(NotFoundError):
            grader.create_assignment("missing", "Lab", 10, DUE)


@pytest.mark.parametrize("raw, penalty, expected", [
    (80, 10, 72),
    (100, 0, 100),
    (50, 100, 0),
])
def test_apply_late_penalty(raw, penalty, expected):
    assert apply_late_penalty(raw, penalty) == pytest.approx(expected)
