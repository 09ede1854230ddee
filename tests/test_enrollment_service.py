import random
import threading

import pytest

from edumanage.core.enums import EnrollmentStatus
from edumanage.core.exceptions import (
    AlreadyTerminalError, CourseFullError, CourseNotApprovedError, DuplicateEnrollmentError,
    NotFoundError, StorageError, ValidationError,
)


def seats(catalog, course):
    return catalog.get_course(course.id).current_enrollment


class TestEnroll:
    def test_enroll_takes_a_seat(self, ledger, catalog, make_course):
        course = make_course(max_seats=2)

        enrollment = ledger.enroll("s1", course.id)

        assert enrollment.status == EnrollmentStatus.ENROLLED
        assert enrollment.attendance.total_classes == 0
        assert seats(catalog, course) == 1

    def test_duplicate_enrollment_leaves_counter_unchanged(self, ledger, catalog, make_course):
        course = make_course()
        ledger.enroll("s1", course.id)

        with pytest.raises(DuplicateEnrollmentError):
            ledger.enroll("s1", course.id)
        assert seats(catalog, course) == 1

    def test_full_course_rejects(self, ledger, catalog, make_course):
        course = make_course(max_seats=1)
        ledger.enroll("s1", course.id)

        with pytest.raises(CourseFullError):
            ledger.enroll("s2", course.id)
        assert seats(catalog, course) == 1
        assert ledger.find_enrollment("s2", course.id) is None

    def test_unapproved_course_rejects(self, ledger, catalog, make_course):
        course = make_course(is_approved=False)

        with pytest.raises(CourseNotApprovedError):
            ledger.enroll("s1", course.id)
        assert seats(catalog, course) == 0

    def test_inactive_course_rejects(self, ledger, make_course):
        course = make_course(is_active=False)

        with pytest.raises(CourseNotApprovedError):
            ledger.enroll("s1", course.id)

    def test_unknown_course(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.enroll("s1", "missing")

    def test_failed_write_releases_reserved_seat(self, ledger, catalog, enrollment_repo,
                                                 make_course, monkeypatch):
        course = make_course(max_seats=1)

        def broken_insert(enrollment):
            raise StorageError("disk full")

        monkeypatch.setattr(enrollment_repo, "insert", broken_insert)

        with pytest.raises(StorageError):
            ledger.enroll("s1", course.id)
        assert seats(catalog, course) == 0


class TestDrop:
    def test_drop_then_full_course_accepts_again(self, ledger, catalog, make_course):
        course = make_course(max_seats=1)
        first = ledger.enroll("s1", course.id)
        with pytest.raises(CourseFullError):
            ledger.enroll("s2", course.id)

        dropped = ledger.drop(first.id)
        assert dropped.status == EnrollmentStatus.DROPPED
        assert dropped.completion_date is not None
        assert seats(catalog, course) == 0

        ledger.enroll("s2", course.id)
        assert seats(catalog, course) == 1

    def test_double_drop_is_terminal(self, ledger, catalog, make_course):
        course = make_course()
        enrollment = ledger.enroll("s1", course.id)
        ledger.drop(enrollment.id)

        with pytest.raises(AlreadyTerminalError):
            ledger.drop(enrollment.id)
        assert seats(catalog, course) == 0

    def test_re_enroll_reuses_dropped_row(self, ledger, aggregator, catalog, make_course):
        course = make_course()
        enrollment = ledger.enroll("s1", course.id)
        aggregator.record_session(course.id, "2024-09-02", [("s1", "present")])
        ledger.drop(enrollment.id)

        again = ledger.enroll("s1", course.id)

        assert again.id == enrollment.id
        assert again.status == EnrollmentStatus.ENROLLED
        assert again.attendance.total_classes == 0
        assert again.completion_date is None
        assert seats(catalog, course) == 1

    def test_failed_release_restores_enrollment(self, ledger, catalog, course_repo,
                                                make_course, monkeypatch):
        course = make_course()
        enrollment = ledger.enroll("s1", course.id)

        def broken_release(course_id):
            raise StorageError("connection reset")

        monkeypatch.setattr(course_repo, "release_seat", broken_release)

        with pytest.raises(StorageError):
            ledger.drop(enrollment.id)
        assert ledger.get_enrollment(enrollment.id).status == EnrollmentStatus.ENROLLED
        assert seats(catalog, course) == 1

    def test_failed_release_keeps_attendance_recorded_meanwhile(self, ledger, aggregator, catalog,
                                                                course_repo, enrollment_repo,
                                                                make_course, monkeypatch):
        course = make_course()
        enrollment = ledger.enroll("s1", course.id)
        original_transition = enrollment_repo.transition

        def transition_after_attendance(*args, **kwargs):
            # A session lands between the drop's read and its status change.
            aggregator.record_session(course.id, "2024-09-02", [("s1", "present")])
            return original_transition(*args, **kwargs)

        def broken_release(course_id):
            raise StorageError("connection reset")

        monkeypatch.setattr(enrollment_repo, "transition", transition_after_attendance)
        monkeypatch.setattr(course_repo, "release_seat", broken_release)

        with pytest.raises(StorageError):
            ledger.drop(enrollment.id)

        restored = ledger.get_enrollment(enrollment.id)
        assert restored.status == EnrollmentStatus.ENROLLED
        assert restored.completion_date is None
        assert restored.attendance.total_classes == 1
        assert restored.attendance.attended_classes == 1
        assert restored.attendance.percentage == 100.0
        assert seats(catalog, course) == 1

    def test_enroll_proceeds_while_a_drop_is_in_flight(self, ledger, catalog, course_repo,
                                                       make_course, monkeypatch):
        course = make_course(max_seats=5)
        first = ledger.enroll("s1", course.id)
        entered = threading.Event()
        resume = threading.Event()
        original_release = course_repo.release_seat

        def paused_release(course_id):
            entered.set()
            resume.wait(5)
            return original_release(course_id)

        monkeypatch.setattr(course_repo, "release_seat", paused_release)
        dropper = threading.Thread(target=ledger.drop, args=(first.id,))
        dropper.start()
        try:
            assert entered.wait(5)
            second = ledger.enroll("s2", course.id)
            assert second.status == EnrollmentStatus.ENROLLED
            assert not resume.is_set()
        finally:
            resume.set()
            dropper.join(5)

        assert ledger.get_enrollment(first.id).status == EnrollmentStatus.DROPPED
        assert seats(catalog, course) == 1


class TestLifecycle:
    def test_completed_keeps_its_seat(self, ledger, catalog, make_course):
        course = make_course(max_seats=1)
        enrollment = ledger.enroll("s1", course.id)

        completed = ledger.complete(enrollment.id)

        assert completed.status == EnrollmentStatus.COMPLETED
        assert seats(catalog, course) == 1
        with pytest.raises(CourseFullError):
            ledger.enroll("s2", course.id)
        with pytest.raises(AlreadyTerminalError):
            ledger.drop(enrollment.id)
        with pytest.raises(DuplicateEnrollmentError):
            ledger.enroll("s1", course.id)

    def test_suspend_and_reinstate(self, ledger, catalog, make_course):
        course = make_course()
        enrollment = ledger.enroll("s1", course.id)

        assert ledger.suspend(enrollment.id).status == EnrollmentStatus.SUSPENDED
        assert seats(catalog, course) == 1
        with pytest.raises(ValidationError):
            ledger.suspend(enrollment.id)

        assert ledger.reinstate(enrollment.id).status == EnrollmentStatus.ENROLLED
        with pytest.raises(ValidationError):
            ledger.reinstate(enrollment.id)

    def test_suspended_enrollment_can_be_dropped(self, ledger, catalog, make_course):
        course = make_course()
        enrollment = ledger.enroll("s1", course.id)
        ledger.suspend(enrollment.id)

        ledger.drop(enrollment.id)
        assert seats(catalog, course) == 0

    def test_unknown_enrollment(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.complete("missing")


class TestSeatInvariant:
    @pytest.mark.parametrize("seed", range(8))
    def test_random_enroll_drop_sequences(self, seed, ledger, catalog, enrollment_repo, make_course):
        rng = random.Random(seed)
        course = make_course(max_seats=3)
        students = [f"s{i}" for i in range(6)]

        for _ in range(40):
            student = rng.choice(students)
            action = rng.choice(["enroll", "drop", "complete"])
            current = ledger.find_enrollment(student, course.id)
            try:
                if action == "enroll":
                    ledger.enroll(student, course.id)
                elif current is not None and action == "drop":
                    ledger.drop(current.id)
                elif current is not None:
                    ledger.complete(current.id)
            except (CourseFullError, DuplicateEnrollmentError, AlreadyTerminalError):
                pass

            cached = seats(catalog, course)
            assert cached == enrollment_repo.count_seat_holders(course.id)
            assert 0 <= cached <= 3

    def test_concurrent_enrollments_never_overbook(self, ledger, catalog, make_course):
        course = make_course(max_seats=3)
        outcomes = []
        lock = threading.Lock()

        def attempt(student_id):
            try:
                ledger.enroll(student_id, course.id)
                result = "ok"
            except CourseFullError:
                result = "full"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(f"s{i}",)) for i in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 3
        assert outcomes.count("full") == 7
        assert seats(catalog, course) == 3


class TestReconcile:
    def test_detects_and_fixes_drift(self, ledger, catalog, course_repo, make_course):
        course = make_course(max_seats=10)
        ledger.enroll("s1", course.id)
        ledger.enroll("s2", course.id)
        course_repo.set_seat_count(course.id, 5)

        report = ledger.reconcile_seat_count(course.id)

        assert report.cached == 5
        assert report.actual == 2
        assert report.drift == 3
        assert report.corrected
        assert seats(catalog, course) == 2

    def test_report_only(self, ledger, catalog, course_repo, make_course):
        course = make_course(max_seats=10)
        ledger.enroll("s1", course.id)
        course_repo.set_seat_count(course.id, 0)

        report = ledger.reconcile_seat_count(course.id, fix=False)

        assert report.drift == -1
        assert not report.corrected
        assert seats(catalog, course) == 0

    def test_consistent_counter(self, ledger, make_course):
        course = make_course()
        ledger.enroll("s1", course.id)

        report = ledger.reconcile_seat_count(course.id)
        assert report.drift == 0
        assert not report.corrected
