import pytest

from edumanage.core.exceptions import NotFoundError, StorageError, ValidationError
from edumanage.services.concurrency_manager import ConcurrencyManager


@pytest.fixture
def manager():
    return ConcurrencyManager(max_retries=2, backoff_factor=0.0)


class TestRetry:
    def test_retries_storage_errors(self, manager):
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise StorageError("busy")
            return "done"

        assert manager.execute_with_retry(flaky) == "done"
        assert calls["n"] == 3

    def test_gives_up(self, manager):
        def broken():
            raise StorageError("busy")

        with pytest.raises(StorageError):
            manager.execute_with_retry(broken, max_retries=1)

    def test_business_errors_are_not_retried(self, manager):
        calls = {"n": 0}

        def invalid():
            calls["n"] += 1
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            manager.execute_with_retry(invalid)
        assert calls["n"] == 1


class TestNoPerResourceState:
    def test_services_leave_nothing_behind(self, concurrency_manager, ledger, aggregator, make_course):
        before = dict(vars(concurrency_manager))
        course = make_course(max_seats=50)

        for i in range(25):
            enrollment = ledger.enroll(f"s{i}", course.id)
            ledger.drop(enrollment.id)
            with pytest.raises(NotFoundError):
                ledger.enroll(f"ghost{i}", f"missing-course-{i}")
        ledger.enroll("keeper", course.id)
        aggregator.record_session(course.id, "2024-09-02", [("keeper", "present")])

        assert vars(concurrency_manager) == before
        assert set(vars(ledger)) == {"_courses", "_enrollments"}
