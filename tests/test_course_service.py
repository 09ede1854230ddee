import pytest

from edumanage.core.exceptions import DuplicateCourseError, NotFoundError, ValidationError


class TestCourseCatalog:
    def test_create_course(self, catalog):
        course = catalog.create_course("CS101", "Intro to Computing", 30)

        assert course.current_enrollment == 0
        assert not course.is_approved
        assert catalog.get_course(course.id).code == "CS101"

    def test_duplicate_code(self, catalog):
        catalog.create_course("CS101", "Intro to Computing", 30)
        with pytest.raises(DuplicateCourseError):
            catalog.create_course("CS101", "Another", 10)

    @pytest.mark.parametrize("code, title, max_seats", [
        ("", "Title", 10),
        ("CS1", "", 10),
        ("CS1", "Title", 0),
        ("CS1", "Title", True),
    ])
    def test_invalid_course(self, catalog, code, title, max_seats):
        with pytest.raises(ValidationError):
            catalog.create_course(code, title, max_seats)

    def test_approve_and_list(self, catalog):
        course = catalog.create_course("CS101", "Intro", 30)
        catalog.create_course("CS102", "Next", 30)

        assert catalog.approve(course.id).is_approved
        assert [c.code for c in catalog.list_courses(approved_only=True)] == ["CS101"]
        assert len(catalog.list_courses()) == 2

    def test_deactivate(self, catalog):
        course = catalog.create_course("CS101", "Intro", 30, is_approved=True)
        assert not catalog.set_active(course.id, False).accepts_enrollment

    def test_capacity_cannot_drop_below_enrollment(self, catalog, ledger, make_course):
        course = make_course(max_seats=3)
        ledger.enroll("s1", course.id)
        ledger.enroll("s2", course.id)

        with pytest.raises(ValidationError):
            catalog.update_capacity(course.id, 1)
        assert catalog.update_capacity(course.id, 2).max_seats == 2

    def test_unknown_course(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.approve("missing")
