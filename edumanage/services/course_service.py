"""
Course catalog: creation and administrative flags.

The seat counter is deliberately absent from every write here; only the
enrollment ledger moves it.
"""

from typing import List, Optional

from ..app_logger import get_logger
from ..core.entities import Course
from ..core.exceptions import DuplicateCourseError, DuplicateEntityError, NotFoundError, ValidationError
from ..persistence.repositories import CourseRepository

logger = get_logger("services.courses")


class CourseCatalog:
    """Service for creating and administering courses."""

    def __init__(self, courses: CourseRepository):
        self._courses = courses

    def create_course(self, code: str, title: str, max_seats: int, is_approved: bool = False,
                      is_active: bool = True, description: str = "",
                      instructor_id: Optional[str] = None) -> Course:
        code = (code or "").strip()
        title = (title or "").strip()
        if not code or not title:
            raise ValidationError("Course code and title are required")
        if isinstance(max_seats, bool) or not isinstance(max_seats, int) or max_seats < 1:
            raise ValidationError("max_seats must be a positive integer", details={"max_seats": max_seats})

        course = Course(
            code=code,
            title=title,
            max_seats=max_seats,
            is_approved=is_approved,
            is_active=is_active,
            description=description,
            instructor_id=instructor_id,
        )
        try:
            self._courses.insert(course)
        except DuplicateEntityError as e:
            raise DuplicateCourseError(f"Course code {code} already exists", details={"code": code}) from e

        logger.info("Created course %s (%s) with %d seats", course.code, course.id, max_seats)
        return course

    def get_course(self, course_id: str) -> Course:
        course = self._courses.find_by_id(course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found", details={"course_id": course_id})
        return course

    def list_courses(self, approved_only: bool = False) -> List[Course]:
        courses = self._courses.find_all(order_by="code")
        if approved_only:
            courses = [c for c in courses if c.accepts_enrollment]
        return courses

    def approve(self, course_id: str, approved: bool = True) -> Course:
        self.get_course(course_id)
        self._courses.update_flags(course_id, is_approved=approved)
        logger.info("Course %s approval set to %s", course_id, approved)
        return self.get_course(course_id)

    def set_active(self, course_id: str, active: bool) -> Course:
        self.get_course(course_id)
        self._courses.update_flags(course_id, is_active=active)
        logger.info("Course %s active flag set to %s", course_id, active)
        return self.get_course(course_id)

    def update_capacity(self, course_id: str, max_seats: int) -> Course:
        if isinstance(max_seats, bool) or not isinstance(max_seats, int) or max_seats < 1:
            raise ValidationError("max_seats must be a positive integer", details={"max_seats": max_seats})

        self.get_course(course_id)
        if not self._courses.update_capacity(course_id, max_seats):
            course = self.get_course(course_id)
            raise ValidationError(
                "Capacity cannot drop below the seats already taken",
                details={"max_seats": max_seats, "current_enrollment": course.current_enrollment},
            )
        logger.info("Course %s capacity changed to %d", course_id, max_seats)
        return self.get_course(course_id)
