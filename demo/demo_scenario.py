#!/usr/bin/env python3
"""
Demo scenario for the EduManage consistency services.

Requires the package to be installed (``pip install -e .``).
"""

import os
import tempfile
import threading

from edumanage.core.exceptions import (
    AlreadyFinalizedError, CourseFullError, DuplicateSessionError, EduManageError,
)
from edumanage.main import EduManagePlatform


def run_demo():
    """Run a walk-through of enrollment, attendance and grading."""
    print("=" * 60)
    print("EDUMANAGE CONSISTENCY SERVICES - DEMO")
    print("=" * 60)

    workdir = tempfile.mkdtemp(prefix="edumanage-demo-")
    config = {
        'database_type': 'sqlite',
        'database_config': {'database_path': os.path.join(workdir, 'demo_edumanage.db')},
        'session_write_retries': 2,
    }

    platform = EduManagePlatform(config)

    try:
        print("\n1. Enrollment and the seat counter...")
        course = demonstrate_enrollment(platform)

        print("\n2. Concurrent enrollment into the last seats...")
        demonstrate_concurrency(platform)

        print("\n3. Attendance aggregation...")
        demonstrate_attendance(platform, course)

        print("\n4. Submission grading with a late penalty...")
        demonstrate_grading(platform, course)

        print("\n5. Finalized course grades and GPA...")
        demonstrate_finalization(platform, course)

        print("\n" + "=" * 60)
        print("DEMO COMPLETED SUCCESSFULLY!")
        print("=" * 60)

    except EduManageError as e:
        print(f"\nDemo failed with {e.kind}: {e.message}")
        raise


def demonstrate_enrollment(platform):
    course = platform.catalog.create_course("CS101", "Introduction to Programming", 3, is_approved=True)
    for student in ("S001", "S002", "S003"):
        platform.ledger.enroll(student, course.id)
        print(f"  {student} enrolled; seats used: "
              f"{platform.catalog.get_course(course.id).current_enrollment}/{course.max_seats}")

    try:
        platform.ledger.enroll("S004", course.id)
    except CourseFullError as e:
        print(f"  S004 rejected: {e.message}")

    dropped = platform.ledger.drop(platform.ledger.find_enrollment("S003", course.id).id)
    print(f"  S003 {dropped.status.value}; seats used: "
          f"{platform.catalog.get_course(course.id).current_enrollment}")
    platform.ledger.enroll("S004", course.id)
    print("  S004 took the freed seat")

    report = platform.ledger.reconcile_seat_count(course.id)
    print(f"  Reconciliation: cached={report.cached} actual={report.actual} drift={report.drift}")
    return course


def demonstrate_concurrency(platform):
    course = platform.catalog.create_course("MATH101", "Calculus I", 5, is_approved=True)
    results = {"ok": 0, "full": 0}
    lock = threading.Lock()

    def attempt(student_id):
        try:
            platform.ledger.enroll(student_id, course.id)
            key = "ok"
        except CourseFullError:
            key = "full"
        with lock:
            results[key] += 1

    threads = [threading.Thread(target=attempt, args=(f"M{i:03d}",)) for i in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    print(f"    Successful enrollments: {results['ok']}")
    print(f"    Rejected as full: {results['full']}")
    print(f"    Seat counter: {platform.catalog.get_course(course.id).current_enrollment}/{course.max_seats}")


def demonstrate_attendance(platform, course):
    platform.attendance.record_session(course.id, "2024-09-02",
                                       [("S001", "present"), ("S002", "late"), ("S004", "absent")])
    platform.attendance.record_session(course.id, "2024-09-04",
                                       [("S001", "absent"), ("S002", "present"), ("S004", "excused")])
    try:
        platform.attendance.record_session(course.id, "2024-09-04", [("S001", "present")])
    except DuplicateSessionError as e:
        print(f"  Re-recording rejected: {e.message}")

    for enrollment in platform.attendance.attendance_summary(course.id):
        summary = enrollment.attendance
        print(f"    {enrollment.student_id} ({enrollment.status.value}): "
              f"{summary.attended_classes}/{summary.total_classes} = {summary.percentage:.1f}%")


def demonstrate_grading(platform, course):
    essay = platform.grader.create_assignment(course.id, "Essay 1", 100, "2024-09-10T23:59:00Z",
                                              late_allowed=True, penalty_percent=10)
    on_time = platform.grader.submit(essay.id, "S001", submitted_at="2024-09-09T18:00:00Z")
    late = platform.grader.submit(essay.id, "S002", submitted_at="2024-09-11T09:00:00Z")

    for submission, points in ((on_time, 92), (late, 80)):
        graded = platform.grader.grade(submission.id, points)
        marker = " (late)" if graded.is_late else ""
        print(f"    {graded.student_id}: {points} pts{marker} -> "
              f"{graded.grade.percentage}% {graded.grade.letter_grade}")


def demonstrate_finalization(platform, course):
    platform.finalizer.upsert_grade("S001", course.id, 94.5)
    platform.finalizer.finalize("S001", course.id)
    try:
        platform.finalizer.upsert_grade("S001", course.id, 40)
    except AlreadyFinalizedError as e:
        print(f"  Change after finalize rejected: {e.message}")

    summary = platform.finalizer.cumulative_gpa("S001")
    print(f"    S001 GPA: {summary.gpa} over {summary.course_count} course(s)"
          f"{' (provisional)' if summary.provisional else ''}")


if __name__ == "__main__":
    run_demo()
