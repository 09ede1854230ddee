"""
Script to add sample data to the EduManage service via its REST API.
Make sure the server is running before executing this script.

Usage:
    python add_data.py
"""

import json
import os
import sys

import requests


def _console_supports_utf8() -> bool:
    enc = getattr(sys.stdout, "encoding", None)
    return enc is not None and "utf" in enc.lower()


_OK_CHAR = "✓" if _console_supports_utf8() else "[OK]"
_FAIL_CHAR = "✗" if _console_supports_utf8() else "[FAIL]"
_WARN_CHAR = "⚠" if _console_supports_utf8() else "[WARN]"


def _detect_base_url() -> str:
    """Determine a reachable BASE_URL.

    Priority: environment variable `EDUMANAGE_BASE_URL`, then common local ports.
    If nothing responds, fall back to http://127.0.0.1:8000.
    """
    env = os.environ.get("EDUMANAGE_BASE_URL")
    if env:
        return env

    candidates = [
        "http://127.0.0.1:8000",
        "http://127.0.0.1:8888",
        "http://localhost:8000",
        "http://localhost:8888",
    ]

    for c in candidates:
        try:
            resp = requests.get(f"{c}/health", timeout=0.5)
            if resp.status_code == 200:
                return c
        except requests.exceptions.RequestException:
            continue

    return candidates[0]


BASE_URL = _detect_base_url()


def check_server():
    """Check if the server is running."""
    try:
        response = requests.get(f"{BASE_URL}/health", timeout=2)
        if response.status_code == 200:
            print(f"{_OK_CHAR} Server is running")
            return True
    except requests.exceptions.RequestException:
        pass
    print(f"{_FAIL_CHAR} Server is not running!")
    print("\nPlease start the server first:")
    print("  python -m edumanage.main --port 8000")
    return False


def _post(path, data, expected=(200, 201)):
    try:
        response = requests.post(f"{BASE_URL}{path}", json=data, timeout=5)
    except requests.exceptions.RequestException as e:
        print(f"{_FAIL_CHAR} Error calling {path}: {e}")
        return None
    if response.status_code in expected:
        return response.json()
    detail = response.json().get("detail", {}) if response.headers.get("content-type", "").startswith(
        "application/json") else {}
    kind = detail.get("error", response.status_code) if isinstance(detail, dict) else response.status_code
    print(f"{_WARN_CHAR} {path} rejected ({kind}): {response.text}")
    return None


def create_course(code, title, max_seats, approved=True):
    """Create a new course."""
    course = _post("/courses", {"code": code, "title": title, "maxSeats": max_seats, "isApproved": approved})
    if course:
        print(f"{_OK_CHAR} Created course: {code} - {title} ({max_seats} seats)")
    return course


def enroll_student(student_id, course):
    """Enroll a student in a course."""
    enrollment = _post("/enrollments", {"studentId": student_id, "courseId": course["id"]})
    if enrollment:
        print(f"{_OK_CHAR} Enrolled {student_id} in {course['code']}")
    return enrollment


def record_attendance(course, day, statuses):
    """Record one class meeting."""
    result = _post("/attendance", {
        "courseId": course["id"],
        "date": day,
        "sessions": [{"studentId": s, "status": status} for s, status in statuses.items()],
    })
    if result:
        print(f"{_OK_CHAR} Attendance for {course['code']} on {day}: "
              f"{len(result['succeeded'])} applied, {len(result['failed'])} pending")
    return result


def create_assignment(course, title, total_points, due_date, late_allowed=False, penalty=0):
    assignment = _post("/assignments", {
        "courseId": course["id"], "title": title, "totalPoints": total_points,
        "dueDate": due_date, "lateAllowed": late_allowed, "penaltyPercent": penalty,
    })
    if assignment:
        print(f"{_OK_CHAR} Created assignment: {title}")
    return assignment


def submit_and_grade(assignment, student_id, submitted_at, points):
    """Submit an assignment for a student and grade it."""
    submission = _post("/submissions", {
        "assignmentId": assignment["id"], "studentId": student_id, "submittedAt": submitted_at,
    })
    if not submission:
        return None
    graded = _post("/submissions/grade", {"submissionId": submission["id"], "points": points})
    if graded:
        grade = graded["grade"]
        late = " (late)" if graded["is_late"] else ""
        print(f"{_OK_CHAR} {student_id}: {points} pts{late} -> {grade['percentage']}% {grade['letter_grade']}")
    return graded


def set_course_grade(student_id, course, percentage, finalize=False):
    try:
        response = requests.put(f"{BASE_URL}/grades", json={
            "studentId": student_id, "courseId": course["id"], "percentage": percentage,
        }, timeout=5)
    except requests.exceptions.RequestException as e:
        print(f"{_FAIL_CHAR} Error setting grade: {e}")
        return None
    if response.status_code != 200:
        print(f"{_WARN_CHAR} Grade for {student_id} rejected: {response.text}")
        return None
    grade = response.json()
    if finalize:
        grade = _post("/grades/finalize", {"studentId": student_id, "courseId": course["id"]}) or grade
    print(f"{_OK_CHAR} Course grade {student_id}/{course['code']}: {grade['letter_grade']}"
          f"{' (final)' if grade['finalized'] else ''}")
    return grade


def show_gpa(student_id):
    try:
        response = requests.get(f"{BASE_URL}/students/{student_id}/gpa", timeout=5)
    except requests.exceptions.RequestException as e:
        print(f"{_FAIL_CHAR} Error getting GPA: {e}")
        return None
    summary = response.json()
    print(json.dumps(summary, indent=2))
    return summary


def main():
    """Main execution."""
    print("=" * 60)
    print("EduManage - Data Addition Script")
    print("=" * 60)
    print()

    if not check_server():
        sys.exit(1)

    print("\nCreating courses...")
    cs101 = create_course("CS101", "Introduction to Programming", 3)
    math101 = create_course("MATH101", "Calculus I", 2)
    if not cs101 or not math101:
        sys.exit(1)

    print("\nEnrolling students...")
    for student in ("S001", "S002", "S003"):
        enroll_student(student, cs101)
    enroll_student("S004", cs101)  # over capacity
    enroll_student("S001", math101)

    print("\nRecording attendance...")
    record_attendance(cs101, "2024-09-02", {"S001": "present", "S002": "late", "S003": "absent"})
    record_attendance(cs101, "2024-09-04", {"S001": "present", "S002": "present", "S003": "excused"})

    print("\nGrading...")
    essay = create_assignment(cs101, "Essay 1", 100, "2024-09-10T23:59:00Z", late_allowed=True, penalty=10)
    if essay:
        submit_and_grade(essay, "S001", "2024-09-09T18:00:00Z", 92)
        submit_and_grade(essay, "S002", "2024-09-11T09:00:00Z", 80)

    set_course_grade("S001", cs101, 94.5, finalize=True)
    set_course_grade("S001", math101, 81)

    print("\nGPA for S001:")
    show_gpa("S001")

    print("\n" + "=" * 60)
    print(f"{_OK_CHAR} Sample data added successfully!")
    print("=" * 60)
    print(f"\nView API docs: {BASE_URL}/docs")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print(f"\n\n{_FAIL_CHAR} Interrupted by user")
        sys.exit(1)
