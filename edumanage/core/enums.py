"""
Enumerations and constants for the edumanage core.
"""

from enum import Enum
from typing import FrozenSet


class EnrollmentStatus(Enum):
    """Lifecycle status of an enrollment."""
    ENROLLED = "enrolled"
    COMPLETED = "completed"
    DROPPED = "dropped"
    SUSPENDED = "suspended"


class AttendanceStatus(Enum):
    """Per-student status within one class meeting."""
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


# Statuses that hold a seat in the course's seat counter.
SEAT_HOLDING_STATUSES: FrozenSet[EnrollmentStatus] = frozenset({
    EnrollmentStatus.ENROLLED,
    EnrollmentStatus.COMPLETED,
    EnrollmentStatus.SUSPENDED,
})

TERMINAL_STATUSES: FrozenSet[EnrollmentStatus] = frozenset({
    EnrollmentStatus.COMPLETED,
    EnrollmentStatus.DROPPED,
})

# Statuses that count as attended.
ATTENDED_STATUSES: FrozenSet[AttendanceStatus] = frozenset({
    AttendanceStatus.PRESENT,
    AttendanceStatus.LATE,
})
