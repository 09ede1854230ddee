"""
EduManage: course enrollment, attendance and grading with consistent
denormalized counters.

Keeps seat counters, attendance totals, submission grades and finalized
course grades in agreement with the records they summarize, under
concurrent writers.
"""

__version__ = "1.0.0"
__author__ = "EduManage Development Team"
__description__ = "Grade, attendance and enrollment consistency services"
