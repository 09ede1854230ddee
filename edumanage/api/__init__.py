"""
API module for the REST adapter.
"""

from .rest_api import EduManageRestAPI, ERROR_STATUS_CODES, status_code_for

__all__ = [
    "EduManageRestAPI",
    "ERROR_STATUS_CODES",
    "status_code_for",
]
