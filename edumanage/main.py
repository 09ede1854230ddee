"""
Main entry point for the EduManage platform.
"""

import json
import os
from typing import Any, Dict, Optional

from .app_logger import get_logger, setup_logging
from .core.entities import new_id
from .core.exceptions import ConfigurationError
from .persistence import (
    AssignmentRepository, AttendanceRepository, CourseGradeRepository, CourseRepository,
    DatabaseFactory, EnrollmentRepository, MigrationManager, SubmissionRepository,
)
from .services import (
    AttendanceAggregator, ConcurrencyManager, CourseCatalog, CourseGradeFinalizer,
    EnrollmentLedger, SubmissionGrader,
)
from .api.rest_api import EduManageRestAPI

logger = get_logger("platform")

DEFAULT_CONFIG: Dict[str, Any] = {
    "database_type": "sqlite",
    "database_config": {"database_path": "edumanage.db"},
    "session_write_retries": 2,
    "retry_backoff": 0.05,
    "log_level": "INFO",
}


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Merge defaults, an optional JSON file and environment overrides."""
    environ = os.environ if environ is None else environ
    config = dict(DEFAULT_CONFIG)
    config["database_config"] = dict(DEFAULT_CONFIG["database_config"])

    if path:
        try:
            with open(path, "r") as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a JSON object")
        if "database_config" in file_config:
            config["database_config"] = dict(file_config["database_config"] or {})
        config.update({k: v for k, v in file_config.items() if k != "database_config"})

    if environ.get("EDUMANAGE_DATABASE_TYPE"):
        config["database_type"] = environ["EDUMANAGE_DATABASE_TYPE"]
    if environ.get("EDUMANAGE_DATABASE_PATH"):
        config["database_config"]["database_path"] = environ["EDUMANAGE_DATABASE_PATH"]
    if environ.get("EDUMANAGE_LOG_LEVEL"):
        config["log_level"] = environ["EDUMANAGE_LOG_LEVEL"]

    return config


class EduManagePlatform:
    """Wires storage, services and the REST API together."""

    def __init__(self, config: Optional[dict] = None):
        self._config = dict(DEFAULT_CONFIG)
        self._config.update(config or {})
        self._database = None
        self._migration_manager = None
        self._concurrency_manager = None
        self._repositories: Dict[str, Any] = {}
        self._rest_api = None

        self.catalog: Optional[CourseCatalog] = None
        self.ledger: Optional[EnrollmentLedger] = None
        self.attendance: Optional[AttendanceAggregator] = None
        self.grader: Optional[SubmissionGrader] = None
        self.finalizer: Optional[CourseGradeFinalizer] = None

        self._initialize_platform()

    def _initialize_platform(self):
        """Initialize the platform with all services."""
        logger.info("Initializing EduManage platform")

        db_type = self._config.get("database_type", "sqlite")
        db_config = self._config.get("database_config", {})
        self._database = DatabaseFactory.create_database(db_type, **db_config)
        logger.info("Database initialized: %s", db_type)

        self._migration_manager = MigrationManager(self._database)
        applied = self._migration_manager.migrate_up()
        logger.info("Schema up to date (%d migration(s) applied)", len(applied))

        self._concurrency_manager = ConcurrencyManager(
            backoff_factor=float(self._config.get("retry_backoff", 0.05)),
        )

        self._repositories = {
            "course": CourseRepository(self._database),
            "enrollment": EnrollmentRepository(self._database),
            "attendance": AttendanceRepository(self._database),
            "assignment": AssignmentRepository(self._database),
            "submission": SubmissionRepository(self._database),
            "course_grade": CourseGradeRepository(self._database),
        }

        repos = self._repositories
        self.catalog = CourseCatalog(repos["course"])
        self.ledger = EnrollmentLedger(repos["course"], repos["enrollment"])
        self.attendance = AttendanceAggregator(
            repos["course"], repos["enrollment"], repos["attendance"], self._concurrency_manager,
            session_write_retries=int(self._config.get("session_write_retries", 2)),
        )
        self.grader = SubmissionGrader(repos["course"], repos["enrollment"],
                                       repos["assignment"], repos["submission"])
        self.finalizer = CourseGradeFinalizer(repos["course_grade"], repos["enrollment"])

        self._rest_api = EduManageRestAPI(self.catalog, self.ledger, self.attendance,
                                          self.grader, self.finalizer)
        logger.info("EduManage platform initialized")

    @property
    def database(self):
        return self._database

    @property
    def migration_manager(self) -> MigrationManager:
        return self._migration_manager

    @property
    def app(self):
        return self._rest_api.app

    def start_rest_server(self, host: str = "0.0.0.0", port: int = 8000):
        """Serve the REST API in the foreground."""
        import uvicorn

        logger.info("REST API on http://%s:%d (docs at /docs)", host, port)
        uvicorn.run(self.app, host=host, port=port,
                    log_level=str(self._config.get("log_level", "info")).lower())

    def run_demo(self):
        """Run a short end-to-end scenario against the configured storage."""
        # Unique per run so the demo can be repeated against the same database.
        course = self.catalog.create_course(f"DEMO-{new_id()[:8]}", "Demonstration Course", 2,
                                            is_approved=True)
        first = self.ledger.enroll("demo-student-1", course.id)
        self.ledger.enroll("demo-student-2", course.id)
        logger.info("Seats used: %d/%d", self.catalog.get_course(course.id).current_enrollment,
                    course.max_seats)

        self.attendance.record_session(course.id, "2024-09-02",
                                       [("demo-student-1", "present"), ("demo-student-2", "absent")])
        logger.info("Attendance for demo-student-1: %s",
                    self.ledger.get_enrollment(first.id).attendance.to_dict())

        self.ledger.drop(first.id)
        logger.info("Seats used after drop: %d", self.catalog.get_course(course.id).current_enrollment)

        self.finalizer.upsert_grade("demo-student-2", course.id, 88.5)
        grade = self.finalizer.finalize("demo-student-2", course.id)
        logger.info("Finalized grade: %s (%.1f)", grade.letter_grade, grade.gpa_point)
        logger.info("Demo completed")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="EduManage course consistency service")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="REST server host")
    parser.add_argument("--port", type=int, default=8000, help="REST server port")
    parser.add_argument("--demo", action="store_true", help="Run demo mode")
    parser.add_argument("--config", type=str, help="Configuration file path")

    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config.get("log_level"))

    platform = EduManagePlatform(config)

    try:
        if args.demo:
            platform.run_demo()
        else:
            platform.start_rest_server(args.host, args.port)
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
