import json

import pytest

from edumanage.core.exceptions import ConfigurationError
from edumanage.main import EduManagePlatform, load_config


class TestLoadConfig:
    def test_defaults(self):
        config = load_config(environ={})
        assert config["database_type"] == "sqlite"
        assert config["session_write_retries"] == 2

    def test_file_and_environment(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "database_config": {"database_path": "from-file.db"},
            "session_write_retries": 5,
        }))

        config = load_config(str(path), environ={"EDUMANAGE_DATABASE_PATH": "from-env.db",
                                                 "EDUMANAGE_LOG_LEVEL": "debug"})

        assert config["database_config"]["database_path"] == "from-env.db"
        assert config["session_write_retries"] == 5
        assert config["log_level"] == "debug"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(str(tmp_path / "nope.json"), environ={})


def test_platform_wires_services(tmp_path):
    platform = EduManagePlatform({
        "database_type": "sqlite",
        "database_config": {"database_path": str(tmp_path / "platform.db")},
    })

    assert platform.migration_manager.get_pending_migrations() == []
    course = platform.catalog.create_course("CS101", "Intro", 1, is_approved=True)
    platform.ledger.enroll("s1", course.id)
    assert platform.catalog.get_course(course.id).current_enrollment == 1


def test_demo_runs(tmp_path):
    platform = EduManagePlatform({"database_config": {"database_path": str(tmp_path / "demo.db")}})
    platform.run_demo()

    course = platform.catalog.list_courses()[0]
    assert course.current_enrollment == 1


def test_demo_can_run_twice_on_one_database(tmp_path):
    config = {"database_config": {"database_path": str(tmp_path / "demo.db")}}
    EduManagePlatform(config).run_demo()

    platform = EduManagePlatform(config)
    platform.run_demo()

    courses = platform.catalog.list_courses()
    assert len(courses) == 2
    assert len({course.code for course in courses}) == 2
