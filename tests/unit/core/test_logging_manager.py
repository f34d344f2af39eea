"""Unit tests for the Logging Manager."""

import json
import logging
from pathlib import Path

import pytest
import structlog
from pythonjsonlogger import jsonlogger

from mixerpack.core.config_manager import LoggingSettings
from mixerpack.core.logging_manager import LoggingManager
from mixerpack.utils.exceptions import ConfigurationError


@pytest.fixture
def restore_logging():
    """Put the root logger and structlog back the way they were."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()


def test_uninitialized_logger_is_stdlib():
    manager = LoggingManager()
    assert isinstance(manager.get_logger("test"), logging.Logger)


def test_console_logging(restore_logging):
    manager = LoggingManager(LoggingSettings(level="INFO"))
    manager.initialize()

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert len(manager.handlers) == 1
    assert manager.handlers[0] in root.handlers
    assert not isinstance(manager.handlers[0].formatter, jsonlogger.JsonFormatter)

    manager.shutdown()
    assert manager.handlers == []


def test_level_override(restore_logging):
    manager = LoggingManager(LoggingSettings(level="ERROR"))
    manager.initialize(level="debug")
    assert logging.getLogger().level == logging.DEBUG
    manager.shutdown()


def test_file_logging_text(tmp_path: Path, restore_logging):
    log_file = tmp_path / "logs" / "mixerpack.log"
    settings = LoggingSettings(level="INFO", file={"enabled": True, "path": str(log_file)})
    manager = LoggingManager(settings)
    manager.initialize()

    manager.get_logger("mixerpack.test").info("Stage finished", stage="load")
    manager.shutdown()

    content = log_file.read_text(encoding="utf-8")
    assert "mixerpack.test" in content
    assert "event='Stage finished'" in content
    assert "stage='load'" in content


def test_file_logging_json(tmp_path: Path, restore_logging):
    log_file = tmp_path / "mixerpack.log"
    settings = LoggingSettings(level="INFO", format="json", file={"enabled": True, "path": str(log_file)})
    manager = LoggingManager(settings)
    manager.initialize()

    manager.get_logger("mixerpack.test").warning("Manifest target missing", field="icon")
    manager.shutdown()

    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[0])
    assert record["message"] == "Manifest target missing"
    assert record["field"] == "icon"
    assert record["levelname"] == "WARNING"


def test_filtered_below_level(tmp_path: Path, restore_logging):
    log_file = tmp_path / "mixerpack.log"
    settings = LoggingSettings(level="WARNING", file={"enabled": True, "path": str(log_file)})
    manager = LoggingManager(settings)
    manager.initialize()

    manager.get_logger("mixerpack.test").info("hidden")
    manager.shutdown()

    assert log_file.read_text(encoding="utf-8") == ""


def test_unwritable_log_file(tmp_path: Path, restore_logging):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    settings = LoggingSettings(file={"enabled": True, "path": str(blocker / "mixerpack.log")})

    with pytest.raises(ConfigurationError) as exc_info:
        LoggingManager(settings).initialize()

    assert exc_info.value.config_key == "logging.file.path"
