from __future__ import annotations

import logging

import pytest

from fpunlock.config import Settings
from fpunlock.logging_config import configure_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    bus_level = logging.getLogger("dbus_fast").level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("dbus_fast").setLevel(bus_level)


def test_logger_levels_pin_third_party_loggers(tmp_path, restore_logging):
    runtime_log = configure_logging("debug", tmp_path, 3, logger_levels={"dbus_fast": "error"})

    assert runtime_log == tmp_path / "fpunlock-runtime.log"
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("dbus_fast").level == logging.ERROR


def test_bus_library_is_quiet_by_default(tmp_path, restore_logging):
    settings = Settings(_env_file=None, log_directory=tmp_path)

    configure_logging(
        settings.log_level,
        settings.log_directory,
        settings.log_retention_days,
        logger_levels=settings.logger_levels,
    )

    assert logging.getLogger("dbus_fast").level == logging.WARNING
    assert logging.getLogger().level == logging.INFO
