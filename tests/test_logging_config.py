import logging

from refdata.core import logging_config
from refdata.core.logging_config import IMPORT_LOGGER, SQL_LOGGER, build_logging_config


def test_import_logger_follows_app_level_by_default():
    config = build_logging_config("debug")

    assert config["root"]["level"] == "DEBUG"
    assert config["loggers"][IMPORT_LOGGER]["level"] == "DEBUG"
    assert config["loggers"][SQL_LOGGER]["level"] == "WARNING"


def test_import_and_sql_levels_can_be_set_separately():
    config = build_logging_config("INFO", import_level="warning", sql_level="info")

    assert config["loggers"]["refdata"]["level"] == "INFO"
    assert config["loggers"][IMPORT_LOGGER]["level"] == "WARNING"
    assert config["loggers"][SQL_LOGGER]["level"] == "INFO"


def test_configure_logging_runs_once(monkeypatch):
    monkeypatch.setattr(logging_config, "_is_configured", False)
    monkeypatch.setattr(logging.getLogger(IMPORT_LOGGER), "level", logging.NOTSET)

    logging_config.configure_logging("INFO", import_level="ERROR")
    logging_config.configure_logging("DEBUG", import_level="DEBUG")

    assert logging.getLogger(IMPORT_LOGGER).level == logging.ERROR
