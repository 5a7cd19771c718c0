"""
Tests for the exception hierarchy, logging setup and environment settings.
"""
import json
import logging

import pytest

from london_crime.utils.exceptions import (
    CrimeAnalysisError,
    DataError,
    DataFormatError,
    ExportError,
    ExportFormatError,
    ForecastError,
    MissingDataError,
    ModelError,
    ModelNotFittedError,
)
from london_crime.utils.logging_config import APP_LOGGER_NAME, StepLogger, setup_logging
from london_crime.utils.settings import AppSettings, get_env


@pytest.fixture
def app_logger():
    """Restore the application logger after a test reconfigures it."""
    logger = logging.getLogger(APP_LOGGER_NAME)
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


# ===========================================
# Exceptions
# ===========================================

def test_exception_to_dict():
    error = DataFormatError("integer counts", actual_format="text", column="201001")
    data = error.to_dict()

    assert data["error_code"] == "DATA_FORMAT_ERROR"
    assert data["details"]["column"] == "201001"
    assert "201001" in data["message"]
    assert data["user_message"] == error.user_message


def test_exception_hierarchy():
    """Callers can catch a whole family or every application error."""
    assert issubclass(MissingDataError, DataError)
    assert issubclass(ForecastError, ModelError)
    assert issubclass(ModelNotFittedError, ModelError)
    assert issubclass(ExportFormatError, ExportError)
    for cls in (DataError, ModelError, ExportError):
        assert issubclass(cls, CrimeAnalysisError)


def test_default_error_code():
    error = CrimeAnalysisError("something broke")
    assert error.error_code == "UNKNOWN_ERROR"
    assert error.user_message == "something broke"
    assert str(error) == "something broke"


# ===========================================
# Logging
# ===========================================

def test_json_logging(app_logger, capsys):
    """Step extras appear as structured fields."""
    setup_logging(level="DEBUG", log_format="json")

    StepLogger().log_step("aggregate", {"months": 96})

    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["level"] == "INFO"
    assert record["logger"] == f"{APP_LOGGER_NAME}.steps"
    assert record["step"] == "aggregate"
    assert record["details"] == {"months": 96}


def test_log_file(app_logger, tmp_path):
    log_file = tmp_path / "logs" / "walkthrough.log"
    logger = setup_logging(level="INFO", log_file=str(log_file))

    logger.info("hello")
    for handler in logger.handlers:
        handler.flush()

    assert json.loads(log_file.read_text().splitlines()[-1])["message"] == "hello"


def test_step_logger_levels(caplog):
    caplog.set_level(logging.INFO, logger=APP_LOGGER_NAME)
    steps = StepLogger()

    steps.log_model_fit("ARIMA(1,1,1)", aic=812.4, n_obs=84)
    steps.log_step("validate", {"errors": 2}, success=False)
    steps.log_comparison("SARIMA(1,1,1)(0,1,1)[12]", "rmse", 21.3)

    levels = [r.levelname for r in caplog.records]
    assert levels == ["INFO", "WARNING", "INFO"]
    assert caplog.records[0].details["model"] == "ARIMA(1,1,1)"
    assert caplog.records[2].details["best_model"] == "SARIMA(1,1,1)(0,1,1)[12]"


# ===========================================
# Settings
# ===========================================

def test_get_env_casts(monkeypatch):
    monkeypatch.setenv("TEST_FLAG", "yes")
    monkeypatch.setenv("TEST_INT", "24")
    monkeypatch.setenv("TEST_LIST", "Burglary, Robbery,")

    assert get_env("TEST_FLAG", cast=bool) is True
    assert get_env("TEST_INT", cast=int) == 24
    assert get_env("TEST_LIST", cast=list) == ["Burglary", "Robbery"]
    assert get_env("TEST_UNSET_KEY") is None
    assert get_env("TEST_UNSET_KEY", "3", int) == 3


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("FORECAST_CATEGORY", "Robbery")
    monkeypatch.setenv("TEST_MONTHS", "6")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("CRIME_DATA_URL", "http://example.invalid/crime.csv")

    settings = AppSettings.from_env()

    assert settings.forecast_category == "Robbery"
    assert settings.test_months == 6
    assert settings.is_production
    assert settings.crime_data_url == "http://example.invalid/crime.csv"


def test_settings_default_url(monkeypatch):
    monkeypatch.delenv("CRIME_DATA_URL", raising=False)
    assert AppSettings.from_env().crime_data_url.startswith("http")
