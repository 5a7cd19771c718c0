"""
Environment-backed settings for the walkthrough.

Values come from the process environment, optionally seeded from a ``.env``
file in the project root. Paths and model defaults live in config.py.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from london_crime.utils.config import DATASET_URL, PROJECT_ROOT

env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = None, cast: type = str):
    """Read an environment variable and cast it (bool, int, float, list or str)."""
    value = os.getenv(key, default)
    if value is None:
        return None

    if cast == bool:
        return value.strip().lower() in ("true", "1", "yes", "on")
    if cast == int:
        return int(value)
    if cast == float:
        return float(value)
    if cast == list:
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@dataclass
class AppSettings:
    """Runtime settings for the walkthrough, CLI and Streamlit page."""

    app_name: str = "London Crime Forecasting"
    app_env: str = "development"

    # Source export
    crime_data_url: str = DATASET_URL
    request_timeout_seconds: int = 60

    # Defaults for the narrated run
    forecast_category: str = "Burglary"
    test_months: int = 12

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"
    log_file: str = None

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Build settings from CRIME_DATA_URL, FORECAST_CATEGORY, TEST_MONTHS, LOG_* and friends."""
        log_file = get_env("LOG_FILE")
        if log_file and not Path(log_file).is_absolute():
            log_file = str(PROJECT_ROOT / log_file)

        return cls(
            app_name=get_env("APP_NAME", cls.app_name),
            app_env=get_env("APP_ENV", cls.app_env),
            crime_data_url=get_env("CRIME_DATA_URL") or DATASET_URL,
            request_timeout_seconds=get_env("REQUEST_TIMEOUT_SECONDS", "60", int),
            forecast_category=get_env("FORECAST_CATEGORY", cls.forecast_category),
            test_months=get_env("TEST_MONTHS", "12", int),
            log_level=get_env("LOG_LEVEL", cls.log_level),
            log_format=get_env("LOG_FORMAT", cls.log_format),
            log_file=log_file,
        )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache()
def get_settings() -> AppSettings:
    """Settings read once per process."""
    return AppSettings.from_env()


settings = get_settings()
