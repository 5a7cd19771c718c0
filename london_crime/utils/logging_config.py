"""
Logging setup for the walkthrough.

Modules log through ``logging.getLogger(__name__)``; everything under the
``london_crime`` namespace propagates to the handlers installed here.
Entry points (CLI, Streamlit page) call ``setup_logging`` once.
"""
import logging
import logging.handlers
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


APP_LOGGER_NAME = "london_crime"

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes StepLogger attaches through ``extra``
STEP_FIELDS = ("step", "details")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, including walkthrough step extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for name in STEP_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Human-readable console lines with the level name colored."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return line
        return line.replace(record.levelname, f"{color}{record.levelname}{self.RESET}", 1)


def _console_handler(level: int, log_format: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(level: int, log_file: str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Files always get JSON so runs can be parsed afterwards
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=3)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
    app_name: str = APP_LOGGER_NAME
) -> logging.Logger:
    """
    Install console (and optionally rotating file) handlers.

    Args:
        level: Level name, e.g. "INFO" or "DEBUG"
        log_format: "text" for colored console lines, "json" for structured lines
        log_file: Optional path of a JSON log file
        app_name: Logger to configure

    Returns:
        The configured logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logger = logging.getLogger(app_name)
    logger.setLevel(numeric_level)

    # Calling twice must not duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_console_handler(numeric_level, log_format))
    if log_file:
        logger.addHandler(_file_handler(numeric_level, log_file))

    return logger


class StepLogger:
    """
    Logs the narrated steps of the walkthrough with structured extras.
    """

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(f"{APP_LOGGER_NAME}.steps")

    def log_step(self, step: str, details: dict = None, success: bool = True):
        """Log one walkthrough step."""
        extra = {"step": step, "details": details or {}}

        if success:
            self.logger.info(f"Step '{step}' completed", extra=extra)
        else:
            self.logger.warning(f"Step '{step}' failed", extra=extra)

    def log_model_fit(self, model_name: str, aic: float = None, n_obs: int = None):
        """Log a fitted model."""
        self.log_step("fit", {"model": model_name, "aic": aic, "n_obs": n_obs})

    def log_comparison(self, best_model: str, metric: str, value: float):
        """Log the outcome of the forecast comparison."""
        self.log_step("compare", {"best_model": best_model, "metric": metric, "value": value})
