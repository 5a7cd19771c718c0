"""Utility modules."""
from .config import (
    PROJECT_ROOT,
    DATA_RAW,
    DATA_PROCESSED,
    OUTPUTS_DIR,
    MODELS_DIR,
    ETSSpec,
    ForecastConfig,
    DEFAULT_FORECAST_CONFIG,
)

__all__ = [
    "PROJECT_ROOT",
    "DATA_RAW",
    "DATA_PROCESSED",
    "OUTPUTS_DIR",
    "MODELS_DIR",
    "ETSSpec",
    "ForecastConfig",
    "DEFAULT_FORECAST_CONFIG",
]
