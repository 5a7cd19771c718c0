"""Statistical forecasting models and their evaluation."""
from .forecaster import BaseForecaster, ForecastResult
from .smoothing import HoltWintersForecaster, ETSForecaster, select_ets
from .arima import ArimaForecaster, AutoArimaForecaster, grid_search_arima
from .evaluation import AccuracyMetrics, ModelComparison, calculate_accuracy

__all__ = [
    "BaseForecaster",
    "ForecastResult",
    "HoltWintersForecaster",
    "ETSForecaster",
    "select_ets",
    "ArimaForecaster",
    "AutoArimaForecaster",
    "grid_search_arima",
    "AccuracyMetrics",
    "ModelComparison",
    "calculate_accuracy",
]
