"""
Forecast evaluation against later actuals.
Calculates accuracy metrics and ranks competing models.
"""
import pandas as pd
import numpy as np
import plotly.graph_objects as go
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from london_crime.models.forecaster import ForecastResult
from london_crime.utils.exceptions import ForecastError, MissingDataError

logger = logging.getLogger(__name__)

MODEL_COLORS = ["#667eea", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6", "#06b6d4", "#ec4899"]


@dataclass
class AccuracyMetrics:
    """Accuracy metrics for forecast evaluation."""
    mae: float   # Mean Absolute Error
    rmse: float  # Root Mean Square Error
    mse: float   # Mean Square Error
    mape: float  # Mean Absolute Percentage Error
    bias: float  # Average (predicted - actual)
    r2: float    # R-squared
    accuracy_pct: float  # 100 - MAPE, floored at 0
    coverage: Optional[float] = None  # Share of actuals inside the interval

    def to_dict(self) -> dict:
        return {
            "mae": self.mae,
            "rmse": self.rmse,
            "mse": self.mse,
            "mape": self.mape,
            "bias": self.bias,
            "r2": self.r2,
            "accuracy_pct": self.accuracy_pct,
            "coverage": self.coverage,
        }


def calculate_accuracy(
    actual: pd.Series,
    predicted: pd.Series,
    lower: pd.Series = None,
    upper: pd.Series = None
) -> AccuracyMetrics:
    """
    Compare predictions with actual values.

    Args:
        actual: Observed values
        predicted: Forecast values for the same months
        lower: Optional lower interval bound
        upper: Optional upper interval bound

    Returns:
        AccuracyMetrics
    """
    y_true = np.asarray(actual, dtype=float)
    y_pred = np.asarray(predicted, dtype=float)

    if len(y_true) != len(y_pred):
        raise ForecastError(f"Length mismatch: {len(y_true)} actuals vs {len(y_pred)} predictions")
    if len(y_true) == 0:
        raise MissingDataError("actuals for comparison")

    # Avoid division by zero in MAPE
    mask = y_true > 0
    if mask.sum() > 0:
        mape = float(np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100)
    else:
        mape = 0.0

    mse = float(mean_squared_error(y_true, y_pred))
    r2 = float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float("nan")

    coverage = None
    if lower is not None and upper is not None:
        lo = np.asarray(lower, dtype=float)
        hi = np.asarray(upper, dtype=float)
        coverage = float(np.mean((y_true >= lo) & (y_true <= hi)))

    return AccuracyMetrics(
        mae=float(mean_absolute_error(y_true, y_pred)),
        rmse=float(np.sqrt(mse)),
        mse=mse,
        mape=mape,
        bias=float(np.mean(y_pred - y_true)),
        r2=r2,
        accuracy_pct=max(0.0, 100 - mape),
        coverage=coverage
    )


class ModelComparison:
    """
    Compares several forecasts with the held-out actuals.
    """

    def __init__(self, actuals: pd.Series, history: pd.Series = None):
        """
        Args:
            actuals: Later observed values (the held-out test months)
            history: Training series, used only for plotting
        """
        if actuals is None or len(actuals) == 0:
            raise MissingDataError("held-out actuals")

        self.actuals = actuals.sort_index()
        self.history = history
        self.results: Dict[str, ForecastResult] = {}
        self.metrics: Dict[str, AccuracyMetrics] = {}

    def add(self, result: ForecastResult) -> AccuracyMetrics:
        """
        Register a forecast and score it against the actuals.

        The forecast must cover every held-out month.
        """
        predictions = result.predictions.reindex(self.actuals.index)
        if predictions.isna().any():
            raise ForecastError(
                f"{result.model_name} does not cover all {len(self.actuals)} held-out months"
            )

        metrics = calculate_accuracy(
            self.actuals,
            predictions,
            result.lower.reindex(self.actuals.index),
            result.upper.reindex(self.actuals.index)
        )

        self.results[result.model_name] = result
        self.metrics[result.model_name] = metrics
        logger.info(
            f"  {result.model_name}: RMSE={metrics.rmse:.1f} MAE={metrics.mae:.1f} MAPE={metrics.mape:.1f}%"
        )
        return metrics

    def add_all(self, results: List[ForecastResult]):
        for result in results:
            self.add(result)

    def table(self, sort_by: str = "rmse") -> pd.DataFrame:
        """Metrics per model, best first."""
        if not self.metrics:
            raise MissingDataError("forecasts to compare")

        rows = []
        for name, metrics in self.metrics.items():
            row = {"model": name, "aic": self.results[name].aic}
            row.update(metrics.to_dict())
            rows.append(row)

        ascending = sort_by not in ("r2", "accuracy_pct", "coverage")
        return pd.DataFrame(rows).sort_values(sort_by, ascending=ascending).reset_index(drop=True)

    def best_model(self, metric: str = "rmse") -> str:
        """Name of the model with the best score on ``metric``."""
        return self.table(sort_by=metric).iloc[0]["model"]

    def forecasts_frame(self) -> pd.DataFrame:
        """Actuals next to every model's predictions."""
        frame = pd.DataFrame({"actual": self.actuals})
        for name, result in self.results.items():
            frame[name] = result.predictions.reindex(self.actuals.index)
        return frame

    def plot(self, show_intervals: bool = True, title: str = None) -> go.Figure:
        """Plot history, held-out actuals and every forecast."""
        fig = go.Figure()

        if self.history is not None:
            fig.add_trace(go.Scatter(
                x=self.history.index, y=self.history,
                name="Training data",
                line=dict(color="#9ca3af", width=1.5)
            ))

        fig.add_trace(go.Scatter(
            x=self.actuals.index, y=self.actuals,
            name="Actual (held out)",
            line=dict(color="#111827", width=2.5)
        ))

        for i, (name, result) in enumerate(self.results.items()):
            color = MODEL_COLORS[i % len(MODEL_COLORS)]
            fig.add_trace(go.Scatter(
                x=result.predictions.index, y=result.predictions,
                name=name,
                line=dict(color=color, width=2, dash="dash")
            ))

            if show_intervals:
                x_band = list(result.upper.index) + list(result.lower.index)[::-1]
                y_band = list(result.upper) + list(result.lower)[::-1]
                fig.add_trace(go.Scatter(
                    x=x_band, y=y_band,
                    fill="toself",
                    fillcolor=color,
                    opacity=0.12,
                    line=dict(color="rgba(255,255,255,0)"),
                    name=f"{name} {result.confidence_level:.0%} interval",
                    showlegend=False
                ))

        fig.update_layout(
            title=title or "Forecasts vs Later Actuals",
            xaxis_title="Month",
            yaxis_title="Incidents",
            height=500,
            showlegend=True
        )

        return fig
