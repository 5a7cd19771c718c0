"""
Exponential smoothing forecasters: Holt-Winters and state-space ETS.
"""
import warnings
import pandas as pd
import numpy as np
from typing import Dict, List, Optional, Tuple
import logging

from statsmodels.tsa.holtwinters import ExponentialSmoothing
from statsmodels.tsa.exponential_smoothing.ets import ETSModel

from london_crime.models.forecaster import BaseForecaster
from london_crime.utils.config import ETSSpec
from london_crime.utils.exceptions import ModelTrainingError

logger = logging.getLogger(__name__)


class HoltWintersForecaster(BaseForecaster):
    """
    Triple exponential smoothing (level, trend, season).

    Smoothing parameters are optimised by statsmodels. The estimator has no
    native prediction intervals, so they come from the residual spread.
    """

    def __init__(
        self,
        trend: Optional[str] = "add",
        seasonal: Optional[str] = "add",
        damped_trend: bool = False,
        seasonal_periods: int = 12,
        confidence_level: float = 0.95
    ):
        super().__init__(confidence_level)
        self.trend = trend
        self.seasonal = seasonal
        self.damped_trend = damped_trend and trend is not None
        self.seasonal_periods = seasonal_periods

        trend_code = (trend or "N")[0].upper() + ("d" if self.damped_trend else "")
        seasonal_code = (seasonal or "N")[0].upper()
        self.name = f"Holt-Winters ({trend_code},{seasonal_code})"

    def _fit(self, series: pd.Series):
        if self.seasonal is not None and len(series) < 2 * self.seasonal_periods:
            raise ModelTrainingError(
                f"Need two full seasons ({2 * self.seasonal_periods} months), got {len(series)}",
                model_name=self.name
            )

        model = ExponentialSmoothing(
            series,
            trend=self.trend,
            seasonal=self.seasonal,
            seasonal_periods=self.seasonal_periods if self.seasonal else None,
            damped_trend=self.damped_trend,
            initialization_method="estimated"
        )
        return model.fit(optimized=True)

    def _forecast(self, steps: int, alpha: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        mean = np.asarray(self.results_.forecast(steps), dtype=float)
        lower, upper = self._residual_intervals(mean, alpha)
        return mean, lower, upper

    def _fitted_values(self) -> pd.Series:
        return self.results_.fittedvalues

    def _params(self) -> Dict[str, float]:
        params = self.results_.params
        keys = ["smoothing_level", "smoothing_trend", "smoothing_seasonal", "damping_trend"]
        return {
            k: float(params[k]) for k in keys
            if k in params and params[k] is not None and not np.isnan(params[k])
        }


class ETSForecaster(BaseForecaster):
    """
    State-space ETS(Error, Trend, Seasonal) model with native prediction intervals.
    """

    def __init__(
        self,
        error: str = "add",
        trend: Optional[str] = None,
        seasonal: Optional[str] = None,
        damped_trend: bool = False,
        seasonal_periods: int = 12,
        confidence_level: float = 0.95
    ):
        super().__init__(confidence_level)
        self.spec = ETSSpec(error=error, trend=trend, seasonal=seasonal,
                            damped_trend=damped_trend and trend is not None)
        self.seasonal_periods = seasonal_periods
        self.name = self.spec.label

    @classmethod
    def from_spec(cls, spec: ETSSpec, seasonal_periods: int = 12,
                  confidence_level: float = 0.95) -> "ETSForecaster":
        return cls(
            error=spec.error,
            trend=spec.trend,
            seasonal=spec.seasonal,
            damped_trend=spec.damped_trend,
            seasonal_periods=seasonal_periods,
            confidence_level=confidence_level
        )

    @property
    def is_multiplicative(self) -> bool:
        return "mul" in (self.spec.error, self.spec.trend, self.spec.seasonal)

    def _fit(self, series: pd.Series):
        if self.is_multiplicative and (series <= 0).any():
            raise ModelTrainingError(
                "Multiplicative components need strictly positive data",
                model_name=self.name
            )
        if self.spec.seasonal is not None and len(series) < 2 * self.seasonal_periods:
            raise ModelTrainingError(
                f"Need two full seasons ({2 * self.seasonal_periods} months), got {len(series)}",
                model_name=self.name
            )

        model = ETSModel(
            series,
            error=self.spec.error,
            trend=self.spec.trend,
            seasonal=self.spec.seasonal,
            damped_trend=self.spec.damped_trend,
            seasonal_periods=self.seasonal_periods if self.spec.seasonal else None
        )
        return model.fit(disp=False)

    def _forecast(self, steps: int, alpha: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        n = len(self.train_)
        prediction = self.results_.get_prediction(start=n, end=n + steps - 1)
        frame = prediction.summary_frame(alpha=alpha)
        return (
            frame["mean"].to_numpy(),
            frame["pi_lower"].to_numpy(),
            frame["pi_upper"].to_numpy(),
        )

    def _fitted_values(self) -> pd.Series:
        return self.results_.fittedvalues

    def _params(self) -> Dict[str, float]:
        params = self.results_.params
        if isinstance(params, pd.Series):
            params = params.to_dict()
        elif not isinstance(params, dict):
            params = dict(zip(self.results_.model.param_names, params))
        return {
            k: float(v) for k, v in params.items()
            if k.startswith(("smoothing", "damping"))
        }


def select_ets(
    series: pd.Series,
    candidates: List[ETSSpec],
    seasonal_periods: int = 12,
    confidence_level: float = 0.95
) -> Tuple[ETSForecaster, pd.DataFrame]:
    """
    Fit every ETS candidate and keep the one with the lowest AIC.

    Candidates that cannot be estimated are logged and reported with
    status 'failed'.

    Returns:
        (best fitted forecaster, table of candidates sorted by AIC)
    """
    rows = []
    best: Optional[ETSForecaster] = None

    for spec in candidates:
        forecaster = ETSForecaster.from_spec(spec, seasonal_periods, confidence_level)
        try:
            forecaster.fit(series)
        except ModelTrainingError as e:
            logger.warning(f"  {forecaster.name} skipped: {e.message}")
            rows.append({"model": forecaster.name, "aic": np.nan, "bic": np.nan, "status": "failed"})
            continue

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            bic = float(forecaster.results_.bic)
        rows.append({"model": forecaster.name, "aic": forecaster.aic, "bic": bic, "status": "ok"})

        if best is None or forecaster.aic < best.aic:
            best = forecaster

    if best is None:
        raise ModelTrainingError("No ETS candidate could be fitted")

    table = pd.DataFrame(rows).sort_values("aic", na_position="last").reset_index(drop=True)
    logger.info(f"Best ETS model: {best.name} (AIC={best.aic:.2f})")

    return best, table
