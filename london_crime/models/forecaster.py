"""
Shared forecasting machinery for the statistical models.

Each concrete forecaster wraps one statsmodels / pmdarima estimator and
returns a ForecastResult indexed by the future month starts.
"""
import warnings
import pandas as pd
import numpy as np
from typing import Dict, Optional, Tuple
from dataclasses import dataclass, field
import logging
import joblib
from pathlib import Path

from scipy import stats

from london_crime.utils.config import MODELS_DIR
from london_crime.utils.exceptions import (
    ForecastError,
    ModelLoadError,
    ModelNotFittedError,
    ModelTrainingError,
)

logger = logging.getLogger(__name__)


@dataclass
class ForecastResult:
    """Container for forecast results."""
    model_name: str
    predictions: pd.Series
    lower: pd.Series
    upper: pd.Series
    confidence_level: float
    fitted: Optional[pd.Series] = None
    residuals: Optional[pd.Series] = None
    aic: Optional[float] = None
    params: Dict[str, float] = field(default_factory=dict)

    @property
    def horizon(self) -> int:
        return len(self.predictions)

    def to_frame(self) -> pd.DataFrame:
        """Predictions and interval bounds as one DataFrame."""
        return pd.DataFrame({
            "model": self.model_name,
            "prediction": self.predictions,
            "lower": self.lower,
            "upper": self.upper,
        })


class BaseForecaster:
    """
    Common fit / forecast / persistence behaviour.

    Subclasses implement ``_fit`` (returning the fitted estimator),
    ``_forecast`` (mean, lower, upper arrays), ``_fitted_values`` and
    ``_aic``.
    """

    name = "Base"

    def __init__(self, confidence_level: float = 0.95):
        self.confidence_level = confidence_level
        self.results_ = None
        self.train_: Optional[pd.Series] = None
        self.is_fitted = False

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _fit(self, series: pd.Series):
        raise NotImplementedError

    def _forecast(self, steps: int, alpha: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        raise NotImplementedError

    def _fitted_values(self) -> pd.Series:
        raise NotImplementedError

    def _aic(self) -> float:
        return float(self.results_.aic)

    def _params(self) -> Dict[str, float]:
        return {}

    @property
    def burn_in(self) -> int:
        """Leading in-sample points whose fitted values are not meaningful."""
        return 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def _prepare_series(series: pd.Series) -> pd.Series:
        """Ensure a regular monthly DatetimeIndex without gaps."""
        if not isinstance(series.index, pd.DatetimeIndex):
            raise ModelTrainingError("Series must be indexed by month (DatetimeIndex)")

        series = series.sort_index().astype(float)
        if series.index.freq is None:
            series = series.asfreq(pd.infer_freq(series.index) or "MS")

        if series.isna().any():
            raise ModelTrainingError(f"Series has {int(series.isna().sum())} missing months")

        return series

    def fit(self, series: pd.Series) -> "BaseForecaster":
        """
        Fit the model on a monthly series.

        Args:
            series: Training series indexed by month start.

        Returns:
            self
        """
        series = self._prepare_series(series)
        self.train_ = series

        logger.info(f"Fitting {self.name} on {len(series)} months")
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                self.results_ = self._fit(series)
        except ModelTrainingError:
            raise
        except (ValueError, np.linalg.LinAlgError, IndexError) as e:
            raise ModelTrainingError(str(e), model_name=self.name) from e

        self.is_fitted = True
        logger.info(f"  {self.name}: AIC={self.aic:.2f}")
        return self

    def _check_fitted(self):
        if not self.is_fitted:
            raise ModelNotFittedError(self.name)

    @property
    def aic(self) -> float:
        self._check_fitted()
        return self._aic()

    @property
    def fitted_values(self) -> pd.Series:
        self._check_fitted()
        fitted = pd.Series(np.asarray(self._fitted_values(), dtype=float), index=self.train_.index)
        return fitted

    @property
    def residuals(self) -> pd.Series:
        """In-sample one-step residuals (observed - fitted), after the burn-in."""
        residuals = self.train_ - self.fitted_values
        return residuals.iloc[self.burn_in:]

    def future_index(self, steps: int) -> pd.DatetimeIndex:
        """Month starts following the training data."""
        freq = self.train_.index.freq or "MS"
        return pd.date_range(self.train_.index[-1], periods=steps + 1, freq=freq)[1:]

    def forecast(self, steps: int) -> ForecastResult:
        """
        Forecast ``steps`` months past the end of the training data.

        Counts cannot be negative, so predictions and bounds are floored at 0.

        Args:
            steps: Forecast horizon in months.

        Returns:
            ForecastResult with predictions and interval bounds.
        """
        self._check_fitted()
        if steps <= 0:
            raise ForecastError(f"Horizon must be positive, got {steps}")

        alpha = 1 - self.confidence_level
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                mean, lower, upper = self._forecast(steps, alpha)
        except (ValueError, np.linalg.LinAlgError) as e:
            raise ForecastError(str(e)) from e

        index = self.future_index(steps)
        mean = np.maximum(0, np.asarray(mean, dtype=float))
        lower = np.maximum(0, np.asarray(lower, dtype=float))
        upper = np.maximum(0, np.asarray(upper, dtype=float))

        return ForecastResult(
            model_name=self.name,
            predictions=pd.Series(mean, index=index, name=self.name),
            lower=pd.Series(lower, index=index),
            upper=pd.Series(upper, index=index),
            confidence_level=self.confidence_level,
            fitted=self.fitted_values,
            residuals=self.residuals,
            aic=self.aic,
            params=self._params()
        )

    def _residual_intervals(
        self,
        mean: np.ndarray,
        alpha: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Prediction intervals from the in-sample residual spread.

        Uncertainty grows with the square root of the horizon.
        """
        z_score = stats.norm.ppf(1 - alpha / 2)
        residual_std = float(np.std(self.residuals.dropna(), ddof=1))

        horizon = np.arange(1, len(mean) + 1)
        width = z_score * residual_std * np.sqrt(horizon)

        return mean - width, mean + width

    def summary(self) -> Dict:
        """Key facts about the fitted model."""
        self._check_fitted()
        residuals = self.residuals
        return {
            "model": self.name,
            "n_obs": len(self.train_),
            "train_start": self.train_.index[0].strftime("%Y-%m"),
            "train_end": self.train_.index[-1].strftime("%Y-%m"),
            "aic": self.aic,
            "residual_std": float(residuals.std()),
            "residual_mean": float(residuals.mean()),
            "params": self._params(),
        }

    def save(self, filepath: Path = None) -> Path:
        """Save the fitted forecaster to disk."""
        self._check_fitted()

        slug = "".join(ch if ch.isalnum() else "_" for ch in self.name.lower()).strip("_")
        filepath = Path(filepath) if filepath else MODELS_DIR / f"{slug}.joblib"

        save_data = {
            "class": type(self).__name__,
            "name": self.name,
            "forecaster": self,
        }

        joblib.dump(save_data, filepath)
        logger.info(f"Saved {self.name} to: {filepath}")
        return filepath

    @classmethod
    def load(cls, filepath: Path) -> "BaseForecaster":
        """Load a fitted forecaster from disk."""
        try:
            save_data = joblib.load(filepath)
        except (OSError, EOFError, KeyError) as e:
            raise ModelLoadError(str(filepath), reason=str(e)) from e

        forecaster = save_data.get("forecaster") if isinstance(save_data, dict) else None
        if not isinstance(forecaster, cls):
            raise ModelLoadError(str(filepath), reason=f"File does not contain a {cls.__name__}")

        logger.info(f"Loaded {forecaster.name} from: {filepath}")
        return forecaster
