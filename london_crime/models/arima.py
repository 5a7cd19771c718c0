"""
ARIMA-family forecasters: manually specified (S)ARIMA, a manual AIC order
search, and automatic order selection with pmdarima.
"""
import itertools
import pandas as pd
import numpy as np
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from statsmodels.tsa.statespace.sarimax import SARIMAX

from london_crime.models.forecaster import BaseForecaster
from london_crime.utils.config import ForecastConfig, DEFAULT_FORECAST_CONFIG
from london_crime.utils.exceptions import ModelTrainingError

logger = logging.getLogger(__name__)

NO_SEASON = (0, 0, 0, 0)


def format_order(order: Tuple[int, int, int], seasonal_order: Tuple[int, int, int, int] = NO_SEASON) -> str:
    """Conventional label, e.g. 'SARIMA(1,1,1)(0,1,1)[12]'."""
    p, d, q = order
    if tuple(seasonal_order) == NO_SEASON:
        return f"ARIMA({p},{d},{q})"
    P, D, Q, m = seasonal_order
    return f"SARIMA({p},{d},{q})({P},{D},{Q})[{m}]"


class ArimaForecaster(BaseForecaster):
    """
    (Seasonal) ARIMA estimated by statsmodels SARIMAX.

    A plain ARIMA is the special case ``seasonal_order=(0, 0, 0, 0)``.
    """

    def __init__(
        self,
        order: Tuple[int, int, int] = (1, 1, 1),
        seasonal_order: Tuple[int, int, int, int] = NO_SEASON,
        trend: Optional[str] = None,
        confidence_level: float = 0.95
    ):
        super().__init__(confidence_level)
        self.order = tuple(order)
        self.seasonal_order = tuple(seasonal_order)
        self.trend = trend
        self.name = format_order(self.order, self.seasonal_order)

    @property
    def is_seasonal(self) -> bool:
        return self.seasonal_order != NO_SEASON

    @property
    def burn_in(self) -> int:
        # Differenced observations have no usable one-step prediction
        return self.order[1] + self.seasonal_order[1] * self.seasonal_order[3]

    def _fit(self, series: pd.Series):
        if len(series) <= self.burn_in + sum(self.order) + sum(self.seasonal_order[:3]):
            raise ModelTrainingError(
                f"Series of {len(series)} months is too short for {self.name}",
                model_name=self.name
            )

        model = SARIMAX(
            series,
            order=self.order,
            seasonal_order=self.seasonal_order,
            trend=self.trend,
            enforce_stationarity=False,
            enforce_invertibility=False
        )
        return model.fit(disp=False)

    def _forecast(self, steps: int, alpha: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        frame = self.results_.get_forecast(steps=steps).summary_frame(alpha=alpha)
        return (
            frame["mean"].to_numpy(),
            frame["mean_ci_lower"].to_numpy(),
            frame["mean_ci_upper"].to_numpy(),
        )

    def _fitted_values(self) -> pd.Series:
        return self.results_.fittedvalues

    def _params(self) -> Dict[str, float]:
        params = self.results_.params
        if not isinstance(params, pd.Series):
            params = pd.Series(params, index=self.results_.model.param_names)
        return {k: float(v) for k, v in params.items()}

    @property
    def bic(self) -> float:
        self._check_fitted()
        return float(self.results_.bic)

    def parameter_table(self) -> pd.DataFrame:
        """Coefficients with standard errors and p-values."""
        self._check_fitted()
        return pd.DataFrame({
            "coef": self.results_.params,
            "std_err": self.results_.bse,
            "p_value": self.results_.pvalues,
        })


def grid_search_arima(
    series: pd.Series,
    p_values: Iterable[int] = range(0, 3),
    d_values: Iterable[int] = range(0, 2),
    q_values: Iterable[int] = range(0, 3),
    P_values: Iterable[int] = (0,),
    D_values: Iterable[int] = (0,),
    Q_values: Iterable[int] = (0,),
    m: int = 12,
    confidence_level: float = 0.95
) -> Tuple[ArimaForecaster, pd.DataFrame]:
    """
    Manual order search: fit every (p,d,q)(P,D,Q)[m] combination, rank by AIC.

    Orders whose estimation fails are logged and kept in the table with
    status 'failed'.

    Returns:
        (best fitted forecaster, table sorted by AIC)

    Raises:
        ModelTrainingError: If no order could be fitted.
    """
    seen = set()
    candidates: List[Tuple[Tuple[int, int, int], Tuple[int, int, int, int]]] = []
    for p, d, q, P, D, Q in itertools.product(p_values, d_values, q_values, P_values, D_values, Q_values):
        seasonal = (P, D, Q, m) if (P, D, Q) != (0, 0, 0) else NO_SEASON
        key = ((p, d, q), seasonal)
        if key not in seen:
            seen.add(key)
            candidates.append(key)

    logger.info(f"Searching {len(candidates)} ARIMA orders by AIC")

    rows = []
    best: Optional[ArimaForecaster] = None

    for order, seasonal_order in candidates:
        forecaster = ArimaForecaster(order, seasonal_order, confidence_level=confidence_level)
        try:
            forecaster.fit(series)
        except ModelTrainingError as e:
            logger.warning(f"  {forecaster.name} skipped: {e.message}")
            rows.append({
                "model": forecaster.name, "order": order, "seasonal_order": seasonal_order,
                "aic": np.nan, "bic": np.nan, "status": "failed"
            })
            continue

        aic = forecaster.aic
        if not np.isfinite(aic):
            rows.append({
                "model": forecaster.name, "order": order, "seasonal_order": seasonal_order,
                "aic": np.nan, "bic": np.nan, "status": "failed"
            })
            continue

        rows.append({
            "model": forecaster.name, "order": order, "seasonal_order": seasonal_order,
            "aic": aic, "bic": forecaster.bic, "status": "ok"
        })

        if best is None or aic < best.aic:
            best = forecaster

    if best is None:
        raise ModelTrainingError("No ARIMA order in the search grid could be fitted")

    table = pd.DataFrame(rows).sort_values("aic", na_position="last").reset_index(drop=True)
    logger.info(f"Best searched order: {best.name} (AIC={best.aic:.2f})")

    return best, table


def grid_search_from_config(
    series: pd.Series,
    config: ForecastConfig = None,
    seasonal: bool = True
) -> Tuple[ArimaForecaster, pd.DataFrame]:
    """Run grid_search_arima with the bounds from a ForecastConfig."""
    config = config or DEFAULT_FORECAST_CONFIG
    return grid_search_arima(
        series,
        p_values=range(0, config.max_p + 1),
        d_values=range(0, config.max_d + 1),
        q_values=range(0, config.max_q + 1),
        P_values=range(0, config.max_P + 1) if seasonal else (0,),
        D_values=range(0, config.max_D + 1) if seasonal else (0,),
        Q_values=range(0, config.max_Q + 1) if seasonal else (0,),
        m=config.seasonal_period,
        confidence_level=config.confidence_level
    )


class AutoArimaForecaster(BaseForecaster):
    """
    Automatic order selection with pmdarima's stepwise auto_arima (AIC).
    """

    def __init__(
        self,
        seasonal: bool = True,
        m: int = 12,
        max_p: int = 3,
        max_q: int = 3,
        stepwise: bool = True,
        information_criterion: str = "aic",
        confidence_level: float = 0.95
    ):
        super().__init__(confidence_level)
        self.seasonal = seasonal
        self.m = m
        self.max_p = max_p
        self.max_q = max_q
        self.stepwise = stepwise
        self.information_criterion = information_criterion
        self.order: Optional[Tuple[int, int, int]] = None
        self.seasonal_order: Tuple[int, int, int, int] = NO_SEASON
        self.name = "Auto ARIMA"

    @property
    def burn_in(self) -> int:
        if self.order is None:
            return 0
        return self.order[1] + self.seasonal_order[1] * self.seasonal_order[3]

    def _fit(self, series: pd.Series):
        import pmdarima as pm

        model = pm.auto_arima(
            series,
            start_p=0,
            start_q=0,
            max_p=self.max_p,
            max_q=self.max_q,
            seasonal=self.seasonal,
            m=self.m if self.seasonal else 1,
            d=None,
            D=None,
            information_criterion=self.information_criterion,
            stepwise=self.stepwise,
            trace=False,
            error_action="ignore",
            suppress_warnings=True
        )

        self.order = tuple(model.order)
        seasonal_order = tuple(model.seasonal_order)
        self.seasonal_order = seasonal_order if tuple(seasonal_order[:3]) != (0, 0, 0) else NO_SEASON
        self.name = f"Auto {format_order(self.order, self.seasonal_order)}"
        return model

    def _aic(self) -> float:
        return float(self.results_.aic())

    def _forecast(self, steps: int, alpha: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        mean, conf_int = self.results_.predict(n_periods=steps, return_conf_int=True, alpha=alpha)
        conf_int = np.asarray(conf_int)
        return np.asarray(mean), conf_int[:, 0], conf_int[:, 1]

    def _fitted_values(self) -> pd.Series:
        return np.asarray(self.results_.predict_in_sample())

    def _params(self) -> Dict[str, float]:
        params = self.results_.params()
        if isinstance(params, pd.Series):
            return {k: float(v) for k, v in params.items()}
        return {f"param_{i}": float(v) for i, v in enumerate(params)}
