"""
Time Series Decomposition Module.
Provides trend, seasonality, and residual analysis with ACF/PACF plots
for monthly incident series.
"""
import pandas as pd
import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from typing import Dict, Optional, Tuple
from dataclasses import dataclass

from statsmodels.tsa.seasonal import seasonal_decompose
from statsmodels.tsa.stattools import acf, pacf, adfuller

from london_crime.utils.exceptions import InvalidConfigurationError, ModelNotFittedError

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


@dataclass
class DecompositionResult:
    """Container for decomposition results."""
    trend: pd.Series
    seasonal: pd.Series
    residual: pd.Series
    observed: pd.Series
    period: int
    model: str


@dataclass
class StationarityResult:
    """Container for stationarity test results."""
    is_stationary: bool
    adf_statistic: float
    p_value: float
    critical_values: Dict[str, float]
    n_lags: int


class TimeSeriesDecomposer:
    """
    Time series decomposition and analysis.
    Extracts trend, seasonality, and residual components.
    """

    def __init__(self):
        self.decomposition: Optional[DecompositionResult] = None
        self.stationarity: Optional[StationarityResult] = None

    def decompose(
        self,
        series: pd.Series,
        period: int = 12,  # annual seasonality for monthly data
        model: str = "additive"
    ) -> DecompositionResult:
        """
        Decompose time series into trend, seasonality, and residual.

        Args:
            series: Monthly series indexed by month start
            period: Seasonality period (12 for annual with monthly data)
            model: 'additive' or 'multiplicative'

        Returns:
            DecompositionResult with components
        """
        if len(series) < 2 * period:
            raise InvalidConfigurationError(
                "period", period,
                reason=f"Need at least two full cycles ({2 * period} points), got {len(series)}"
            )

        series = series.sort_index().interpolate(method="linear")

        try:
            result = seasonal_decompose(
                series,
                period=period,
                model=model,
                extrapolate_trend="freq"
            )
        except ValueError as e:
            raise InvalidConfigurationError("model", model, reason=str(e)) from e

        self.decomposition = DecompositionResult(
            trend=pd.Series(result.trend, index=series.index),
            seasonal=pd.Series(result.seasonal, index=series.index),
            residual=pd.Series(result.resid, index=series.index),
            observed=pd.Series(result.observed, index=series.index),
            period=period,
            model=model
        )

        return self.decomposition

    def test_stationarity(
        self,
        series: pd.Series,
        max_lags: int = None
    ) -> StationarityResult:
        """
        Test for stationarity using Augmented Dickey-Fuller test.

        Args:
            series: The time series
            max_lags: Maximum lags to include in test

        Returns:
            StationarityResult with test statistics
        """
        series = series.dropna()

        try:
            result = adfuller(series, maxlag=max_lags, autolag="AIC")
        except ValueError as e:
            raise InvalidConfigurationError("series", series.name, reason=f"ADF test failed: {e}") from e

        self.stationarity = StationarityResult(
            is_stationary=result[1] < 0.05,
            adf_statistic=float(result[0]),
            p_value=float(result[1]),
            critical_values={
                "1%": result[4]["1%"],
                "5%": result[4]["5%"],
                "10%": result[4]["10%"]
            },
            n_lags=result[2]
        )

        return self.stationarity

    @staticmethod
    def difference(series: pd.Series, d: int = 1, D: int = 0, period: int = 12) -> pd.Series:
        """
        Apply ordinary and seasonal differencing.

        Args:
            series: Input series
            d: Number of first differences
            D: Number of seasonal differences
            period: Seasonal lag
        """
        result = series.copy()
        for _ in range(D):
            result = result.diff(period)
        for _ in range(d):
            result = result.diff()
        return result.dropna()

    def calculate_acf_pacf(
        self,
        series: pd.Series,
        n_lags: int = 36
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Calculate ACF and PACF values.

        PACF needs fewer lags than half the sample, so n_lags is capped.

        Args:
            series: Series to analyze
            n_lags: Number of lags to compute

        Returns:
            Tuple of (acf_values, acf_conf, pacf_values, pacf_conf)
        """
        series = series.dropna()
        n_lags = min(n_lags, len(series) // 2 - 1)

        acf_values, acf_conf = acf(series, nlags=n_lags, alpha=0.05)
        pacf_values, pacf_conf = pacf(series, nlags=n_lags, alpha=0.05)

        return acf_values, acf_conf, pacf_values, pacf_conf

    def _components(self) -> DecompositionResult:
        if self.decomposition is None:
            raise ModelNotFittedError("decomposition")
        return self.decomposition

    def plot_decomposition(self) -> go.Figure:
        """Observed series and its three components, stacked."""
        d = self._components()

        panels = [
            ("Observed", d.observed, dict(mode="lines", line=dict(color="#667eea", width=1.5))),
            ("Trend", d.trend, dict(mode="lines", line=dict(color="#10b981", width=2))),
            ("Seasonal", d.seasonal, dict(mode="lines", line=dict(color="#f59e0b", width=1.5))),
            ("Residual", d.residual, dict(mode="markers", marker=dict(color="#ef4444", size=4, opacity=0.6))),
        ]

        fig = make_subplots(
            rows=len(panels), cols=1,
            shared_xaxes=True,
            subplot_titles=[name for name, _, _ in panels],
            vertical_spacing=0.05
        )
        for row, (name, component, style) in enumerate(panels, start=1):
            fig.add_trace(go.Scatter(x=component.index, y=component, name=name, **style), row=row, col=1)

        fig.update_layout(
            title=f"{d.model.title()} decomposition, period {d.period} months",
            height=700,
            showlegend=False
        )

        return fig

    def plot_seasonal_pattern(self) -> go.Figure:
        """Plot the average observed value and seasonal effect per calendar month."""
        d = self._components()
        df = pd.DataFrame({
            "calendar_month": d.observed.index.month,
            "seasonal": d.seasonal.values,
            "observed": d.observed.values
        })

        grouped = df.groupby("calendar_month").agg({
            "seasonal": ["mean", "std"],
            "observed": ["mean", "std"]
        }).reset_index()

        grouped.columns = ["calendar_month", "seasonal_mean", "seasonal_std",
                           "observed_mean", "observed_std"]

        x_vals = [MONTH_NAMES[m - 1] for m in grouped["calendar_month"]]

        fig = make_subplots(specs=[[{"secondary_y": True}]])

        fig.add_trace(go.Scatter(
            x=x_vals,
            y=grouped["observed_mean"],
            name="Average Observed",
            line=dict(color="#667eea", width=2),
            mode="lines+markers"
        ), secondary_y=False)

        fig.add_trace(go.Scatter(
            x=x_vals + x_vals[::-1],
            y=list(grouped["observed_mean"] + grouped["observed_std"].fillna(0)) +
              list(grouped["observed_mean"] - grouped["observed_std"].fillna(0))[::-1],
            fill="toself",
            fillcolor="rgba(102, 126, 234, 0.2)",
            line=dict(color="rgba(255,255,255,0)"),
            name="±1 Std Dev",
            showlegend=True
        ), secondary_y=False)

        fig.add_trace(go.Bar(
            x=x_vals,
            y=grouped["seasonal_mean"],
            name="Seasonal Effect",
            marker_color="#f59e0b",
            opacity=0.5
        ), secondary_y=True)

        fig.update_layout(
            title="Seasonal Pattern by Calendar Month",
            xaxis_title="Month",
            height=400,
            showlegend=True
        )
        fig.update_yaxes(title_text="Incidents", secondary_y=False)
        fig.update_yaxes(title_text="Seasonal Effect", secondary_y=True)

        return fig

    def plot_acf_pacf(
        self,
        series: pd.Series,
        n_lags: int = 36,
        title: str = None
    ) -> go.Figure:
        """
        Correlograms used to read off AR and MA orders.

        Spikes at lag 12 (and 24, 36) point to seasonal terms.
        """
        acf_vals, _, pacf_vals, _ = self.calculate_acf_pacf(series, n_lags)
        bound = 1.96 / np.sqrt(len(series.dropna()))

        panels = [("ACF", acf_vals, "#667eea"), ("PACF", pacf_vals, "#10b981")]
        fig = make_subplots(
            rows=2, cols=1,
            subplot_titles=("Autocorrelation (ACF)", "Partial autocorrelation (PACF)"),
            vertical_spacing=0.15
        )

        for row, (name, values, color) in enumerate(panels, start=1):
            fig.add_trace(go.Bar(x=np.arange(len(values)), y=values, name=name, marker_color=color), row=row, col=1)
            for y in (bound, -bound):
                fig.add_hline(y=y, line_dash="dash", line_color="#ef4444", row=row, col=1)
            fig.add_hline(y=0, line_color="black", row=row, col=1)
            fig.update_xaxes(title_text="Lag (months)", row=row, col=1)
            fig.update_yaxes(title_text=name, row=row, col=1)

        fig.update_layout(
            title=title or f"ACF / PACF: {series.name or 'series'}",
            height=500,
            showlegend=False
        )

        return fig

    def plot_trend_analysis(self) -> go.Figure:
        """Plot trend with moving averages."""
        d = self._components()

        fig = go.Figure()

        fig.add_trace(go.Scatter(
            x=d.observed.index, y=d.observed,
            name="Observed",
            line=dict(color="#9ca3af", width=1),
            opacity=0.6
        ))

        fig.add_trace(go.Scatter(
            x=d.trend.index, y=d.trend,
            name="Trend",
            line=dict(color="#667eea", width=2)
        ))

        ma_3m = d.observed.rolling(window=3).mean()
        fig.add_trace(go.Scatter(
            x=d.observed.index, y=ma_3m,
            name="3-Month MA",
            line=dict(color="#10b981", width=2)
        ))

        ma_12m = d.observed.rolling(window=12).mean()
        fig.add_trace(go.Scatter(
            x=d.observed.index, y=ma_12m,
            name="12-Month MA",
            line=dict(color="#f59e0b", width=2)
        ))

        fig.update_layout(
            title="Trend Analysis with Moving Averages",
            xaxis_title="Month",
            yaxis_title="Incidents",
            height=450,
            showlegend=True
        )

        return fig

    def get_decomposition_summary(self) -> Dict:
        """Get summary statistics from decomposition."""
        d = self._components()

        trend_clean = d.trend.dropna()
        start = trend_clean.iloc[0]
        trend_change = (trend_clean.iloc[-1] - start) / start * 100 if start != 0 else 0.0

        # Strength measures (Hyndman & Athanasopoulos)
        var_residual = d.residual.var()
        deseasonalised = d.observed - d.seasonal
        var_deseasonalised = deseasonalised.var()
        trend_strength = max(0, 1 - var_residual / var_deseasonalised) if var_deseasonalised > 0 else 0

        detrended = d.observed - d.trend
        var_detrended = detrended.var()
        seasonal_strength = max(0, 1 - var_residual / var_detrended) if var_detrended > 0 else 0

        peak_month = int(d.seasonal.groupby(d.seasonal.index.month).mean().idxmax())
        trough_month = int(d.seasonal.groupby(d.seasonal.index.month).mean().idxmin())

        return {
            "model": d.model,
            "period": d.period,
            "trend": {
                "start_value": float(trend_clean.iloc[0]),
                "end_value": float(trend_clean.iloc[-1]),
                "change_percent": float(trend_change),
                "direction": "increasing" if trend_change > 0 else "decreasing",
                "strength": float(trend_strength)
            },
            "seasonality": {
                "strength": float(seasonal_strength),
                "max_effect": float(d.seasonal.max()),
                "min_effect": float(d.seasonal.min()),
                "range": float(d.seasonal.max() - d.seasonal.min()),
                "peak_month": MONTH_NAMES[peak_month - 1],
                "trough_month": MONTH_NAMES[trough_month - 1]
            },
            "residual": {
                "mean": float(d.residual.mean()),
                "std": float(d.residual.std()),
                "max": float(d.residual.max()),
                "min": float(d.residual.min())
            }
        }
