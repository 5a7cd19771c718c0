"""
Model Diagnostics Module.
Residual analysis of a fitted forecaster: autocorrelation, normality,
heteroscedasticity and error breakdown by calendar month.
"""
import pandas as pd
import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from typing import Dict, Optional, Union
from dataclasses import dataclass
from scipy import stats

from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.tsa.stattools import acf

from london_crime.analytics.decomposition import MONTH_NAMES
from london_crime.models.forecaster import BaseForecaster, ForecastResult
from london_crime.utils.exceptions import MissingDataError, ModelNotFittedError


@dataclass
class DiagnosticResults:
    """Container for diagnostic results."""
    model_name: str
    residuals: pd.Series
    fitted: pd.Series
    actuals: pd.Series
    metrics_by_month: pd.DataFrame
    ljung_box: Dict[str, float]
    normality_test: Dict[str, float]
    heteroscedasticity: Optional[bool]


class ModelDiagnostics:
    """
    Residual diagnostics for a fitted monthly forecaster.

    A well-specified model leaves residuals that look like white noise:
    no autocorrelation, roughly normal, constant variance.
    """

    def __init__(self, lags: int = 12):
        self.lags = lags
        self.results: Optional[DiagnosticResults] = None

    def analyze(self, model: Union[BaseForecaster, ForecastResult]) -> DiagnosticResults:
        """
        Perform diagnostic analysis on in-sample residuals.

        Args:
            model: Fitted forecaster, or a ForecastResult carrying fitted
                values and residuals

        Returns:
            DiagnosticResults with all analysis
        """
        if isinstance(model, BaseForecaster):
            if not model.is_fitted:
                raise ModelNotFittedError(model.name)
            name = model.name
            residuals = model.residuals
            fitted = model.fitted_values
        else:
            name = model.model_name
            residuals = model.residuals
            fitted = model.fitted

        if residuals is None or fitted is None:
            raise MissingDataError(f"in-sample residuals for {name}")

        residuals = residuals.dropna()
        fitted = fitted.reindex(residuals.index)
        actuals = fitted + residuals

        if len(residuals) < 3:
            raise MissingDataError(f"at least 3 in-sample residuals for {name}")

        # Ljung-Box on residual autocorrelation up to the seasonal lag
        lags = max(1, min(self.lags, len(residuals) // 2 - 1))
        lb = acorr_ljungbox(residuals, lags=[lags], return_df=True)
        lb_p = float(lb["lb_pvalue"].iloc[0])
        ljung_box = {
            "lag": lags,
            "statistic": float(lb["lb_stat"].iloc[0]),
            "p_value": lb_p,
            "is_white_noise": lb_p > 0.05
        }

        stat, p_value = stats.shapiro(residuals[:5000])  # Limit for performance
        normality_test = {"statistic": float(stat), "p_value": float(p_value)}

        # Variance in low vs high fitted ranges
        median_fit = fitted.median()
        low_residuals = residuals[fitted < median_fit]
        high_residuals = residuals[fitted >= median_fit]
        if len(low_residuals) > 10 and len(high_residuals) > 10:
            _, levene_p = stats.levene(low_residuals, high_residuals)
            heteroscedasticity = bool(levene_p < 0.05)  # True = heteroscedastic
        else:
            heteroscedasticity = None

        self.results = DiagnosticResults(
            model_name=name,
            residuals=residuals,
            fitted=fitted,
            actuals=actuals,
            metrics_by_month=self._metrics_by_month(residuals, actuals),
            ljung_box=ljung_box,
            normality_test=normality_test,
            heteroscedasticity=heteroscedasticity
        )

        return self.results

    @staticmethod
    def _metrics_by_month(residuals: pd.Series, actuals: pd.Series) -> pd.DataFrame:
        """Calculate error metrics grouped by calendar month."""
        frame = pd.DataFrame({"residual": residuals, "actual": actuals})
        frame["calendar_month"] = frame.index.month

        metrics = []
        for month, group in frame.groupby("calendar_month"):
            res = group["residual"]
            act = group["actual"]
            if (act > 0).any():
                mape = np.abs(res / act.replace(0, np.nan)).mean() * 100
            else:
                mape = np.nan

            metrics.append({
                "calendar_month": month,
                "month_name": MONTH_NAMES[month - 1],
                "mae": np.abs(res).mean(),
                "rmse": np.sqrt((res ** 2).mean()),
                "bias": res.mean(),
                "mape": mape,
                "count": len(res)
            })

        return pd.DataFrame(metrics)

    def _check_results(self):
        if self.results is None:
            raise ModelNotFittedError("diagnostics")

    def plot_residuals_distribution(self) -> go.Figure:
        """Plot residual distribution with normal curve overlay and Q-Q plot."""
        self._check_results()

        residuals = self.results.residuals

        fig = make_subplots(
            rows=1, cols=2,
            subplot_titles=("Residual Distribution", "Q-Q Plot"),
            column_widths=[0.6, 0.4]
        )

        fig.add_trace(
            go.Histogram(
                x=residuals,
                name="Residuals",
                nbinsx=30,
                histnorm="probability density",
                marker_color="#667eea",
                opacity=0.7
            ),
            row=1, col=1
        )

        x_range = np.linspace(residuals.min(), residuals.max(), 100)
        normal_pdf = stats.norm.pdf(x_range, residuals.mean(), residuals.std())

        fig.add_trace(
            go.Scatter(
                x=x_range,
                y=normal_pdf,
                name="Normal Distribution",
                line=dict(color="#ef4444", width=2)
            ),
            row=1, col=1
        )

        (theoretical_quantiles, sample_quantiles), (slope, intercept, _) = stats.probplot(residuals)

        fig.add_trace(
            go.Scatter(
                x=theoretical_quantiles,
                y=sample_quantiles,
                mode="markers",
                name="Q-Q",
                marker=dict(color="#667eea", size=5)
            ),
            row=1, col=2
        )

        line_x = np.array([theoretical_quantiles.min(), theoretical_quantiles.max()])
        fig.add_trace(
            go.Scatter(
                x=line_x,
                y=slope * line_x + intercept,
                mode="lines",
                name="Reference",
                line=dict(color="#ef4444", dash="dash")
            ),
            row=1, col=2
        )

        fig.update_layout(
            title=f"Residual Analysis: {self.results.model_name}",
            showlegend=True,
            height=400
        )

        fig.update_xaxes(title_text="Residual", row=1, col=1)
        fig.update_xaxes(title_text="Theoretical Quantiles", row=1, col=2)
        fig.update_yaxes(title_text="Density", row=1, col=1)
        fig.update_yaxes(title_text="Sample Quantiles", row=1, col=2)

        return fig

    def plot_fitted_vs_actual(self) -> go.Figure:
        """Plot in-sample fitted values over the observed series."""
        self._check_results()

        fig = go.Figure()

        fig.add_trace(go.Scatter(
            x=self.results.actuals.index,
            y=self.results.actuals,
            name="Observed",
            line=dict(color="#111827", width=2)
        ))

        fig.add_trace(go.Scatter(
            x=self.results.fitted.index,
            y=self.results.fitted,
            name="Fitted",
            line=dict(color="#667eea", width=2, dash="dash")
        ))

        fig.update_layout(
            title=f"Fitted vs Observed: {self.results.model_name}",
            xaxis_title="Month",
            yaxis_title="Incidents",
            height=400,
            showlegend=True
        )

        return fig

    def plot_residuals_over_time(self) -> go.Figure:
        """Plot residuals over time to detect patterns."""
        self._check_results()

        residuals = self.results.residuals

        fig = go.Figure()

        fig.add_trace(go.Scatter(
            x=residuals.index,
            y=residuals,
            mode="lines+markers",
            name="Residuals",
            line=dict(color="#667eea", width=1),
            marker=dict(size=4)
        ))

        fig.add_hline(y=0, line_dash="dash", line_color="#ef4444")

        rolling_mean = residuals.rolling(12).mean()
        fig.add_trace(go.Scatter(
            x=residuals.index,
            y=rolling_mean,
            mode="lines",
            name="12-Month Rolling Mean",
            line=dict(color="#10b981", width=2)
        ))

        fig.update_layout(
            title=f"Residuals Over Time: {self.results.model_name}",
            xaxis_title="Month",
            yaxis_title="Residual (Observed - Fitted)",
            height=400,
            showlegend=True
        )

        return fig

    def plot_residual_acf(self) -> go.Figure:
        """Residual autocorrelation with approximate 95% bounds."""
        self._check_results()

        residuals = self.results.residuals
        n_lags = max(1, min(24, len(residuals) // 2 - 1))
        acf_values = acf(residuals, nlags=n_lags)
        bound = 1.96 / np.sqrt(len(residuals))
        lags = np.arange(len(acf_values))

        fig = go.Figure()
        fig.add_trace(go.Bar(x=lags, y=acf_values, name="ACF", marker_color="#667eea"))
        fig.add_hline(y=bound, line_dash="dash", line_color="#ef4444")
        fig.add_hline(y=-bound, line_dash="dash", line_color="#ef4444")

        fig.update_layout(
            title=f"Residual ACF: {self.results.model_name}",
            xaxis_title="Lag (months)",
            yaxis_title="Autocorrelation",
            height=350,
            showlegend=False
        )

        return fig

    def plot_error_by_month(self) -> go.Figure:
        """Plot MAE and bias by calendar month."""
        self._check_results()

        df = self.results.metrics_by_month.sort_values("calendar_month")

        fig = make_subplots(
            rows=1, cols=2,
            subplot_titles=("MAE by Month", "Bias by Month")
        )

        fig.add_trace(
            go.Bar(x=df["month_name"], y=df["mae"], name="MAE", marker_color="#667eea"),
            row=1, col=1
        )
        fig.add_trace(
            go.Bar(x=df["month_name"], y=df["bias"], name="Bias", marker_color="#f59e0b"),
            row=1, col=2
        )

        fig.update_layout(
            title="In-Sample Error by Calendar Month",
            height=400,
            showlegend=False
        )

        return fig

    def get_diagnostic_summary(self) -> Dict:
        """Get a summary of diagnostic results."""
        self._check_results()

        res = self.results.residuals
        by_month = self.results.metrics_by_month

        summary = {
            "model": self.results.model_name,
            "overall_metrics": {
                "mae": float(np.abs(res).mean()),
                "rmse": float(np.sqrt((res ** 2).mean())),
                "bias": float(res.mean()),
                "std": float(res.std())
            },
            "ljung_box": self.results.ljung_box,
            "normality": {
                "is_normal": self.results.normality_test["p_value"] > 0.05,
                "p_value": self.results.normality_test["p_value"]
            },
            "heteroscedasticity": self.results.heteroscedasticity,
            "worst_month": None
        }

        if by_month["mae"].notna().any():
            worst = by_month.loc[by_month["mae"].idxmax()]
            summary["worst_month"] = {
                "month": worst["month_name"],
                "mae": float(worst["mae"])
            }

        return summary
