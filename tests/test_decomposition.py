"""
Tests for decomposition, stationarity and autocorrelation analysis.
"""
import numpy as np
import pandas as pd
import plotly.graph_objects as go
import pytest

from london_crime.analytics.decomposition import TimeSeriesDecomposer
from london_crime.utils.exceptions import InvalidConfigurationError, ModelNotFittedError


def test_decompose_components_align(monthly_series):
    """Components share the series index; the trend is extrapolated to the ends."""
    decomposer = TimeSeriesDecomposer()
    result = decomposer.decompose(monthly_series, period=12)

    for component in (result.trend, result.seasonal, result.residual, result.observed):
        assert component.index.equals(monthly_series.index)
    assert not result.trend.isna().any()
    assert result.period == 12
    assert np.allclose(result.trend + result.seasonal + result.residual, monthly_series)


def test_decomposition_summary_finds_winter_peak():
    """A series with a December spike and a June dip, trending down."""
    index = pd.date_range("2012-01-01", periods=72, freq="MS")
    pattern = np.where(index.month == 12, 60.0, np.where(index.month == 6, -60.0, 0.0))
    noise = np.random.default_rng(3).normal(0, 2, size=72)
    series = pd.Series(300 - 1.0 * np.arange(72) + pattern + noise, index=index)

    decomposer = TimeSeriesDecomposer()
    decomposer.decompose(series)
    summary = decomposer.get_decomposition_summary()

    assert summary["seasonality"]["peak_month"] == "Dec"
    assert summary["seasonality"]["trough_month"] == "Jun"
    assert summary["trend"]["direction"] == "decreasing"
    assert 0 <= summary["seasonality"]["strength"] <= 1


def test_decompose_needs_two_cycles(monthly_series):
    with pytest.raises(InvalidConfigurationError):
        TimeSeriesDecomposer().decompose(monthly_series.iloc[:20], period=12)


def test_white_noise_is_stationary():
    """ADF rejects a unit root for white noise."""
    rng = np.random.default_rng(0)
    noise = pd.Series(rng.normal(size=200), index=pd.date_range("2000-01-01", periods=200, freq="MS"))

    result = TimeSeriesDecomposer().test_stationarity(noise)

    assert result.is_stationary
    assert result.p_value < 0.05
    assert set(result.critical_values) == {"1%", "5%", "10%"}


def test_difference_drops_burn_in(monthly_series):
    """First plus seasonal differencing loses 1 + 12 observations."""
    diffed = TimeSeriesDecomposer.difference(monthly_series, d=1, D=1, period=12)

    assert len(diffed) == len(monthly_series) - 13
    expected = (monthly_series.diff(12)).diff().dropna()
    assert np.allclose(diffed.values, expected.values)


def test_acf_pacf_lags_are_capped():
    """PACF cannot use half the sample or more, so lags are capped."""
    series = pd.Series(np.random.default_rng(1).normal(size=40), index=pd.date_range("2000-01-01", periods=40, freq="MS"))

    acf_vals, acf_conf, pacf_vals, pacf_conf = TimeSeriesDecomposer().calculate_acf_pacf(series, n_lags=36)

    assert len(acf_vals) == 20
    assert len(pacf_vals) == 20
    assert acf_conf.shape == (20, 2)


def test_plots_need_decomposition():
    decomposer = TimeSeriesDecomposer()
    with pytest.raises(ModelNotFittedError):
        decomposer.plot_decomposition()
    with pytest.raises(ModelNotFittedError):
        decomposer.get_decomposition_summary()


def test_plots_return_figures(monthly_series):
    decomposer = TimeSeriesDecomposer()
    decomposer.decompose(monthly_series)

    figures = [
        decomposer.plot_decomposition(),
        decomposer.plot_seasonal_pattern(),
        decomposer.plot_trend_analysis(),
        decomposer.plot_acf_pacf(monthly_series, n_lags=24),
    ]
    assert all(isinstance(fig, go.Figure) for fig in figures)


def test_constant_series_stationarity_raises():
    """ADF cannot be computed on a flat series."""
    flat = pd.Series(50.0, index=pd.date_range("2015-01-01", periods=48, freq="MS"))
    with pytest.raises(InvalidConfigurationError):
        TimeSeriesDecomposer().test_stationarity(flat)


def test_multiplicative_decomposition_rejects_zero_months(monthly_series):
    """Months with no incidents cannot be decomposed multiplicatively."""
    series = monthly_series.copy()
    series.iloc[5] = 0
    with pytest.raises(InvalidConfigurationError):
        TimeSeriesDecomposer().decompose(series, model="multiplicative")
