"""
Tests for the Holt-Winters and ETS forecasters and the shared base behaviour.
"""
import numpy as np
import pandas as pd
import pytest

from london_crime.models.arima import ArimaForecaster
from london_crime.models.smoothing import ETSForecaster, HoltWintersForecaster, select_ets
from london_crime.utils.config import DEFAULT_FORECAST_CONFIG, ETSSpec
from london_crime.utils.exceptions import (
    ForecastError,
    ModelLoadError,
    ModelNotFittedError,
    ModelTrainingError,
)


def _assert_valid_forecast(result, train, steps):
    assert result.horizon == steps
    assert result.predictions.index[0] == train.index[-1] + pd.offsets.MonthBegin(1)
    assert result.predictions.index.freqstr == "MS"
    assert (result.lower <= result.predictions + 1e-9).all()
    assert (result.predictions <= result.upper + 1e-9).all()
    assert (result.lower >= 0).all()


# ===========================================
# Holt-Winters
# ===========================================

def test_holt_winters_forecast(monthly_series):
    """Fit on the series and forecast one year ahead."""
    model = HoltWintersForecaster(trend="add", seasonal="add").fit(monthly_series)
    result = model.forecast(12)

    assert model.name == "Holt-Winters (A,A)"
    _assert_valid_forecast(result, monthly_series, 12)
    assert np.isfinite(result.aic)
    assert set(result.params) >= {"smoothing_level", "smoothing_trend", "smoothing_seasonal"}


def test_holt_winters_intervals_widen_with_horizon(monthly_series):
    """Residual-based intervals grow with the square root of the horizon."""
    result = HoltWintersForecaster().fit(monthly_series).forecast(12)
    width = (result.upper - result.lower).to_numpy()

    assert np.all(np.diff(width) > 0)
    assert width[3] / width[0] == pytest.approx(2.0, rel=1e-6)


def test_holt_winters_damped_name():
    model = HoltWintersForecaster(trend="add", seasonal="mul", damped_trend=True)
    assert model.name == "Holt-Winters (Ad,M)"


def test_holt_winters_needs_two_seasons(monthly_series):
    with pytest.raises(ModelTrainingError):
        HoltWintersForecaster().fit(monthly_series.iloc[:20])


def test_forecasts_are_floored_at_zero():
    """A series trending to zero cannot be forecast below zero incidents."""
    index = pd.date_range("2015-01-01", periods=36, freq="MS")
    series = pd.Series(np.linspace(100, 10, 36) + np.random.default_rng(2).normal(0, 0.5, 36), index=index)

    result = HoltWintersForecaster(trend="add", seasonal=None).fit(series).forecast(24)

    assert (result.predictions >= 0).all()
    assert (result.lower >= 0).all()
    assert result.predictions.iloc[-1] == 0


# ===========================================
# ETS
# ===========================================

def test_ets_forecast_has_native_intervals(monthly_series):
    model = ETSForecaster(error="add", trend="add", seasonal="add").fit(monthly_series)
    result = model.forecast(12)

    assert model.name == "ETS(A,A,A)"
    _assert_valid_forecast(result, monthly_series, 12)
    assert (result.upper - result.lower > 0).all()


def test_ets_multiplicative_needs_positive_data(monthly_series):
    """Multiplicative components cannot be fitted with zero months."""
    series = monthly_series.copy()
    series.iloc[10] = 0

    with pytest.raises(ModelTrainingError):
        ETSForecaster(error="mul", trend="add", seasonal="mul").fit(series)


def test_ets_spec_labels():
    assert ETSSpec("add", "add", "add", damped_trend=True).label == "ETS(A,Ad,A)"
    assert ETSSpec("mul", None, "mul").label == "ETS(M,N,M)"
    assert ETSForecaster.from_spec(ETSSpec("add")).name == "ETS(A,N,N)"


def test_select_ets_keeps_lowest_aic(monthly_series):
    """The returned model is the lowest-AIC candidate in the table."""
    best, table = select_ets(monthly_series, DEFAULT_FORECAST_CONFIG.ets_candidates)

    ok = table[table["status"] == "ok"]
    assert len(table) == len(DEFAULT_FORECAST_CONFIG.ets_candidates)
    assert best.name == ok.iloc[0]["model"]
    assert best.aic == pytest.approx(ok["aic"].min())
    assert ok["aic"].is_monotonic_increasing


def test_select_ets_reports_failed_candidates(monthly_series):
    """Candidates that cannot be fitted are kept in the table as failed."""
    series = monthly_series.copy()
    series.iloc[3] = 0
    candidates = [ETSSpec("add", "add", "add"), ETSSpec("mul", "add", "mul")]

    best, table = select_ets(series, candidates)

    assert best.name == "ETS(A,A,A)"
    assert table.set_index("model").loc["ETS(M,A,M)", "status"] == "failed"


# ===========================================
# Shared behaviour
# ===========================================

def test_forecast_before_fit_raises():
    with pytest.raises(ModelNotFittedError):
        HoltWintersForecaster().forecast(12)


def test_invalid_horizon_raises(monthly_series):
    model = HoltWintersForecaster().fit(monthly_series)
    with pytest.raises(ForecastError):
        model.forecast(0)


def test_series_needs_datetime_index():
    with pytest.raises(ModelTrainingError):
        HoltWintersForecaster().fit(pd.Series(np.arange(48, dtype=float)))


def test_summary(monthly_series):
    summary = HoltWintersForecaster().fit(monthly_series).summary()

    assert summary["n_obs"] == 72
    assert summary["train_start"] == "2012-01"
    assert summary["train_end"] == "2017-12"


def test_save_and_load(monthly_series, tmp_path):
    """A saved forecaster produces the same forecast after loading."""
    model = HoltWintersForecaster().fit(monthly_series)
    path = model.save(tmp_path / "hw.joblib")

    loaded = HoltWintersForecaster.load(path)

    pd.testing.assert_series_equal(loaded.forecast(6).predictions, model.forecast(6).predictions)


def test_load_rejects_wrong_model_type(monthly_series, tmp_path):
    path = HoltWintersForecaster().fit(monthly_series).save(tmp_path / "hw.joblib")
    with pytest.raises(ModelLoadError):
        ArimaForecaster.load(path)


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(ModelLoadError):
        HoltWintersForecaster.load(tmp_path / "missing.joblib")
