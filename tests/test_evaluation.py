"""
Tests for accuracy metrics and the comparison of forecasts with later actuals.
"""
import numpy as np
import pandas as pd
import plotly.graph_objects as go
import pytest

from london_crime.models.evaluation import ModelComparison, calculate_accuracy
from london_crime.models.forecaster import ForecastResult
from london_crime.utils.exceptions import ForecastError, MissingDataError

INDEX = pd.date_range("2020-01-01", periods=6, freq="MS")
ACTUALS = pd.Series([100.0, 120.0, 110.0, 90.0, 95.0, 105.0], index=INDEX)


def _result(name, offset, width=10.0, index=INDEX, aic=100.0):
    predictions = ACTUALS.reindex(index) + offset
    return ForecastResult(
        model_name=name,
        predictions=predictions,
        lower=predictions - width,
        upper=predictions + width,
        confidence_level=0.95,
        aic=aic
    )


def test_perfect_forecast():
    metrics = calculate_accuracy(ACTUALS, ACTUALS, ACTUALS - 1, ACTUALS + 1)

    assert metrics.mae == 0
    assert metrics.rmse == 0
    assert metrics.mape == 0
    assert metrics.accuracy_pct == 100
    assert metrics.r2 == pytest.approx(1.0)
    assert metrics.coverage == 1.0


def test_known_metric_values():
    actual = pd.Series([10.0, 20.0, 30.0])
    predicted = pd.Series([12.0, 18.0, 33.0])

    metrics = calculate_accuracy(actual, predicted)

    assert metrics.mae == pytest.approx(7 / 3)
    assert metrics.mse == pytest.approx(17 / 3)
    assert metrics.rmse == pytest.approx(np.sqrt(17 / 3))
    assert metrics.bias == pytest.approx(1.0)
    assert metrics.mape == pytest.approx((0.2 + 0.1 + 0.1) / 3 * 100)
    assert metrics.coverage is None


def test_mape_ignores_zero_actuals():
    """Months with zero incidents are left out of the percentage error."""
    metrics = calculate_accuracy(pd.Series([0.0, 10.0]), pd.Series([5.0, 11.0]))
    assert metrics.mape == pytest.approx(10.0)


def test_coverage_counts_actuals_inside_interval():
    actual = pd.Series([10.0, 20.0, 30.0, 40.0])
    predicted = actual.copy()
    lower = pd.Series([9.0, 21.0, 29.0, 35.0])
    upper = pd.Series([11.0, 25.0, 31.0, 39.0])

    assert calculate_accuracy(actual, predicted, lower, upper).coverage == pytest.approx(0.5)


def test_length_mismatch_raises():
    with pytest.raises(ForecastError):
        calculate_accuracy(pd.Series([1.0, 2.0]), pd.Series([1.0]))


def test_comparison_ranks_by_rmse():
    """The model closest to the later actuals ranks first regardless of AIC."""
    comparison = ModelComparison(ACTUALS)
    comparison.add_all([
        _result("far", 20.0, aic=50.0),
        _result("close", 2.0, aic=200.0),
        _result("middle", -8.0, aic=100.0),
    ])

    table = comparison.table()

    assert table["model"].tolist() == ["close", "middle", "far"]
    assert table["rmse"].is_monotonic_increasing
    assert comparison.best_model() == "close"
    assert {"aic", "mae", "rmse", "mape", "bias", "coverage"} <= set(table.columns)


def test_comparison_best_by_other_metric():
    comparison = ModelComparison(ACTUALS)
    comparison.add(_result("narrow", 5.0, width=1.0))
    comparison.add(_result("wide", 6.0, width=50.0))

    assert comparison.best_model("rmse") == "narrow"
    assert comparison.best_model("coverage") == "wide"


def test_forecast_must_cover_test_months():
    """A forecast shorter than the held-out period cannot be scored."""
    comparison = ModelComparison(ACTUALS)
    with pytest.raises(ForecastError):
        comparison.add(_result("short", 0.0, index=INDEX[:3]))


def test_forecasts_frame_and_plot():
    history = pd.Series(np.arange(24, dtype=float), index=pd.date_range("2018-01-01", periods=24, freq="MS"))
    comparison = ModelComparison(ACTUALS, history=history)
    comparison.add(_result("a", 1.0))
    comparison.add(_result("b", -1.0))

    frame = comparison.forecasts_frame()
    assert list(frame.columns) == ["actual", "a", "b"]
    assert frame.index.equals(INDEX)

    fig = comparison.plot()
    assert isinstance(fig, go.Figure)
    # history, actuals, then a line and an interval band per model
    assert len(fig.data) == 6


def test_empty_comparison_raises():
    with pytest.raises(MissingDataError):
        ModelComparison(ACTUALS).table()
    with pytest.raises(MissingDataError):
        ModelComparison(pd.Series(dtype=float))
