"""
End-to-end tests of the narrated walkthrough on generated data.
"""
import pandas as pd
import pytest

from london_crime.utils.config import ForecastConfig
from london_crime.utils.exceptions import ModelNotFittedError
from london_crime.walkthrough import BurglaryWalkthrough, export_result, main

# Keep the order search small so the suite stays fast
SMALL_SEARCH = dict(max_p=1, max_d=1, max_q=1, max_P=0, max_D=0, max_Q=0)


@pytest.fixture(scope="module")
def walkthrough_result(tmp_path_factory):
    walkthrough = BurglaryWalkthrough(
        config=ForecastConfig(category="Burglary", test_months=12, **SMALL_SEARCH),
        use_sample=True,
        data_dir=tmp_path_factory.mktemp("walkthrough")
    )
    return walkthrough.run(include_auto=False)


def test_split_holds_out_last_year(walkthrough_result):
    result = walkthrough_result

    assert len(result.series) == 96
    assert len(result.test) == 12
    assert len(result.train) == 84
    assert result.train.index[-1] < result.test.index[0]
    assert result.validation.is_valid


def test_every_model_is_compared(walkthrough_result):
    """Holt-Winters, best ETS, ARIMA, SARIMA and the AIC-search winner."""
    result = walkthrough_result

    assert len(result.forecasts) == 5
    assert "Holt-Winters (A,A)" in result.forecasts
    assert "ARIMA(1,1,1)" in result.forecasts
    assert "SARIMA(1,1,1)(0,1,1)[12]" in result.forecasts
    assert any(name.startswith("AIC search ") for name in result.forecasts)
    assert any(name.startswith("ETS(") for name in result.forecasts)

    for forecast in result.forecasts.values():
        assert forecast.predictions.index.equals(result.test.index)


def test_comparison_ranked_by_rmse(walkthrough_result):
    result = walkthrough_result

    assert set(result.comparison["model"]) == set(result.forecasts)
    assert result.comparison["rmse"].is_monotonic_increasing
    assert result.best_model == result.comparison.iloc[0]["model"]
    assert result.diagnostics_summary["model"] == result.best_model


def test_search_tables_and_summaries(walkthrough_result):
    result = walkthrough_result

    assert set(result.search_tables) == {"ETS search", "ARIMA search"}
    assert len(result.search_tables["ARIMA search"]) == 8
    assert result.decomposition_summary["seasonality"]["peak_month"] in ("Nov", "Dec", "Jan")
    assert set(result.decomposition_summary["stationarity"]) == {"raw", "differenced"}


def test_figures(walkthrough_result):
    expected = {
        "category_totals", "borough_ranking", "heatmap", "seasonal_profile",
        "borough_vs_city", "decomposition", "acf_pacf", "acf_pacf_differenced",
        "comparison", "residual_distribution", "fitted_vs_actual",
    }
    assert expected <= set(walkthrough_result.figures)


def test_forecasts_frame(walkthrough_result):
    frame = walkthrough_result.forecasts_frame()

    assert list(frame.columns)[0] == "actual"
    assert len(frame) == 12
    pd.testing.assert_series_equal(frame["actual"], walkthrough_result.test, check_names=False, check_freq=False)


def test_export_result_csv(walkthrough_result, tmp_path):
    paths = export_result(walkthrough_result, tmp_path, format="csv")

    assert len(paths) == 6
    assert all(p.exists() for p in paths)
    assert all(p.name.startswith("burglary_forecast_report_") for p in paths)

    intervals = pd.read_csv(tmp_path / "burglary_forecast_report_intervals.csv")
    assert list(intervals.columns) == ["month", "model", "prediction", "lower", "upper"]
    assert len(intervals) == 5 * 12


def test_intervals_frame(walkthrough_result):
    """One row per model and held-out month, bounds around the prediction."""
    intervals = walkthrough_result.intervals_frame()

    assert set(intervals["model"]) == set(walkthrough_result.forecasts)
    assert intervals.groupby("model").size().eq(12).all()
    assert (intervals["lower"] <= intervals["prediction"] + 1e-9).all()
    assert (intervals["prediction"] <= intervals["upper"] + 1e-9).all()


def test_steps_out_of_order_raise(tmp_path):
    """Models cannot be fitted before the series is aggregated."""
    walkthrough = BurglaryWalkthrough(use_sample=True, data_dir=tmp_path)

    with pytest.raises(ModelNotFittedError):
        walkthrough.fit_smoothing()
    with pytest.raises(ModelNotFittedError):
        walkthrough.validate()

    walkthrough.load_data()
    walkthrough.aggregate()
    with pytest.raises(ModelNotFittedError):
        walkthrough.compare()


def test_main_runs_on_sample(tmp_path, monkeypatch, capsys):
    """The command line entry point prints the ranking and writes the report."""
    monkeypatch.setattr("london_crime.walkthrough.DATA_RAW", tmp_path / "raw")
    monkeypatch.setattr("london_crime.walkthrough.setup_logging", lambda **kwargs: None)
    monkeypatch.setattr("london_crime.walkthrough.ForecastConfig",
                        lambda **kwargs: ForecastConfig(**kwargs, **SMALL_SEARCH))

    main(["--sample", "--no-auto", "--format", "csv", "--output-dir", str(tmp_path / "out")])

    out = capsys.readouterr().out
    assert "Best model:" in out
    assert list((tmp_path / "out").glob("*.csv"))
