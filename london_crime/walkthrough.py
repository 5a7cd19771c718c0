"""
Narrated forecasting walkthrough for one London crime series.

Load the ward-level export, aggregate to a city-wide monthly series, look at
its structure, fit exponential smoothing and ARIMA-family models on all but
the last year, and compare each forecast with the months held out.

Usage:
    python -m london_crime.walkthrough --sample
"""
import argparse
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
import logging

import pandas as pd
import plotly.graph_objects as go

from london_crime.analytics.decomposition import TimeSeriesDecomposer
from london_crime.analytics.diagnostics import ModelDiagnostics
from london_crime.analytics.exploration import CrimeExplorer
from london_crime.data.aggregator import CrimeAggregator
from london_crime.data.loader import CrimeDataLoader, create_sample_data
from london_crime.data.validator import (
    DataValidator,
    ValidationResult,
    check_reshape_preserves_totals,
    check_row_count,
    check_running_total_monotonic,
    check_unique_keys,
)
from london_crime.models.arima import ArimaForecaster, AutoArimaForecaster, grid_search_from_config
from london_crime.models.evaluation import ModelComparison
from london_crime.models.forecaster import BaseForecaster, ForecastResult
from london_crime.models.smoothing import HoltWintersForecaster, select_ets
from london_crime.utils.config import DATA_RAW, ForecastConfig
from london_crime.utils.exceptions import ModelNotFittedError
from london_crime.utils.export import ReportExporter
from london_crime.utils.logging_config import StepLogger, setup_logging
from london_crime.utils.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class WalkthroughResult:
    """Everything the walkthrough produced."""
    category: str
    series: pd.Series
    train: pd.Series
    test: pd.Series
    validation: ValidationResult
    forecasts: Dict[str, ForecastResult]
    comparison: pd.DataFrame
    best_model: str
    search_tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    decomposition_summary: Dict = field(default_factory=dict)
    diagnostics_summary: Dict = field(default_factory=dict)
    figures: Dict[str, go.Figure] = field(default_factory=dict)

    def forecasts_frame(self) -> pd.DataFrame:
        """Held-out actuals next to every model's predictions."""
        frame = pd.DataFrame({"actual": self.test})
        for name, result in self.forecasts.items():
            frame[name] = result.predictions.reindex(self.test.index)
        return frame

    def intervals_frame(self) -> pd.DataFrame:
        """Every forecast with its interval bounds, one row per model and month."""
        frames = [result.to_frame() for result in self.forecasts.values()]
        intervals = pd.concat(frames).rename_axis("month").reset_index()
        return intervals.sort_values(["model", "month"]).reset_index(drop=True)


class BurglaryWalkthrough:
    """
    Step-by-step forecasting of a city-wide monthly crime series.

    Each public method is one narrated step and stores its output on the
    instance, so steps can be run one at a time (e.g. from the Streamlit page)
    or all at once with ``run()``.
    """

    def __init__(
        self,
        config: ForecastConfig = None,
        data_path: Path = None,
        url: str = None,
        use_sample: bool = False,
        data_dir: Path = None
    ):
        """
        Args:
            config: Forecast configuration. Category and test months default
                to the environment settings.
            data_path: Explicit CSV export to read (skips the download).
            url: Source URL for the download.
            use_sample: Generate and use the synthetic export instead.
            data_dir: Directory for the cached or generated raw file.
        """
        self.config = config or ForecastConfig(
            category=settings.forecast_category,
            test_months=settings.test_months
        )
        self.data_path = Path(data_path) if data_path else None
        self.use_sample = use_sample
        self.data_dir = Path(data_dir) if data_dir else DATA_RAW
        self.loader = CrimeDataLoader(data_dir=self.data_dir, url=url)
        self.steps = StepLogger()

        self.long: Optional[pd.DataFrame] = None
        self.validation: Optional[ValidationResult] = None
        self.aggregator: Optional[CrimeAggregator] = None
        self.series: Optional[pd.Series] = None
        self.train: Optional[pd.Series] = None
        self.test: Optional[pd.Series] = None
        self.decomposer = TimeSeriesDecomposer()
        self.forecasters: Dict[str, BaseForecaster] = {}
        self.forecasts: Dict[str, ForecastResult] = {}
        self.search_tables: Dict[str, pd.DataFrame] = {}
        self.figures: Dict[str, go.Figure] = {}
        self.comparison: Optional[ModelComparison] = None
        self.diagnostics = ModelDiagnostics(lags=self.config.seasonal_period)
        self.decomposition_summary: Dict = {}
        self.diagnostics_summary: Dict = {}

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def load_data(self) -> pd.DataFrame:
        """Step 1: read the export and reshape it to one row per ward, category and month."""
        path = self.data_path
        if path is None and self.use_sample:
            path = create_sample_data(self.data_dir)

        self.long = self.loader.load(filepath=path)
        wide = self.loader.wide

        n_months = self.long["month"].nunique()
        check_row_count(self.long, len(wide) * n_months)
        check_reshape_preserves_totals(wide, self.long)

        sample_ward = wide["ward_code"].iloc[0]
        check_reshape_preserves_totals(wide, self.long, ward_code=sample_ward, category=self.config.category)

        self.steps.log_step("load_data", {
            "wide_rows": len(wide),
            "long_rows": len(self.long),
            "months": n_months,
            "first_month": f"{self.long['month'].min():%Y-%m}",
            "last_month": f"{self.long['month'].max():%Y-%m}",
        })
        return self.long

    def validate(self) -> ValidationResult:
        """Step 2: data quality checks on the long table."""
        self._require(self.long, "load_data")

        self.validation = DataValidator(seasonal_period=self.config.seasonal_period).validate(self.long)
        self.steps.log_step("validate", {
            "errors": len(self.validation.errors),
            "warnings": len(self.validation.warnings),
        }, success=self.validation.is_valid)

        self.validation.raise_for_errors()
        return self.validation

    def aggregate(self) -> pd.Series:
        """Step 3: city-wide monthly series for the configured category, split into train and test."""
        self._require(self.long, "load_data")

        self.aggregator = CrimeAggregator(self.long)
        check_unique_keys(
            self.aggregator.by_borough_category_month(),
            ["borough", "major_category", "month"]
        )

        self.series = self.aggregator.city_series(self.config.category)
        check_running_total_monotonic(self.series)

        self.train, self.test = self.aggregator.train_test_split(self.series, self.config.test_months)

        self.steps.log_step("aggregate", {
            "category": self.config.category,
            "months": len(self.series),
            "total": int(self.series.sum()),
            "train_months": len(self.train),
            "test_months": len(self.test),
        })
        return self.series

    def explore(self) -> Dict[str, go.Figure]:
        """Step 4: exploration figures."""
        self._require(self.aggregator, "aggregate")

        explorer = CrimeExplorer(self.aggregator)
        figures = explorer.overview(self.config.category)
        top_borough = self.aggregator.borough_totals(self.config.category)["borough"].iloc[0]
        figures["borough_vs_city"] = explorer.plot_borough_vs_city(self.config.category, top_borough)

        self.figures.update(figures)
        self.steps.log_step("explore", {"figures": len(figures), "top_borough": top_borough})
        return figures

    def decompose(self) -> Dict:
        """Step 5: trend and seasonality, stationarity and autocorrelation of the training series."""
        self._require(self.train, "aggregate")
        m = self.config.seasonal_period

        self.decomposer.decompose(self.train, period=m)
        summary = self.decomposer.get_decomposition_summary()

        raw = self.decomposer.test_stationarity(self.train)
        differenced = self.decomposer.difference(self.train, d=1, D=1, period=m)
        diff_result = self.decomposer.test_stationarity(differenced)

        summary["stationarity"] = {
            "raw": {"adf_statistic": raw.adf_statistic, "p_value": raw.p_value,
                    "is_stationary": raw.is_stationary},
            "differenced": {"adf_statistic": diff_result.adf_statistic, "p_value": diff_result.p_value,
                            "is_stationary": diff_result.is_stationary},
        }

        self.figures.update({
            "decomposition": self.decomposer.plot_decomposition(),
            "seasonal_pattern": self.decomposer.plot_seasonal_pattern(),
            "trend": self.decomposer.plot_trend_analysis(),
            "acf_pacf": self.decomposer.plot_acf_pacf(self.train, title="ACF / PACF: Training Series"),
            "acf_pacf_differenced": self.decomposer.plot_acf_pacf(
                differenced, title=f"ACF / PACF: After First and Seasonal (lag {m}) Differencing"
            ),
        })

        self.decomposition_summary = summary
        self.steps.log_step("decompose", {
            "trend_direction": summary["trend"]["direction"],
            "seasonal_strength": round(summary["seasonality"]["strength"], 3),
            "peak_month": summary["seasonality"]["peak_month"],
            "raw_adf_p": round(raw.p_value, 4),
            "differenced_adf_p": round(diff_result.p_value, 4),
        })
        return summary

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def _register(self, forecaster: BaseForecaster, label: str = None) -> ForecastResult:
        result = forecaster.forecast(len(self.test))
        if label:
            result = dataclasses.replace(result, model_name=label)

        self.forecasters[result.model_name] = forecaster
        self.forecasts[result.model_name] = result
        self.steps.log_model_fit(result.model_name, aic=result.aic, n_obs=len(self.train))
        return result

    def fit_smoothing(self) -> List[ForecastResult]:
        """Step 6: Holt-Winters and the lowest-AIC ETS model."""
        self._require(self.train, "aggregate")
        c = self.config

        hw = HoltWintersForecaster(
            trend=c.hw_trend,
            seasonal=c.hw_seasonal,
            damped_trend=c.hw_damped_trend,
            seasonal_periods=c.seasonal_period,
            confidence_level=c.confidence_level
        ).fit(self.train)

        best_ets, ets_table = select_ets(
            self.train, c.ets_candidates,
            seasonal_periods=c.seasonal_period,
            confidence_level=c.confidence_level
        )
        self.search_tables["ETS search"] = ets_table

        return [self._register(hw), self._register(best_ets)]

    def fit_arima(self) -> List[ForecastResult]:
        """Step 7: ARIMA and SARIMA with orders read off the ACF/PACF plots."""
        self._require(self.train, "aggregate")
        c = self.config

        arima = ArimaForecaster(c.arima_order, confidence_level=c.confidence_level).fit(self.train)
        sarima = ArimaForecaster(
            c.sarima_order,
            tuple(c.sarima_seasonal_order) + (c.seasonal_period,),
            confidence_level=c.confidence_level
        ).fit(self.train)

        return [self._register(arima), self._register(sarima)]

    def search_arima(self) -> ForecastResult:
        """Step 8: manual order search, keep the lowest AIC."""
        self._require(self.train, "aggregate")

        best, table = grid_search_from_config(self.train, self.config, seasonal=True)
        self.search_tables["ARIMA search"] = table

        return self._register(best, label=f"AIC search {best.name}")

    def fit_auto_arima(self) -> ForecastResult:
        """Step 9: automatic order selection with pmdarima."""
        self._require(self.train, "aggregate")
        c = self.config

        auto = AutoArimaForecaster(
            seasonal=True,
            m=c.seasonal_period,
            max_p=c.auto_max_p,
            max_q=c.auto_max_q,
            stepwise=c.auto_stepwise,
            confidence_level=c.confidence_level
        ).fit(self.train)

        return self._register(auto)

    def compare(self) -> pd.DataFrame:
        """Step 10: score every forecast against the held-out months."""
        self._require(self.test, "aggregate")
        if not self.forecasts:
            raise ModelNotFittedError("any forecasting model")

        self.comparison = ModelComparison(self.test, history=self.train)
        self.comparison.add_all(list(self.forecasts.values()))
        table = self.comparison.table(sort_by="rmse")
        best = table.iloc[0]

        self.diagnostics.analyze(self.forecasters[best["model"]])
        self.diagnostics_summary = self.diagnostics.get_diagnostic_summary()

        self.figures.update({
            "comparison": self.comparison.plot(
                title=f"{self.config.category}: Forecasts vs Later Actuals"
            ),
            "residual_distribution": self.diagnostics.plot_residuals_distribution(),
            "residuals_over_time": self.diagnostics.plot_residuals_over_time(),
            "residual_acf": self.diagnostics.plot_residual_acf(),
            "fitted_vs_actual": self.diagnostics.plot_fitted_vs_actual(),
        })

        self.steps.log_comparison(best["model"], "rmse", float(best["rmse"]))
        return table

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    @staticmethod
    def _require(value, step: str):
        if value is None:
            raise ModelNotFittedError(f"walkthrough step '{step}'")

    def run(self, include_auto: bool = True) -> WalkthroughResult:
        """
        Run every step in order.

        Args:
            include_auto: Also run pmdarima's auto_arima (the slowest step).

        Returns:
            WalkthroughResult
        """
        logger.info(f"Starting walkthrough for {self.config.category}")

        self.load_data()
        self.validate()
        self.aggregate()
        self.explore()
        self.decompose()
        self.fit_smoothing()
        self.fit_arima()
        self.search_arima()
        if include_auto:
            self.fit_auto_arima()
        table = self.compare()

        return WalkthroughResult(
            category=self.config.category,
            series=self.series,
            train=self.train,
            test=self.test,
            validation=self.validation,
            forecasts=dict(self.forecasts),
            comparison=table,
            best_model=table.iloc[0]["model"],
            search_tables=dict(self.search_tables),
            decomposition_summary=self.decomposition_summary,
            diagnostics_summary=self.diagnostics_summary,
            figures=dict(self.figures)
        )


def export_result(result: WalkthroughResult, output_dir: Path = None, format: str = "xlsx") -> List[Path]:
    """Write the comparison report for a finished walkthrough."""
    exporter = ReportExporter(output_dir)
    stem = f"{result.category.lower().replace(' ', '_')}_forecast_report"
    return exporter.export(
        comparison=result.comparison,
        forecasts=result.forecasts_frame(),
        series=result.series,
        search_tables={**result.search_tables, "Intervals": result.intervals_frame()},
        format=format,
        filename=stem,
        title=f"London {result.category}: Forecast Comparison"
    )


def main(argv: List[str] = None):
    parser = argparse.ArgumentParser(description="London crime forecasting walkthrough")
    parser.add_argument("--sample", action="store_true", help="Use generated sample data instead of downloading")
    parser.add_argument("--data-path", type=Path, help="Read this CSV export instead of downloading")
    parser.add_argument("--category", default=settings.forecast_category, help="Major crime category")
    parser.add_argument("--test-months", type=int, default=settings.test_months, help="Months held out")
    parser.add_argument("--no-auto", action="store_true", help="Skip pmdarima auto_arima")
    parser.add_argument("--format", default="xlsx", choices=["xlsx", "csv"], help="Report format")
    parser.add_argument("--output-dir", type=Path, help="Report directory")
    args = parser.parse_args(argv)

    setup_logging(level=settings.log_level, log_format=settings.log_format, log_file=settings.log_file)

    walkthrough = BurglaryWalkthrough(
        config=ForecastConfig(category=args.category, test_months=args.test_months),
        data_path=args.data_path,
        use_sample=args.sample
    )
    result = walkthrough.run(include_auto=not args.no_auto)

    print(f"\n{result.category}: forecasts vs the last {len(result.test)} months")
    print(result.comparison[["model", "aic", "rmse", "mae", "mape", "coverage"]].round(2).to_string(index=False))
    print(f"\nBest model: {result.best_model}")

    for path in export_result(result, args.output_dir, args.format):
        print(f"Report: {path}")


if __name__ == "__main__":
    main()
