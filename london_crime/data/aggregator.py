"""
Aggregation of the long crime table into borough, category and city series.
"""
import pandas as pd
import numpy as np
from typing import List, Optional, Tuple
import logging

from london_crime.utils.exceptions import InvalidConfigurationError, MissingDataError

logger = logging.getLogger(__name__)

SERIES_FREQ = "MS"


class CrimeAggregator:
    """
    Group the long fact table by borough, category and month.

    All outputs sum ``count`` over the grouping keys, so each
    (unit, category, month) key occurs once.
    """

    REQUIRED_COLUMNS = ["borough", "major_category", "minor_category", "month", "count"]

    def __init__(self, data: pd.DataFrame):
        """
        Args:
            data: Long DataFrame from CrimeDataLoader.reshape_long().
        """
        if data is None or data.empty:
            raise MissingDataError("crime counts", required_columns=self.REQUIRED_COLUMNS)

        missing = [c for c in self.REQUIRED_COLUMNS if c not in data.columns]
        if missing:
            raise MissingDataError("crime count columns", required_columns=missing)

        self.data = data.copy()
        self.data["month"] = pd.to_datetime(self.data["month"])

    @property
    def categories(self) -> List[str]:
        return sorted(self.data["major_category"].unique().tolist())

    @property
    def boroughs(self) -> List[str]:
        return sorted(self.data["borough"].unique().tolist())

    def _group(self, keys: List[str], data: pd.DataFrame = None) -> pd.DataFrame:
        data = self.data if data is None else data
        return (
            data.groupby(keys, as_index=False)["count"]
            .sum()
            .sort_values(keys)
            .reset_index(drop=True)
        )

    def _filter(
        self,
        category: str = None,
        borough: str = None,
        start: str = None,
        end: str = None
    ) -> pd.DataFrame:
        df = self.data
        if category is not None:
            if category not in self.categories:
                raise InvalidConfigurationError(
                    "category", category, reason=f"Known categories: {self.categories}"
                )
            df = df[df["major_category"] == category]
        if borough is not None:
            if borough not in self.boroughs:
                raise InvalidConfigurationError(
                    "borough", borough, reason=f"Known boroughs: {self.boroughs}"
                )
            df = df[df["borough"] == borough]
        if start is not None:
            df = df[df["month"] >= pd.Timestamp(start)]
        if end is not None:
            df = df[df["month"] <= pd.Timestamp(end)]
        return df

    def by_borough_category_month(self) -> pd.DataFrame:
        """Counts per (borough, major category, month)."""
        return self._group(["borough", "major_category", "month"])

    def by_category_month(self) -> pd.DataFrame:
        """City-wide counts per (major category, month)."""
        return self._group(["major_category", "month"])

    def by_minor_category_month(self, category: str = None) -> pd.DataFrame:
        """City-wide counts per (minor category, month), optionally within one major category."""
        return self._group(["major_category", "minor_category", "month"], self._filter(category=category))

    def borough_totals(
        self,
        category: str = None,
        start: str = None,
        end: str = None
    ) -> pd.DataFrame:
        """
        Total incidents per borough, highest first.

        Args:
            category: Restrict to one major category.
            start: First month included.
            end: Last month included.
        """
        df = self._filter(category=category, start=start, end=end)
        totals = df.groupby("borough", as_index=False)["count"].sum()
        totals = totals.sort_values("count", ascending=False).reset_index(drop=True)
        totals["share"] = totals["count"] / totals["count"].sum() if totals["count"].sum() > 0 else 0.0
        return totals

    def category_totals(self) -> pd.DataFrame:
        """Total incidents per major category, highest first."""
        totals = self.data.groupby("major_category", as_index=False)["count"].sum()
        totals = totals.sort_values("count", ascending=False).reset_index(drop=True)
        totals["share"] = totals["count"] / totals["count"].sum()
        return totals

    def pivot_category_month(self) -> pd.DataFrame:
        """Month x category table of city-wide counts."""
        return self.by_category_month().pivot_table(
            index="month",
            columns="major_category",
            values="count",
            fill_value=0
        )

    def city_series(self, category: str, borough: str = None) -> pd.Series:
        """
        Monthly counts for one category as a month-start series.

        Months with no rows are filled with zero so the index is regular,
        which the statsmodels estimators need.

        Args:
            category: Major category (e.g. 'Burglary').
            borough: Optional borough; city-wide when None.

        Returns:
            Series indexed by month start with freq 'MS'.
        """
        df = self._filter(category=category, borough=borough)
        series = df.groupby("month")["count"].sum().sort_index()

        full_index = pd.date_range(self.data["month"].min(), self.data["month"].max(), freq=SERIES_FREQ)
        series = series.reindex(full_index, fill_value=0).astype(float)
        series.index.name = "month"
        series.name = category if borough is None else f"{category} ({borough})"

        logger.info(f"Built {series.name} series: {len(series)} months")
        return series

    @staticmethod
    def running_total(series: pd.Series) -> pd.Series:
        """Cumulative incidents over time."""
        return series.sort_index().cumsum()

    @staticmethod
    def year_over_year(series: pd.Series, period: int = 12) -> pd.Series:
        """Percent change against the same month one cycle earlier."""
        previous = series.shift(period)
        return (series - previous) / previous.replace(0, np.nan) * 100

    @staticmethod
    def seasonal_profile(series: pd.Series) -> pd.DataFrame:
        """Mean and spread of the counts for each calendar month."""
        df = pd.DataFrame({"count": series.values, "calendar_month": series.index.month})
        profile = df.groupby("calendar_month")["count"].agg(["mean", "std", "min", "max"]).reset_index()
        return profile

    @staticmethod
    def train_test_split(series: pd.Series, test_months: int) -> Tuple[pd.Series, pd.Series]:
        """
        Split chronologically, holding out the last ``test_months`` as later actuals.
        """
        if test_months <= 0 or test_months >= len(series):
            raise InvalidConfigurationError(
                "test_months", test_months,
                reason=f"Must be between 1 and {len(series) - 1}"
            )

        train = series.iloc[:-test_months]
        test = series.iloc[-test_months:]
        logger.info(
            f"Train: {train.index[0]:%Y-%m} to {train.index[-1]:%Y-%m} ({len(train)} months) | "
            f"Test: {test.index[0]:%Y-%m} to {test.index[-1]:%Y-%m} ({len(test)} months)"
        )
        return train, test


def aggregate_crimes(data: pd.DataFrame, category: str) -> Tuple["CrimeAggregator", pd.Series]:
    """
    Convenience function: build an aggregator and the city series for a category.
    """
    aggregator = CrimeAggregator(data)
    return aggregator, aggregator.city_series(category)
