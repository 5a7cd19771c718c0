"""
Shared fixtures: a generated ward-level export and synthetic monthly series.
No test touches the network.
"""
import numpy as np
import pandas as pd
import pytest

from london_crime.data.aggregator import CrimeAggregator
from london_crime.data.loader import CrimeDataLoader, create_sample_data

SAMPLE_MONTHS = 96


@pytest.fixture(scope="session")
def sample_csv(tmp_path_factory):
    """Path of a generated wide export (96 rows x 96 months)."""
    return create_sample_data(tmp_path_factory.mktemp("raw"), months=SAMPLE_MONTHS)


@pytest.fixture(scope="session")
def loaded(sample_csv):
    """Loader that has read and reshaped the sample export."""
    loader = CrimeDataLoader(data_dir=sample_csv.parent, url="http://example.invalid/crime.csv")
    loader.load(filepath=sample_csv)
    return loader


@pytest.fixture(scope="session")
def long_df(loaded):
    return loaded.long


@pytest.fixture(scope="session")
def aggregator(long_df):
    return CrimeAggregator(long_df)


@pytest.fixture(scope="session")
def burglary_series(aggregator):
    return aggregator.city_series("Burglary")


@pytest.fixture
def monthly_series():
    """72 months of positive counts with a downward trend and a winter peak."""
    rng = np.random.default_rng(7)
    index = pd.date_range("2012-01-01", periods=72, freq="MS")
    t = np.arange(72)
    seasonal = 40 * np.cos(2 * np.pi * (index.month - 12) / 12)
    values = 500 - 1.5 * t + seasonal + rng.normal(0, 8, size=72)
    return pd.Series(values, index=index, name="Burglary")


@pytest.fixture
def write_csv(tmp_path):
    """Write a small hand-made export and return its path."""
    def _write(text, name="export.csv"):
        path = tmp_path / name
        path.write_text(text.strip() + "\n")
        return path
    return _write
