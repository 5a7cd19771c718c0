"""
Tests for reading, reshaping and downloading the ward-level export.
"""
import pandas as pd
import pytest
import requests

from london_crime.data import loader as loader_module
from london_crime.data.loader import CrimeDataLoader, SAMPLE_BOROUGHS, SAMPLE_CATEGORIES
from london_crime.data.validator import check_reshape_preserves_totals, check_row_count
from london_crime.utils.config import LONG_COLUMNS
from london_crime.utils.exceptions import (
    DataDownloadError,
    DataFormatError,
    DataLoadError,
    SchemaMismatchError,
)

HEADER = "WardCode,WardName,Borough,Major Category,Minor Category,201001,201002,201003"


# ===========================================
# Reading and reshaping
# ===========================================

def test_sample_export_has_expected_row_count(loaded):
    """One wide row per ward and minor category, one long row per month on top."""
    n_wards = sum(len(w) for w in SAMPLE_BOROUGHS.values())
    n_minor = sum(len(m) for m in SAMPLE_CATEGORIES.values())

    assert len(loaded.wide) == n_wards * n_minor
    assert len(loaded.long) == n_wards * n_minor * 96
    assert check_row_count(loaded.long, len(loaded.wide) * 96)


def test_long_table_layout(long_df):
    """Long table has the fixed columns, parsed months and integer counts."""
    assert list(long_df.columns) == LONG_COLUMNS
    assert pd.api.types.is_datetime64_any_dtype(long_df["month"])
    assert pd.api.types.is_integer_dtype(long_df["count"])
    assert long_df["month"].min() == pd.Timestamp("2010-04-01")
    assert (long_df["count"] >= 0).all()


def test_reshape_preserves_totals_whole_table(loaded):
    """Sum over the long rows equals the sum over the wide month columns."""
    assert check_reshape_preserves_totals(loaded.wide, loaded.long)


def test_reshape_preserves_totals_for_sampled_ward(loaded):
    """The same holds for a single sampled ward and category."""
    ward = loaded.wide["ward_code"].iloc[5]
    assert check_reshape_preserves_totals(loaded.wide, loaded.long, ward_code=ward, category="Burglary")


def test_month_columns_are_sorted(write_csv):
    """Out-of-order month columns come back chronological."""
    path = write_csv("""
WardCode,WardName,Borough,Major Category,Minor Category,201003,201001,201002
E1,Ward A,Camden,Burglary,Burglary in a Dwelling,3,1,2
""")
    wide = CrimeDataLoader(data_dir=path.parent).read_wide(path)
    assert list(wide.columns[-3:]) == ["201001", "201002", "201003"]


def test_blank_cells_are_read_as_zero(write_csv):
    """An empty month cell is zero incidents."""
    path = write_csv(f"""
{HEADER}
E1,Ward A,Camden,Burglary,Burglary in a Dwelling,5,,7
""")
    loader = CrimeDataLoader(data_dir=path.parent)
    long = loader.load(filepath=path)

    assert long["count"].tolist() == [5, 0, 7]


def test_id_values_are_stripped(write_csv):
    """Whitespace around ids does not create extra categories."""
    path = write_csv(f"""
{HEADER}
E1 , Ward A ,Camden , Burglary ,Burglary in a Dwelling,1,2,3
""")
    wide = CrimeDataLoader(data_dir=path.parent).read_wide(path)
    assert wide["major_category"].iloc[0] == "Burglary"
    assert wide["ward_code"].iloc[0] == "E1"


def test_non_numeric_count_raises(write_csv):
    """Text in a month column is a format error."""
    path = write_csv(f"""
{HEADER}
E1,Ward A,Camden,Burglary,Burglary in a Dwelling,5,n/a,7
""")
    with pytest.raises(DataFormatError) as exc_info:
        CrimeDataLoader(data_dir=path.parent).read_wide(path)
    assert exc_info.value.details["column"] == "201002"


def test_fractional_count_raises(write_csv):
    """Counts must be whole numbers."""
    path = write_csv(f"""
{HEADER}
E1,Ward A,Camden,Burglary,Burglary in a Dwelling,5,2.5,7
""")
    with pytest.raises(DataFormatError):
        CrimeDataLoader(data_dir=path.parent).read_wide(path)


def test_missing_id_column_raises(write_csv):
    """A file without the borough column is not the expected export."""
    path = write_csv("""
WardCode,WardName,Major Category,Minor Category,201001
E1,Ward A,Burglary,Burglary in a Dwelling,5
""")
    with pytest.raises(SchemaMismatchError) as exc_info:
        CrimeDataLoader(data_dir=path.parent).read_wide(path)
    assert "borough" in exc_info.value.details["missing_columns"]


def test_no_month_columns_raises(write_csv):
    """Id columns alone are not enough."""
    path = write_csv("""
WardCode,WardName,Borough,Major Category,Minor Category,Total
E1,Ward A,Camden,Burglary,Burglary in a Dwelling,5
""")
    with pytest.raises(SchemaMismatchError):
        CrimeDataLoader(data_dir=path.parent).read_wide(path)


def test_invalid_month_header_raises(write_csv):
    """A six-digit header that is not a calendar month is a schema error."""
    path = write_csv("""
WardCode,WardName,Borough,Major Category,Minor Category,201012,201013
E1,Ward A,Camden,Burglary,Burglary in a Dwelling,5,6
""")
    loader = CrimeDataLoader(data_dir=path.parent)
    with pytest.raises(SchemaMismatchError) as exc_info:
        loader.load(filepath=path)
    assert "201013" in exc_info.value.details["reason"]
    assert "201012" not in exc_info.value.details["reason"]
    assert loader.long is None


def test_missing_file_raises(tmp_path):
    """Reading a file that does not exist is a load error."""
    with pytest.raises(DataLoadError):
        CrimeDataLoader(data_dir=tmp_path).read_wide(tmp_path / "nope.csv")


def test_unsupported_extension_raises(tmp_path):
    """Only CSV exports are read."""
    path = tmp_path / "export.xlsx"
    path.write_bytes(b"not really excel")
    with pytest.raises(DataLoadError):
        CrimeDataLoader(data_dir=tmp_path).read_wide(path)


def test_reshape_without_read_raises(tmp_path):
    """reshape_long needs a wide table."""
    with pytest.raises(DataLoadError):
        CrimeDataLoader(data_dir=tmp_path).reshape_long()


def test_save_processed(long_df, monkeypatch, tmp_path):
    """Processed data is written as CSV to the processed folder."""
    monkeypatch.setattr(loader_module, "DATA_PROCESSED", tmp_path)
    path = CrimeDataLoader(data_dir=tmp_path).save_processed(long_df.head(10), "long.csv")

    assert path == tmp_path / "long.csv"
    assert len(pd.read_csv(path)) == 10


# ===========================================
# Download
# ===========================================

class FakeResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_download_is_cached(tmp_path, monkeypatch):
    """The export is fetched once and re-fetched only when forced."""
    calls = []
    payload = f"{HEADER}\nE1,Ward A,Camden,Burglary,Burglary in a Dwelling,1,2,3\n".encode()

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return FakeResponse(payload)

    monkeypatch.setattr(loader_module.requests, "get", fake_get)

    loader = CrimeDataLoader(data_dir=tmp_path, url="http://example.invalid/crime.csv", timeout=5)
    path = loader.download()
    assert path.read_bytes() == payload
    assert calls == [("http://example.invalid/crime.csv", 5)]

    loader.download()
    assert len(calls) == 1

    loader.download(force=True)
    assert len(calls) == 2

    long = loader.load()
    assert long["count"].sum() == 6


def test_download_network_failure_raises(tmp_path, monkeypatch):
    """Connection problems surface as DataDownloadError with the cause chained."""
    def fake_get(url, timeout):
        raise requests.ConnectionError("no route to host")

    monkeypatch.setattr(loader_module.requests, "get", fake_get)

    with pytest.raises(DataDownloadError) as exc_info:
        CrimeDataLoader(data_dir=tmp_path, url="http://example.invalid/crime.csv").download()

    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)
    assert not (tmp_path / CrimeDataLoader(data_dir=tmp_path).raw_path.name).exists()


def test_download_http_error_raises(tmp_path, monkeypatch):
    """A 404 is a download error, not an empty file."""
    monkeypatch.setattr(loader_module.requests, "get", lambda url, timeout: FakeResponse(b"", 404))

    with pytest.raises(DataDownloadError):
        CrimeDataLoader(data_dir=tmp_path, url="http://example.invalid/crime.csv").download()
