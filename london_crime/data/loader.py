"""
Data loader for the MPS ward-level crime export.
Downloads the public CSV once, validates its fixed schema and reshapes the
one-column-per-month layout into a long fact table.
"""
import re
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, Optional, List, Union
import logging

import requests

from london_crime.utils.config import (
    DATA_RAW,
    DATA_PROCESSED,
    RAW_FILENAME,
    ID_COLUMNS,
    MONTH_COLUMN_PATTERN,
    MONTH_FORMAT,
    LONG_COLUMNS,
)
from london_crime.utils.exceptions import (
    DataDownloadError,
    DataFormatError,
    DataLoadError,
    SchemaMismatchError,
)
from london_crime.utils.settings import settings

logger = logging.getLogger(__name__)


class CrimeDataLoader:
    """
    Load the ward-level crime counts.

    The raw file has one row per (ward, major category, minor category) and one
    integer column per calendar month (``YYYYMM``). ``load()`` returns the long
    form with one row per (ward, category, month).
    """

    def __init__(self, data_dir: Path = None, url: str = None, timeout: int = None):
        """
        Initialize the data loader.

        Args:
            data_dir: Directory for the cached raw file. Defaults to DATA_RAW.
            url: Source URL. Defaults to the configured dataset URL.
            timeout: HTTP timeout in seconds.
        """
        self.data_dir = Path(data_dir) if data_dir else DATA_RAW
        self.url = url or settings.crime_data_url
        self.timeout = timeout or settings.request_timeout_seconds
        self.wide: Optional[pd.DataFrame] = None
        self.long: Optional[pd.DataFrame] = None

    @property
    def raw_path(self) -> Path:
        return self.data_dir / RAW_FILENAME

    def download(self, url: str = None, force: bool = False) -> Path:
        """
        Download the CSV export to the raw data directory.

        The file is fetched once; later calls reuse the cached copy unless
        ``force`` is set.

        Args:
            url: Override the configured source URL.
            force: Download even if a cached copy exists.

        Returns:
            Path to the cached CSV.
        """
        url = url or self.url
        target = self.raw_path

        if target.exists() and not force:
            logger.info(f"Using cached dataset: {target}")
            return target

        logger.info(f"Downloading dataset from: {url}")
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DataDownloadError(url, reason=str(e)) from e

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(response.content)
        logger.info(f"Saved {len(response.content)} bytes to: {target}")

        return target

    def _read_file(self, filepath: Path) -> pd.DataFrame:
        """
        Read the CSV file and normalise column names.

        Args:
            filepath: Path to the file.

        Returns:
            DataFrame with file contents.
        """
        if filepath.suffix.lower() != ".csv":
            raise DataLoadError(str(filepath), reason=f"Unsupported file format: {filepath.suffix}")

        try:
            df = pd.read_csv(filepath, dtype=str, keep_default_na=False)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataLoadError(str(filepath), reason=str(e)) from e

        # Normalize column names (lowercase, strip whitespace)
        df.columns = df.columns.str.lower().str.strip().str.replace(" ", "_")

        return df

    def _month_columns(self, df: pd.DataFrame) -> List[str]:
        """Columns that hold one month of counts."""
        return [c for c in df.columns if re.match(MONTH_COLUMN_PATTERN, str(c))]

    def _validate_schema(self, df: pd.DataFrame):
        """
        Check the fixed export schema.

        Raises:
            SchemaMismatchError: If id columns or month columns are missing.
        """
        missing = [col for col in ID_COLUMNS if col not in df.columns]
        if missing:
            raise SchemaMismatchError(missing_columns=missing)

        month_cols = self._month_columns(df)
        if not month_cols:
            raise SchemaMismatchError(reason="no YYYYMM month columns found")

        parsed = pd.to_datetime(pd.Index(month_cols), format=MONTH_FORMAT, errors="coerce")
        bad = [col for col, month in zip(month_cols, parsed) if pd.isna(month)]
        if bad:
            raise SchemaMismatchError(reason=f"month columns are not valid YYYYMM months: {bad}")

    def _coerce_counts(self, df: pd.DataFrame, month_cols: List[str]) -> pd.DataFrame:
        """
        Convert month columns to integer counts.

        Blank cells are read as zero incidents. Any other non-numeric text
        raises DataFormatError.
        """
        df = df.copy()

        for col in month_cols:
            raw = df[col].astype(str).str.strip()
            values = pd.to_numeric(raw.replace("", "0"), errors="coerce")

            bad = values.isna()
            if bad.any():
                sample = raw[bad].iloc[0]
                raise DataFormatError(
                    expected_format="integer counts",
                    actual_format=repr(sample),
                    column=col
                )

            if (values % 1 != 0).any():
                raise DataFormatError(
                    expected_format="integer counts",
                    actual_format="fractional values",
                    column=col
                )

            df[col] = values.astype(np.int64)

        return df

    def read_wide(self, filepath: Union[str, Path] = None) -> pd.DataFrame:
        """
        Read the wide export.

        Args:
            filepath: Path to the CSV. Defaults to the cached download.

        Returns:
            Wide DataFrame with normalised id columns and integer month columns.
        """
        filepath = Path(filepath) if filepath else self.raw_path
        if not filepath.exists():
            raise DataLoadError(str(filepath), reason="File not found")

        logger.info(f"Loading crime counts from: {filepath}")
        df = self._read_file(filepath)
        self._validate_schema(df)

        df = df.rename(columns=ID_COLUMNS)
        for col in ID_COLUMNS.values():
            df[col] = df[col].str.strip()

        month_cols = self._month_columns(df)
        df = self._coerce_counts(df, month_cols)

        # Chronological month order
        month_cols = sorted(month_cols)
        df = df[list(ID_COLUMNS.values()) + month_cols]

        logger.info(f"Read {len(df)} rows spanning {month_cols[0]}-{month_cols[-1]}")
        self.wide = df
        return df

    def reshape_long(self, wide: pd.DataFrame = None) -> pd.DataFrame:
        """
        Melt the month columns into one row per (ward, category, month).

        Args:
            wide: Wide DataFrame from read_wide(). Defaults to the last one read.

        Returns:
            Long DataFrame with columns LONG_COLUMNS.
        """
        wide = wide if wide is not None else self.wide
        if wide is None:
            raise DataLoadError("<memory>", reason="No wide data read yet. Call read_wide() first.")

        id_cols = list(ID_COLUMNS.values())
        month_cols = self._month_columns(wide)

        long = wide.melt(
            id_vars=id_cols,
            value_vars=month_cols,
            var_name="month",
            value_name="count"
        )
        long["month"] = pd.to_datetime(long["month"], format=MONTH_FORMAT)
        long["count"] = long["count"].astype(np.int64)

        long = long[LONG_COLUMNS].sort_values(
            ["month", "borough", "ward_code", "major_category", "minor_category"]
        ).reset_index(drop=True)

        self.long = long
        logger.info(f"Reshaped to {len(long)} long rows")
        return long

    def load(self, filepath: Union[str, Path] = None, download: bool = True) -> pd.DataFrame:
        """
        Read and reshape the dataset, downloading it first when needed.

        Args:
            filepath: Explicit CSV path; skips the download.
            download: Fetch the export if no cached copy exists.

        Returns:
            Long DataFrame.
        """
        if filepath is None:
            if download:
                filepath = self.download()
            else:
                filepath = self.raw_path

        self.read_wide(filepath)
        return self.reshape_long()

    def save_processed(self, df: pd.DataFrame, filename: str = "crime_long.csv") -> Path:
        """
        Save processed data to the processed folder.

        Args:
            df: DataFrame to save.
            filename: Output filename.
        """
        output_path = DATA_PROCESSED / filename
        df.to_csv(output_path, index=False)
        logger.info(f"Saved processed data to: {output_path}")
        return output_path


SAMPLE_BOROUGHS: Dict[str, List[str]] = {
    "Camden": ["Bloomsbury", "Holborn and Covent Garden", "Kentish Town"],
    "Hackney": ["Dalston", "Hackney Central", "Stoke Newington Central"],
    "Westminster": ["West End", "St James's", "Marylebone High Street"],
    "Croydon": ["Fairfield", "Selhurst", "Thornton Heath"],
}

SAMPLE_CATEGORIES: Dict[str, List[str]] = {
    "Burglary": ["Burglary in a Dwelling", "Burglary in Other Buildings"],
    "Theft and Handling": ["Other Theft", "Theft From Motor Vehicle"],
    "Violence Against the Person": ["Common Assault", "Harassment"],
    "Robbery": ["Business Property", "Personal Property"],
}


def create_sample_data(
    output_dir: Path = DATA_RAW,
    start: str = "2010-04",
    months: int = 96,
    seed: int = 42,
    filename: str = RAW_FILENAME
) -> Path:
    """
    Create a synthetic ward-level export for offline runs and tests.

    Counts follow a slow trend, an annual cycle peaking in winter, and Poisson
    noise, in the same wide layout as the public file.

    Args:
        output_dir: Directory to save the sample file.
        start: First month (YYYY-MM).
        months: Number of month columns.
        seed: Random seed.
        filename: Output filename.

    Returns:
        Path of the written CSV.
    """
    rng = np.random.default_rng(seed)

    periods = pd.period_range(start=start, periods=months, freq="M")
    month_labels = [p.strftime(MONTH_FORMAT) for p in periods]
    calendar_month = np.array([p.month for p in periods])
    t = np.arange(months)

    # Winter peak for acquisitive crime (darker evenings)
    annual = np.cos(2 * np.pi * (calendar_month - 12) / 12)

    base_rates = {
        "Burglary in a Dwelling": 14.0,
        "Burglary in Other Buildings": 6.0,
        "Other Theft": 30.0,
        "Theft From Motor Vehicle": 12.0,
        "Common Assault": 10.0,
        "Harassment": 9.0,
        "Business Property": 1.5,
        "Personal Property": 5.0,
    }
    seasonal_amplitude = {
        "Burglary": 0.25,
        "Theft and Handling": 0.10,
        "Violence Against the Person": -0.12,  # summer peak
        "Robbery": 0.15,
    }
    trend_slope = {
        "Burglary": -0.003,
        "Theft and Handling": 0.001,
        "Violence Against the Person": 0.006,
        "Robbery": -0.002,
    }

    records = []
    ward_number = 0
    for borough, wards in SAMPLE_BOROUGHS.items():
        for ward in wards:
            ward_number += 1
            ward_code = f"E0500{ward_number:04d}"
            ward_scale = rng.uniform(0.6, 1.6)

            for major, minors in SAMPLE_CATEGORIES.items():
                for minor in minors:
                    rate = (
                        base_rates[minor]
                        * ward_scale
                        * (1 + trend_slope[major] * t)
                        * (1 + seasonal_amplitude[major] * annual)
                    )
                    counts = rng.poisson(np.maximum(rate, 0.1))

                    row = {
                        "WardCode": ward_code,
                        "WardName": ward,
                        "Borough": borough,
                        "Major Category": major,
                        "Minor Category": minor,
                    }
                    row.update(dict(zip(month_labels, counts.tolist())))
                    records.append(row)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / filename

    pd.DataFrame(records).to_csv(output_path, index=False)
    logger.info(f"Created sample data file: {output_path}")

    return output_path


if __name__ == "__main__":
    path = create_sample_data()

    loader = CrimeDataLoader()
    long = loader.load(path)

    print(f"\nWide rows: {len(loader.wide)}")
    print(f"Long rows: {len(long)}")
    print(long.head())
