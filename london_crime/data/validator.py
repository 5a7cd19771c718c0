"""
Data validation module.
Checks the long crime table for structural problems and provides the
dataset-integrity checks used around the reshape and aggregation steps.
"""
import re
import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any
from enum import Enum

from london_crime.utils.config import MONTH_COLUMN_PATTERN
from london_crime.utils.exceptions import DataValidationError


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Data cannot be used
    WARNING = "warning"  # Data can be used but may have issues
    INFO = "info"        # Informational message


@dataclass
class ValidationIssue:
    """A single validation issue."""
    severity: ValidationSeverity
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    affected_rows: List[int] = field(default_factory=list)

    def __str__(self):
        return f"[{self.severity.value.upper()}] {self.message}"


@dataclass
class ValidationResult:
    """Result of a validation check."""
    is_valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    @property
    def infos(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.INFO]

    def add_issue(
        self,
        severity: ValidationSeverity,
        code: str,
        message: str,
        details: Dict = None,
        affected_rows: List[int] = None
    ):
        """Add a validation issue."""
        self.issues.append(ValidationIssue(
            severity=severity,
            code=code,
            message=message,
            details=details or {},
            affected_rows=affected_rows or []
        ))

        if severity == ValidationSeverity.ERROR:
            self.is_valid = False

    def raise_for_errors(self):
        """Raise DataValidationError for the first error, if any."""
        if self.errors:
            first = self.errors[0]
            raise DataValidationError(field=first.code, reason=first.message)


class DataValidator:
    """
    Validates the long crime-count table.
    """

    REQUIRED_COLUMNS = [
        "ward_code", "ward_name", "borough",
        "major_category", "minor_category", "month", "count"
    ]
    KEY_COLUMNS = ["ward_code", "major_category", "minor_category", "month"]

    def __init__(self, seasonal_period: int = 12):
        self.seasonal_period = seasonal_period
        self.result = ValidationResult(is_valid=True)

    def validate(self, data: pd.DataFrame) -> ValidationResult:
        """
        Validate a long dataframe.

        Args:
            data: The data to validate

        Returns:
            ValidationResult with issues and summary
        """
        self.result = ValidationResult(is_valid=True)

        if data is None or data.empty:
            self.result.add_issue(
                ValidationSeverity.ERROR,
                "DATA_EMPTY",
                "The provided data is empty"
            )
            return self.result

        self._validate_structure(data)
        if not self.result.is_valid:
            return self.result

        self._validate_counts(data)
        self._validate_keys(data)
        self._validate_months(data)

        self.result.summary = self._create_summary(data)

        return self.result

    def _validate_structure(self, data: pd.DataFrame):
        """Validate columns."""
        missing = [col for col in self.REQUIRED_COLUMNS if col not in data.columns]
        if missing:
            self.result.add_issue(
                ValidationSeverity.ERROR,
                "MISSING_COLUMNS",
                f"Missing required columns: {missing}",
                details={"missing": missing}
            )
            return

        if not pd.api.types.is_datetime64_any_dtype(data["month"]):
            self.result.add_issue(
                ValidationSeverity.ERROR,
                "INVALID_MONTH_TYPE",
                "Column 'month' must be datetime"
            )

    def _validate_counts(self, data: pd.DataFrame):
        """Counts must be present, integral and non-negative."""
        values = data["count"]

        null_mask = values.isna()
        if null_mask.any():
            self.result.add_issue(
                ValidationSeverity.ERROR,
                "NULL_COUNTS",
                f"Found {null_mask.sum()} null counts",
                affected_rows=data[null_mask].index.tolist()[:10]
            )

        if not pd.api.types.is_integer_dtype(values):
            non_integral = values.dropna() % 1 != 0
            if non_integral.any():
                self.result.add_issue(
                    ValidationSeverity.ERROR,
                    "NON_INTEGER_COUNTS",
                    f"Found {non_integral.sum()} non-integer counts"
                )

        neg_mask = values < 0
        if neg_mask.any():
            self.result.add_issue(
                ValidationSeverity.ERROR,
                "NEGATIVE_COUNTS",
                f"Found {neg_mask.sum()} negative counts (incident counts cannot be negative)",
                affected_rows=data[neg_mask].index.tolist()[:10]
            )

        zero_pct = (values == 0).mean() * 100
        if zero_pct > 50:
            self.result.add_issue(
                ValidationSeverity.INFO,
                "HIGH_ZERO_RATIO",
                f"{zero_pct:.1f}% of ward-month counts are zero",
                details={"zero_percentage": zero_pct}
            )

    def _validate_keys(self, data: pd.DataFrame):
        """Each (ward, category, month) key should occur once."""
        duplicates = data.duplicated(subset=self.KEY_COLUMNS)
        if duplicates.any():
            self.result.add_issue(
                ValidationSeverity.WARNING,
                "DUPLICATE_KEYS",
                f"Found {duplicates.sum()} duplicate (ward, category, month) rows; they will be summed",
                affected_rows=data[duplicates].index.tolist()[:10]
            )

    def _validate_months(self, data: pd.DataFrame):
        """Check the month range for gaps and length."""
        months = pd.DatetimeIndex(sorted(data["month"].unique()))
        expected = pd.date_range(months.min(), months.max(), freq="MS")
        missing = expected.difference(months)

        if len(missing) > 0:
            self.result.add_issue(
                ValidationSeverity.WARNING,
                "MONTH_GAPS",
                f"Found {len(missing)} months without any records; they will be treated as zero",
                details={"missing_months": [m.strftime("%Y-%m") for m in missing[:12]]}
            )

        n_months = len(expected)
        if n_months < 2 * self.seasonal_period:
            self.result.add_issue(
                ValidationSeverity.WARNING,
                "INSUFFICIENT_HISTORY",
                f"Data spans only {n_months} months. At least {2 * self.seasonal_period} "
                "are needed for seasonal models",
                details={"months": n_months}
            )
        else:
            self.result.add_issue(
                ValidationSeverity.INFO,
                "HISTORY_LENGTH",
                f"Data spans {n_months} months ({n_months / self.seasonal_period:.1f} seasonal cycles)",
                details={"months": n_months}
            )

    def _create_summary(self, data: pd.DataFrame) -> dict:
        """Create a summary of the validated data."""
        months = data["month"]
        return {
            "total_rows": len(data),
            "total_incidents": int(data["count"].sum()),
            "wards": int(data["ward_code"].nunique()),
            "boroughs": int(data["borough"].nunique()),
            "major_categories": int(data["major_category"].nunique()),
            "minor_categories": int(data["minor_category"].nunique()),
            "date_range": {
                "start": months.min().strftime("%Y-%m"),
                "end": months.max().strftime("%Y-%m"),
            },
            "error_count": len(self.result.errors),
            "warning_count": len(self.result.warnings),
            "info_count": len(self.result.infos)
        }


def validate_data(data: pd.DataFrame, seasonal_period: int = 12) -> ValidationResult:
    """
    Convenience function to validate data.

    Args:
        data: The long DataFrame to validate
        seasonal_period: Season length used for the history check

    Returns:
        ValidationResult
    """
    validator = DataValidator(seasonal_period=seasonal_period)
    return validator.validate(data)


# ===========================================
# Dataset integrity checks
# ===========================================

def check_row_count(df: pd.DataFrame, expected: int) -> bool:
    """
    Check that parsing produced the expected number of rows.

    Raises:
        DataValidationError: On mismatch.
    """
    if len(df) != expected:
        raise DataValidationError(
            field="row_count",
            reason=f"Expected {expected} rows, got {len(df)}",
            value=len(df)
        )
    return True


def check_reshape_preserves_totals(
    wide: pd.DataFrame,
    long: pd.DataFrame,
    ward_code: Optional[str] = None,
    category: Optional[str] = None
) -> bool:
    """
    Check that the wide-to-long reshape keeps incident totals.

    With ``ward_code`` and/or ``category`` only that sampled unit/category is
    compared; otherwise the whole table.

    Raises:
        DataValidationError: If the sums differ.
    """
    month_cols = [c for c in wide.columns if re.match(MONTH_COLUMN_PATTERN, str(c))]

    wide_sel = wide
    long_sel = long
    if ward_code is not None:
        wide_sel = wide_sel[wide_sel["ward_code"] == ward_code]
        long_sel = long_sel[long_sel["ward_code"] == ward_code]
    if category is not None:
        wide_sel = wide_sel[wide_sel["major_category"] == category]
        long_sel = long_sel[long_sel["major_category"] == category]

    wide_total = int(np.asarray(wide_sel[month_cols], dtype=np.int64).sum())
    long_total = int(long_sel["count"].sum())

    if wide_total != long_total:
        raise DataValidationError(
            field="reshape_total",
            reason=f"Wide total {wide_total} != long total {long_total}",
            value={"ward_code": ward_code, "category": category}
        )
    return True


def check_running_total_monotonic(series: pd.Series) -> bool:
    """
    Check that a cumulative monthly total never decreases.

    Raises:
        DataValidationError: If any step is negative.
    """
    running = series.sort_index().cumsum()
    steps = running.diff().dropna()
    if (steps < 0).any():
        first = steps[steps < 0].index[0]
        raise DataValidationError(
            field="running_total",
            reason=f"Running total decreases at {first}",
            value=float(steps.min())
        )
    return True


def check_unique_keys(df: pd.DataFrame, keys: List[str]) -> bool:
    """
    Check that each key combination occurs at most once.

    Raises:
        DataValidationError: If duplicates exist.
    """
    duplicates = df.duplicated(subset=keys)
    if duplicates.any():
        raise DataValidationError(
            field="unique_keys",
            reason=f"{duplicates.sum()} duplicate rows for keys {keys}",
            value=int(duplicates.sum())
        )
    return True
