"""
Exception hierarchy for the London crime forecasting walkthrough.

Every error carries a machine-readable code, structured details and a short
message fit for showing on the Streamlit page.
"""
from typing import Any, Dict


class CrimeAnalysisError(Exception):
    """Root of all errors raised by this package."""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        user_message: str = None
    ):
        self.message = message
        self.error_code = error_code or "UNKNOWN_ERROR"
        self.details = details or {}
        self.user_message = user_message or message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
        }


# ===========================================
# Data Errors
# ===========================================

class DataError(CrimeAnalysisError):
    """Problems with the source export or the tables built from it."""
    pass


class DataDownloadError(DataError):
    """The source export could not be fetched."""

    def __init__(self, url: str, reason: str = None):
        super().__init__(
            message=f"Failed to download data from: {url}",
            error_code="DATA_DOWNLOAD_ERROR",
            user_message=f"Could not download the crime dataset. {reason or 'Check the network connection and re-run.'}",
            details={"url": url, "reason": reason}
        )


class DataLoadError(DataError):
    """A local export could not be read."""

    def __init__(self, filepath: str, reason: str = None):
        super().__init__(
            message=f"Cannot read crime export {filepath}: {reason or 'unreadable file'}",
            error_code="DATA_LOAD_ERROR",
            user_message=f"The crime export could not be read. {reason or 'Check that it is a CSV file.'}",
            details={"filepath": str(filepath), "reason": reason}
        )


class SchemaMismatchError(DataError):
    """Source file does not match the expected ward-level schema."""

    def __init__(self, missing_columns: list = None, reason: str = None):
        super().__init__(
            message=f"Schema mismatch: {reason or f'missing columns {missing_columns}'}",
            error_code="DATA_SCHEMA_MISMATCH",
            user_message="The file does not look like the MPS ward-level crime export.",
            details={"missing_columns": missing_columns or [], "reason": reason}
        )


class DataFormatError(DataError):
    """A cell holds something other than what its column requires."""

    def __init__(self, expected_format: str, actual_format: str = None, column: str = None):
        super().__init__(
            message=f"Bad value in column {column or '?'}: expected {expected_format}, got {actual_format}",
            error_code="DATA_FORMAT_ERROR",
            user_message=f"Column {column or '?'} must contain {expected_format}.",
            details={"expected_format": expected_format, "actual_format": actual_format, "column": column}
        )


class DataValidationError(DataError):
    """An integrity check on the data failed."""

    def __init__(self, field: str = None, reason: str = None, value: Any = None):
        super().__init__(
            message=f"Integrity check failed ({field}): {reason}",
            error_code="DATA_VALIDATION_ERROR",
            user_message=f"The data failed a consistency check: {reason or field}.",
            details={"field": field, "reason": reason, "value": None if value is None else str(value)}
        )


class MissingDataError(DataError):
    """Something needed for a step is absent or empty."""

    def __init__(self, data_type: str, required_columns: list = None):
        super().__init__(
            message=f"No data available: {data_type}",
            error_code="DATA_MISSING",
            user_message=f"Nothing to work with yet ({data_type}). Run the earlier steps first.",
            details={"data_type": data_type, "required_columns": required_columns}
        )


# ===========================================
# Model Errors
# ===========================================

class ModelError(CrimeAnalysisError):
    """Problems fitting, using or persisting a forecaster."""
    pass


class ModelNotFittedError(ModelError):
    """A model or step was used before it was run."""

    def __init__(self, model_name: str = None):
        super().__init__(
            message=f"Not fitted yet: {model_name or 'unknown'}",
            error_code="MODEL_NOT_FITTED",
            user_message=f"{model_name or 'This step'} has not been run yet.",
            details={"model_name": model_name}
        )


class ModelTrainingError(ModelError):
    """Estimation failed or the series cannot support the model."""

    def __init__(self, reason: str = None, model_name: str = None):
        prefix = f"{model_name}: " if model_name else ""
        super().__init__(
            message=f"{prefix}fit failed: {reason}",
            error_code="MODEL_TRAINING_ERROR",
            user_message=f"The model could not be fitted. {reason or ''}".strip(),
            details={"reason": reason, "model_name": model_name}
        )


class ModelLoadError(ModelError):
    """A saved forecaster could not be restored."""

    def __init__(self, model_path: str = None, reason: str = None):
        super().__init__(
            message=f"Cannot restore forecaster from {model_path}: {reason}",
            error_code="MODEL_LOAD_ERROR",
            user_message="The saved model could not be loaded. Fit it again.",
            details={"model_path": str(model_path), "reason": reason}
        )


class ForecastError(ModelError):
    """A forecast could not be produced or scored."""

    def __init__(self, reason: str = None):
        super().__init__(
            message=f"Forecast failed: {reason}",
            error_code="FORECAST_ERROR",
            user_message=f"No forecast could be produced. {reason or ''}".strip(),
            details={"reason": reason}
        )


# ===========================================
# Configuration Errors
# ===========================================

class ConfigurationError(CrimeAnalysisError):
    """Invalid settings or arguments."""
    pass


class InvalidConfigurationError(ConfigurationError):
    """A setting or argument has an unusable value."""

    def __init__(self, config_key: str, value: Any = None, reason: str = None):
        super().__init__(
            message=f"Invalid value for {config_key}: {value!r}",
            error_code="CONFIG_INVALID",
            user_message=f"{config_key} = {value!r} cannot be used. {reason or ''}".strip(),
            details={"config_key": config_key, "value": str(value), "reason": reason}
        )


# ===========================================
# Export Errors
# ===========================================

class ExportError(CrimeAnalysisError):
    """Problems writing the report."""
    pass


class ExportFormatError(ExportError):
    """Report format not supported."""

    def __init__(self, format: str, supported_formats: list = None):
        supported = supported_formats or ["xlsx", "csv"]
        super().__init__(
            message=f"Cannot export as {format!r}; supported: {', '.join(supported)}",
            error_code="EXPORT_FORMAT_ERROR",
            user_message=f"Reports can be written as {' or '.join(supported)}.",
            details={"format": format, "supported_formats": supported}
        )
