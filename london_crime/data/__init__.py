"""Data loading, validation and aggregation modules."""
from .loader import CrimeDataLoader, create_sample_data
from .aggregator import CrimeAggregator, aggregate_crimes
from .validator import DataValidator, ValidationResult, validate_data

__all__ = [
    "CrimeDataLoader",
    "create_sample_data",
    "CrimeAggregator",
    "aggregate_crimes",
    "DataValidator",
    "ValidationResult",
    "validate_data",
]
