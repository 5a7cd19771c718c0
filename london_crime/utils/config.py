"""
Configuration and constants for the London crime forecasting walkthrough.
"""
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
DATA_RAW = PROJECT_ROOT / "data" / "raw"
DATA_PROCESSED = PROJECT_ROOT / "data" / "processed"
OUTPUTS_DIR = PROJECT_ROOT / "outputs"
MODELS_DIR = PROJECT_ROOT / "models"

# Ensure directories exist
for directory in [DATA_RAW, DATA_PROCESSED, OUTPUTS_DIR, MODELS_DIR]:
    directory.mkdir(parents=True, exist_ok=True)

# Public MPS ward-level export (one column per month)
DATASET_URL = (
    "https://data.london.gov.uk/download/recorded_crime_summary/"
    "866c05de-c5cd-454b-8fe5-9e7c77ea2313/MPS%20Ward%20Level%20Crime%20%28historical%29.csv"
)
RAW_FILENAME = "mps_ward_level_crime_historical.csv"

# Raw header -> normalised name
ID_COLUMNS: Dict[str, str] = {
    "wardcode": "ward_code",
    "wardname": "ward_name",
    "borough": "borough",
    "major_category": "major_category",
    "minor_category": "minor_category",
}
MONTH_COLUMN_PATTERN = r"^\d{6}$"
MONTH_FORMAT = "%Y%m"

# Long fact table layout
UNIT_COLUMNS = ["ward_code", "ward_name", "borough"]
CATEGORY_COLUMNS = ["major_category", "minor_category"]
LONG_COLUMNS = UNIT_COLUMNS + CATEGORY_COLUMNS + ["month", "count"]


@dataclass
class ETSSpec:
    """One exponential smoothing candidate."""
    error: str = "add"
    trend: str = None
    seasonal: str = None
    damped_trend: bool = False

    @property
    def label(self) -> str:
        trend = (self.trend or "N").upper()[0] + ("d" if self.damped_trend else "")
        seasonal = (self.seasonal or "N").upper()[0]
        return f"ETS({self.error.upper()[0]},{trend},{seasonal})"


@dataclass
class ForecastConfig:
    """Configuration for the forecasting walkthrough."""
    # Series
    category: str = "Burglary"
    seasonal_period: int = 12  # monthly data, annual cycle

    # Hold out the last year for comparison with later actuals
    test_months: int = 12
    confidence_level: float = 0.95

    # Manually chosen orders (from ACF/PACF reading)
    arima_order: Tuple[int, int, int] = (1, 1, 1)
    sarima_order: Tuple[int, int, int] = (1, 1, 1)
    sarima_seasonal_order: Tuple[int, int, int] = (0, 1, 1)

    # Manual AIC search bounds (inclusive)
    max_p: int = 2
    max_d: int = 1
    max_q: int = 2
    max_P: int = 1
    max_D: int = 1
    max_Q: int = 1

    # Holt-Winters
    hw_trend: str = "add"
    hw_seasonal: str = "add"
    hw_damped_trend: bool = False

    # ETS candidates compared by AIC
    ets_candidates: List[ETSSpec] = field(default_factory=lambda: [
        ETSSpec(error="add", trend=None, seasonal=None),
        ETSSpec(error="add", trend="add", seasonal=None),
        ETSSpec(error="add", trend="add", seasonal="add"),
        ETSSpec(error="add", trend="add", seasonal="add", damped_trend=True),
        ETSSpec(error="mul", trend="add", seasonal="mul"),
        ETSSpec(error="mul", trend="add", seasonal="mul", damped_trend=True),
    ])

    # Auto-selection (pmdarima) bounds
    auto_max_p: int = 3
    auto_max_q: int = 3
    auto_stepwise: bool = True


# Default configuration
DEFAULT_FORECAST_CONFIG = ForecastConfig()
