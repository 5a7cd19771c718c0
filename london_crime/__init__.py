"""London crime time-series forecasting walkthrough."""

__version__ = "0.1.0"
