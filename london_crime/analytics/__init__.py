"""
Data Science Analytics Module.
Provides exploration, decomposition and residual diagnostics for the crime series.
"""
from .diagnostics import ModelDiagnostics
from .decomposition import TimeSeriesDecomposer
from .exploration import CrimeExplorer

__all__ = [
    "ModelDiagnostics",
    "TimeSeriesDecomposer",
    "CrimeExplorer"
]
