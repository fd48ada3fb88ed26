"""
FHIR BMI Analysis Core Module
=============================
Exceptions, data models, and shared utilities.
"""

from .exceptions import (
    AnalysisError,
    FHIRSearchError,
    FlatteningError,
    TableDesignError,
    MeltError,
    ConfigurationError,
)
from .models import (
    TableFormat,
    TableDescription,
    TableDesign,
    AnalysisSettings,
)
from .utils import setup_logging, merge_configs, resolve_env_vars

__all__ = [
    # Exceptions
    "AnalysisError",
    "FHIRSearchError",
    "FlatteningError",
    "TableDesignError",
    "MeltError",
    "ConfigurationError",
    # Models
    "TableFormat",
    "TableDescription",
    "TableDesign",
    "AnalysisSettings",
    # Utilities
    "setup_logging",
    "merge_configs",
    "resolve_env_vars",
]
