"""
FHIR BMI Analysis Custom Exceptions
===================================
Custom exception classes for the FHIR BMI analysis pipeline.
"""

from typing import Optional


class AnalysisError(Exception):
    """Base exception for all analysis pipeline errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# =============================================================================
# Retrieval Exceptions
# =============================================================================


class FHIRSearchError(AnalysisError):
    """Exception raised when a FHIR search request fails."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(
            message,
            error_code="FHIR_SEARCH_ERROR",
            details={"url": url, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code


# =============================================================================
# Flattening Exceptions
# =============================================================================


class FlatteningError(AnalysisError):
    """Base exception for bundle flattening errors."""

    pass


class TableDesignError(FlatteningError):
    """Exception raised for invalid table descriptions or designs."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(
            message,
            error_code="TABLE_DESIGN_ERROR",
            details={"table": table},
        )
        self.table = table


class MeltError(FlatteningError):
    """Exception raised when an indexed table cannot be melted."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(
            message,
            error_code="MELT_ERROR",
            details={"column": column},
        )
        self.column = column


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(AnalysisError):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            details={"config_key": config_key},
        )
        self.config_key = config_key
