"""
FHIR BMI Analysis Data Models
=============================
Pydantic models for table descriptions and analysis settings.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, field_validator


DEFAULT_SERVER_URL = "https://mii-agiop-3p.life.uni-leipzig.de/fhir"

# LOINC codes
BODY_WEIGHT_CODE = "3142-7"
BODY_HEIGHT_CODE = "8302-2"

# ICD-10 hypertensive diseases
HYPERTENSION_PREFIXES = ["I10", "I11", "I12", "I13", "I14", "I15"]


# =============================================================================
# Enums
# =============================================================================


class TableFormat(str, Enum):
    """Layout of multiple values in a cracked table."""

    COMPACT = "compact"  # one cell, values joined by the separator
    WIDE = "wide"  # one column per indexed value


# =============================================================================
# Flattening Models
# =============================================================================


class TableDescription(BaseModel):
    """
    Description of one flat table extracted from FHIR bundles.

    ``cols`` maps output column names to element paths. Paths use ``/`` or
    ``.`` between levels (``subject/reference``). An empty mapping means
    every leaf element found in the resources becomes a column.
    """

    resource: str = Field(..., min_length=1, description="FHIR resource type")
    cols: Dict[str, str] = Field(
        default_factory=dict, description="Column name -> element path"
    )
    rm_empty_cols: bool = Field(
        default=False, description="Drop columns without any value"
    )
    format: TableFormat = Field(default=TableFormat.COMPACT)

    @field_validator("cols", mode="before")
    @classmethod
    def normalize_cols(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, (list, tuple)):
            return {str(path).replace("/", "."): path for path in v}
        return v

    @field_validator("cols")
    @classmethod
    def validate_paths(cls, v: Dict[str, str]) -> Dict[str, str]:
        for name, path in v.items():
            if not name:
                raise ValueError("Column names must not be empty")
            if not path or not path.strip("/."):
                raise ValueError(f"Empty element path for column '{name}'")
        return v

    @property
    def infer_columns(self) -> bool:
        return not self.cols


class TableDesign(BaseModel):
    """Named collection of table descriptions cracked in one pass."""

    tables: Dict[str, TableDescription] = Field(default_factory=dict)

    def names(self) -> List[str]:
        return list(self.tables)

    def resources(self) -> List[str]:
        return [description.resource for description in self.tables.values()]


# =============================================================================
# Configuration Models
# =============================================================================


class AnalysisSettings(BaseModel):
    """Settings for the BMI / hypertension analysis run."""

    # FHIR server
    server_url: str = Field(default=DEFAULT_SERVER_URL, min_length=1)
    auth_token: Optional[str] = Field(default=None)
    max_bundles: Optional[int] = Field(default=None, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0)

    # Observation codes
    code_system: str = Field(default="http://loinc.org")
    weight_code: str = Field(default=BODY_WEIGHT_CODE)
    height_code: str = Field(default=BODY_HEIGHT_CODE)
    bmi_upper_limit: float = Field(default=150.0, gt=0)

    # Comorbidity
    hypertension_prefixes: List[str] = Field(
        default_factory=lambda: list(HYPERTENSION_PREFIXES)
    )
    comorbidity_use: str = Field(default="CM")

    # Flattening
    brackets: Tuple[str, str] = Field(default=("[", "]"))
    sep: str = Field(default=":::", min_length=1)

    # Output
    plot_seed: int = Field(default=42)

    @field_validator("server_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("brackets")
    @classmethod
    def validate_brackets(cls, v: Tuple[str, str]) -> Tuple[str, str]:
        if not v[0] or not v[1]:
            raise ValueError("Brackets must be two non-empty strings")
        return v

    @field_validator("hypertension_prefixes")
    @classmethod
    def validate_prefixes(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("At least one hypertension code prefix is required")
        return v

    @property
    def observation_codes(self) -> List[str]:
        return [
            f"{self.code_system}|{self.weight_code}",
            f"{self.code_system}|{self.height_code}",
        ]
