"""
FHIR Flattening Layer
=====================
Cracking of FHIR bundles into tables, melting and index removal.
"""

from .crack import (
    fhir_table_description,
    fhir_design,
    fhir_crack,
    fhir_common_columns,
)
from .melt import fhir_melt, fhir_rm_indices

__all__ = [
    # Cracking
    "fhir_table_description",
    "fhir_design",
    "fhir_crack",
    "fhir_common_columns",
    # Melting
    "fhir_melt",
    "fhir_rm_indices",
]
