"""
FHIR Data Retrieval Module

Provides FHIR R4 search capabilities for the analysis pipeline.
"""

from .fhir_search import (
    FHIRRequest,
    FHIRBody,
    BundleList,
    FHIRSearchClient,
    fhir_url,
    fhir_body,
    fhir_search,
    next_bundle_url,
)

__all__ = [
    'FHIRRequest',
    'FHIRBody',
    'BundleList',
    'FHIRSearchClient',
    'fhir_url',
    'fhir_body',
    'fhir_search',
    'next_bundle_url',
]
