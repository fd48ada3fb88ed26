"""Configuration loading for the FHIR BMI analysis."""
