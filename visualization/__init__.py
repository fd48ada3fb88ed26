"""FHIR BMI Analysis Visualization Module."""

from .bmi_plot import plot_bmi_by_comorbidity

__all__ = [
    "plot_bmi_by_comorbidity",
]
