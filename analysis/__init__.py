"""
FHIR BMI Analysis Layer
=======================
BMI metric pipeline, hypertension comorbidity filter, join, and the
end-to-end runner.
"""

from .bmi import (
    coerce_numeric,
    keep_max_per_group,
    pivot_codes,
    compute_bmi,
    filter_plausible_bmi,
    compute_bmi_table,
)
from .comorbidity import (
    DiagnosisSlot,
    encounter_condition_design,
    melt_diagnoses,
    diagnosis_slots,
    comorbidity_condition_ids,
    filter_conditions,
    hypertensive_subjects,
)
from .join import flag_comorbidity
from .pipeline import AnalysisResult, run_analysis

__all__ = [
    # BMI
    "coerce_numeric",
    "keep_max_per_group",
    "pivot_codes",
    "compute_bmi",
    "filter_plausible_bmi",
    "compute_bmi_table",
    # Comorbidity
    "DiagnosisSlot",
    "encounter_condition_design",
    "melt_diagnoses",
    "diagnosis_slots",
    "comorbidity_condition_ids",
    "filter_conditions",
    "hypertensive_subjects",
    # Join
    "flag_comorbidity",
    # Pipeline
    "AnalysisResult",
    "run_analysis",
]
