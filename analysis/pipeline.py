"""
BMI / Hypertension Analysis Pipeline
====================================
Step A: download body weight and height Observations (with their
Patients) and compute one BMI per patient.
Step B: download the Encounters of those patients together with their
diagnoses and flag patients with hypertension as a comorbidity.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

import pandas as pd
import structlog

from analysis.bmi import compute_bmi_table
from analysis.comorbidity import encounter_condition_design, hypertensive_subjects
from analysis.join import flag_comorbidity
from core.models import AnalysisSettings, TableDescription
from data.fhir_search import FHIRBody, FHIRRequest, FHIRSearchClient, fhir_body, fhir_url
from flattening.crack import fhir_crack, fhir_table_description

logger = structlog.get_logger(__name__)


@dataclass
class AnalysisResult:
    """Final table plus the intermediate tables it was built from."""

    result: pd.DataFrame
    observations: pd.DataFrame
    patients: pd.DataFrame
    encounters: pd.DataFrame
    conditions: pd.DataFrame
    hypertensive_subjects: Set[str] = field(default_factory=set)


def observation_request(settings: AnalysisSettings) -> FHIRRequest:
    """Body weight and height Observations including their Patients."""
    return fhir_url(
        url=settings.server_url,
        resource="Observation",
        parameters={
            "_include": "Observation:patient",
            "code": settings.observation_codes,
        },
    )


def encounter_request(
    settings: AnalysisSettings, patient_ids: List[str]
) -> Tuple[FHIRRequest, FHIRBody]:
    """Encounters of the given patients including their diagnoses, via POST."""
    body = fhir_body({
        "patient": patient_ids,
        "_include": "Encounter:diagnosis",
    })
    return fhir_url(url=settings.server_url, resource="Encounter"), body


def patient_description() -> TableDescription:
    return fhir_table_description(
        resource="Patient",
        cols={"id": "id", "gender": "gender", "birthdate": "birthDate"},
    )


def run_analysis(
    client: FHIRSearchClient,
    settings: Optional[AnalysisSettings] = None,
) -> AnalysisResult:
    """
    Run both analysis steps against a FHIR server.

    Args:
        client: Search client for the server in ``settings.server_url``.
        settings: Analysis settings; defaults if None.

    Returns:
        AnalysisResult whose ``result`` has one row per patient with the
        measurement columns, BMI and the Hypertension flag.
    """
    settings = settings or AnalysisSettings()

    # Step A: BMI
    bundles = client.search(observation_request(settings), max_bundles=settings.max_bundles)
    observations = fhir_crack(bundles, fhir_table_description(resource="Observation"), sep=settings.sep)
    patients = fhir_crack(bundles, patient_description(), sep=settings.sep)

    bmi_table = compute_bmi_table(observations, settings)

    # Step B: hypertension as comorbidity
    design = encounter_condition_design()
    patient_ids = patients["id"].dropna().tolist()

    if patient_ids:
        request, body = encounter_request(settings, patient_ids)
        encounter_bundles = client.search(request, body=body, max_bundles=settings.max_bundles)
    else:
        logger.warning("No patients found, skipping encounter search")
        encounter_bundles = []

    tables = fhir_crack(
        encounter_bundles, design, sep=settings.sep, brackets=settings.brackets
    )
    subjects = hypertensive_subjects(tables, settings)

    result = flag_comorbidity(bmi_table, subjects)

    logger.info(
        "Analysis complete",
        patients=len(patients),
        patients_with_bmi=len(result),
        hypertensive=len(subjects),
    )

    return AnalysisResult(
        result=result,
        observations=observations,
        patients=patients,
        encounters=tables["encounters"],
        conditions=tables["conditions"],
        hypertensive_subjects=subjects,
    )
