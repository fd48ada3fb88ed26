"""
Comorbidity Filter
==================
Finds patients with a hypertension diagnosis recorded as a comorbidity.

Encounters reference their diagnoses through a repeated ``diagnosis``
element whose ``condition`` and ``use`` belong together. The Encounter table
is melted on both columns at once and every molten row becomes one
DiagnosisSlot, so a condition reference is only ever compared with the use
code of its own diagnosis element.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set

import pandas as pd
import structlog

from core.models import AnalysisSettings, TableDesign
from flattening.crack import fhir_design, fhir_table_description
from flattening.melt import fhir_melt, fhir_rm_indices

logger = structlog.get_logger(__name__)

CONDITION_PREFIX = "Condition/"
SLOT_COLUMN = "diagnosis_slot"
ROW_COLUMN = "resource_identifier"


@dataclass(frozen=True)
class DiagnosisSlot:
    """One element of Encounter.diagnosis: the condition and its use."""

    encounter_row: int
    slot: Optional[int]
    condition_reference: Optional[str]
    use: Optional[str]
    patient: Optional[str] = None

    @property
    def condition_id(self) -> Optional[str]:
        if self.condition_reference is None:
            return None
        if self.condition_reference.startswith(CONDITION_PREFIX):
            return self.condition_reference[len(CONDITION_PREFIX):]
        return self.condition_reference


def encounter_condition_design() -> TableDesign:
    """Joint design for Encounters with their diagnoses and Conditions."""
    encounters = fhir_table_description(
        resource="Encounter",
        cols={
            "patient": "subject/reference",
            "diagnosis": "diagnosis/condition/reference",
            "diagnosis.use": "diagnosis/use/coding/code",
        },
    )
    conditions = fhir_table_description(
        resource="Condition",
        cols={
            "id": "id",
            "code": "code/coding/code",
            "patient": "subject/reference",
        },
    )
    return fhir_design(encounters=encounters, conditions=conditions)


def melt_diagnoses(
    encounters: pd.DataFrame,
    settings: Optional[AnalysisSettings] = None,
) -> pd.DataFrame:
    """Melt Encounter diagnoses to one row per diagnosis element, unindexed."""
    settings = settings or AnalysisSettings()
    molten = fhir_melt(
        encounters,
        columns=["diagnosis", "diagnosis.use"],
        brackets=settings.brackets,
        sep=settings.sep,
        id_name=ROW_COLUMN,
        index_name=SLOT_COLUMN,
        all_columns=True,
    )
    return fhir_rm_indices(molten, brackets=settings.brackets)


def _cell(value) -> Optional[str]:
    return None if pd.isna(value) else str(value)


def diagnosis_slots(molten: pd.DataFrame) -> List[DiagnosisSlot]:
    """Convert a molten, unindexed Encounter table into DiagnosisSlots."""
    slots = []
    for record in molten.to_dict("records"):
        slot = record.get(SLOT_COLUMN)
        slots.append(
            DiagnosisSlot(
                encounter_row=record[ROW_COLUMN],
                slot=None if pd.isna(slot) else int(slot),
                condition_reference=_cell(record.get("diagnosis")),
                use=_cell(record.get("diagnosis.use")),
                patient=_cell(record.get("patient")),
            )
        )
    return slots


def comorbidity_condition_ids(
    slots: Iterable[DiagnosisSlot],
    use: str = "CM",
) -> Set[str]:
    """Ids of Conditions referenced by diagnosis slots with the given use."""
    return {
        slot.condition_id
        for slot in slots
        if slot.use == use and slot.condition_id is not None
    }


def code_pattern(prefixes: Sequence[str]):
    """Regex alternation matching any of the code prefixes."""
    return re.compile("|".join(re.escape(prefix) for prefix in prefixes))


def filter_conditions(
    conditions: pd.DataFrame,
    condition_ids: Iterable[str],
    prefixes: Sequence[str],
) -> pd.DataFrame:
    """Conditions whose id is in ``condition_ids`` and code matches a prefix."""
    pattern = code_pattern(prefixes)
    ids = set(condition_ids)

    in_ids = conditions["id"].isin(ids)
    matches_code = conditions["code"].map(
        lambda code: isinstance(code, str) and pattern.search(code) is not None
    ).astype(bool)

    return conditions[in_ids & matches_code].reset_index(drop=True)


def hypertensive_subjects(
    tables: Dict[str, pd.DataFrame],
    settings: Optional[AnalysisSettings] = None,
) -> Set[str]:
    """
    Subject references with hypertension recorded as a comorbidity.

    Args:
        tables: Result of cracking encounter_condition_design() with
            brackets, holding "encounters" and "conditions".
        settings: Analysis settings (brackets, use code, code prefixes).

    Returns:
        Distinct patient references of the matching Conditions.
    """
    settings = settings or AnalysisSettings()

    molten = melt_diagnoses(tables["encounters"], settings)
    slots = diagnosis_slots(molten)
    condition_ids = comorbidity_condition_ids(slots, settings.comorbidity_use)

    conditions = fhir_rm_indices(tables["conditions"], brackets=settings.brackets)
    matching = filter_conditions(conditions, condition_ids, settings.hypertension_prefixes)

    subjects = set(matching["patient"].dropna())

    logger.info(
        "Comorbidity filter applied",
        diagnosis_slots=len(slots),
        comorbidity_conditions=len(condition_ids),
        matching_conditions=len(matching),
        subjects=len(subjects),
    )

    return subjects
