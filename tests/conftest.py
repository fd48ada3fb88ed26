"""Shared FHIR bundle fixtures."""

import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))


def _observation(obs_id, patient, code, value, unit):
    return {
        "resourceType": "Observation",
        "id": obs_id,
        "status": "final",
        "code": {"coding": [{"system": "http://loinc.org", "code": code}]},
        "subject": {"reference": f"Patient/{patient}"},
        "valueQuantity": {"value": value, "unit": unit},
    }


def _patient(patient_id, gender, birth_date):
    return {
        "resourceType": "Patient",
        "id": patient_id,
        "gender": gender,
        "birthDate": birth_date,
    }


def _encounter(enc_id, patient, diagnoses):
    diagnosis = []
    for condition_id, use in diagnoses:
        element = {"condition": {"reference": f"Condition/{condition_id}"}}
        if use is not None:
            element["use"] = {"coding": [{"code": use}]}
        diagnosis.append(element)
    return {
        "resourceType": "Encounter",
        "id": enc_id,
        "subject": {"reference": f"Patient/{patient}"},
        "diagnosis": diagnosis,
    }


def _condition(condition_id, patient, code):
    return {
        "resourceType": "Condition",
        "id": condition_id,
        "code": {"coding": [{"system": "http://fhir.de/CodeSystem/bfarm/icd-10-gm", "code": code}]},
        "subject": {"reference": f"Patient/{patient}"},
    }


def make_bundle(resources, next_url=None):
    bundle = {
        "resourceType": "Bundle",
        "type": "searchset",
        "entry": [{"resource": resource} for resource in resources],
    }
    if next_url:
        bundle["link"] = [{"relation": "next", "url": next_url}]
    return bundle


@pytest.fixture
def observation_bundles():
    """
    Two pages of Observations with their Patients.

    A: 68 and 70 kg, 175 cm -> BMI 22.86
    B: 80 kg, height 0 (data error)
    C: unparseable weight, 160 cm
    D: 60 kg, 165 cm -> BMI 22.04
    """
    page1 = make_bundle(
        [
            _observation("o1", "A", "3142-7", 68, "kg"),
            _observation("o2", "A", "3142-7", 70, "kg"),
            _observation("o3", "A", "8302-2", 175, "cm"),
            _observation("o4", "B", "3142-7", 80, "kg"),
            _observation("o5", "B", "8302-2", 0, "cm"),
            _patient("A", "female", "1970-01-01"),
            _patient("B", "male", "1965-05-05"),
        ],
        next_url="https://fhir.example.org/fhir?_getpages=abc&_getpagesoffset=7",
    )
    page2 = make_bundle(
        [
            _observation("o6", "C", "3142-7", "n/a", "kg"),
            _observation("o7", "C", "8302-2", 160, "cm"),
            _observation("o8", "D", "3142-7", 60, "kg"),
            _observation("o9", "D", "8302-2", 165, "cm"),
            _patient("C", "male", "1980-03-03"),
            _patient("D", "female", "1990-09-09"),
        ]
    )
    return [page1, page2]


@pytest.fixture
def encounter_bundles():
    """
    Encounters with diagnoses and the referenced Conditions.

    A: c1 I10 as chief complaint (CC), c2 I11.9 as comorbidity (CM) -> Yes
    D: c3 I10 as admission diagnosis (AD), c4 E11.9 as comorbidity -> No
    B: c5 I10 without use, c6 E66 as comorbidity -> No
    """
    return [
        make_bundle(
            [
                _encounter("e1", "A", [("c1", "CC"), ("c2", "CM")]),
                _encounter("e2", "D", [("c3", "AD"), ("c4", "CM")]),
                _encounter("e3", "B", [("c5", None), ("c6", "CM")]),
                _condition("c1", "A", "I10"),
                _condition("c2", "A", "I11.9"),
                _condition("c3", "D", "I10"),
                _condition("c4", "D", "E11.9"),
                _condition("c5", "B", "I10"),
                _condition("c6", "B", "E66.0"),
            ]
        )
    ]
