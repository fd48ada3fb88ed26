"""
Tests for the BMI Metric Pipeline
=================================
"""

import numpy as np
import pandas as pd
import pytest

from analysis.bmi import (
    coerce_numeric,
    compute_bmi,
    compute_bmi_table,
    filter_plausible_bmi,
    keep_max_per_group,
    pivot_codes,
)
from core.models import AnalysisSettings
from flattening.crack import fhir_crack, fhir_table_description


@pytest.fixture
def observations(observation_bundles):
    return fhir_crack(observation_bundles, fhir_table_description("Observation"))


class TestCoerceNumeric:
    """Tests for coerce_numeric."""

    def test_unparseable_values_become_nan(self):
        """Test text that is not a number becomes NaN."""
        df = pd.DataFrame({"v": ["68", "70.5", "n/a", None]})

        out = coerce_numeric(df, "v")

        assert out["v"].tolist()[:2] == [68.0, 70.5]
        assert out["v"].iloc[2:].isna().all()
        assert out["v"].dtype == float

    def test_missing_column_added(self):
        """Test a missing value column is added as all-NaN."""
        out = coerce_numeric(pd.DataFrame({"a": [1]}), "v")

        assert "v" in out.columns
        assert out["v"].isna().all()


class TestKeepMaxPerGroup:
    """Tests for keep_max_per_group."""

    def test_keeps_highest_value(self):
        """Test only the maximum per group survives."""
        df = pd.DataFrame({
            "s": ["P/1", "P/1", "P/2", "P/1"],
            "c": ["w", "w", "w", "h"],
            "v": [68.0, 70.0, 50.0, 175.0],
        })

        out = keep_max_per_group(df, ["s", "c"], "v")

        assert len(out) == 3
        assert out.loc[(out["s"] == "P/1") & (out["c"] == "w"), "v"].item() == 70.0

    def test_measured_value_beats_missing(self):
        """Test NaN is only kept when a group has no measured value."""
        df = pd.DataFrame({
            "s": ["P/1", "P/1", "P/2"],
            "c": ["w", "w", "w"],
            "v": [70.0, np.nan, np.nan],
        })

        out = keep_max_per_group(df, ["s", "c"], "v")

        assert out.loc[out["s"] == "P/1", "v"].item() == 70.0
        assert np.isnan(out.loc[out["s"] == "P/2", "v"].item())

    def test_ties_keep_last_in_input_order(self):
        """Test the last of several equal maxima is kept."""
        df = pd.DataFrame({
            "s": ["P/1", "P/1"],
            "c": ["w", "w"],
            "v": [70.0, 70.0],
            "id": ["first", "second"],
        })

        out = keep_max_per_group(df, ["s", "c"], "v")

        assert out["id"].tolist() == ["second"]

    def test_empty(self):
        """Test an empty table stays empty."""
        df = pd.DataFrame(columns=["s", "c", "v"])
        assert keep_max_per_group(df, ["s", "c"], "v").empty


class TestPivotAndBmi:
    """Tests for pivot_codes, compute_bmi and filter_plausible_bmi."""

    def test_pivot_one_column_per_code(self):
        """Test codes become columns keyed by subject."""
        df = pd.DataFrame({
            "code.coding.code": ["3142-7", "8302-2", "3142-7"],
            "subject.reference": ["Patient/A", "Patient/A", "Patient/B"],
            "valueQuantity.value": [70.0, 175.0, 80.0],
        })

        wide = pivot_codes(df)

        assert list(wide.columns) == ["subject.reference", "3142-7", "8302-2"]
        assert wide["subject.reference"].tolist() == ["Patient/A", "Patient/B"]
        assert np.isnan(wide.loc[1, "8302-2"])

    def test_pivot_drops_rows_without_subject(self):
        """Test rows without subject or code are not pivoted."""
        df = pd.DataFrame({
            "code.coding.code": ["3142-7", None],
            "subject.reference": [None, "Patient/A"],
            "valueQuantity.value": [70.0, 80.0],
        })

        assert pivot_codes(df).empty

    def test_bmi_formula(self):
        """Test BMI = weight / (height / 100)^2."""
        df = pd.DataFrame({"3142-7": [70.0, 80.0], "8302-2": [175.0, 0.0]})

        out = compute_bmi(df)

        assert out.loc[0, "BMI"] == pytest.approx(22.857, abs=1e-3)
        assert np.isinf(out.loc[1, "BMI"])

    def test_bmi_missing_height_column(self):
        """Test a missing height column gives NaN BMI."""
        out = compute_bmi(pd.DataFrame({"3142-7": [70.0]}))
        assert out["BMI"].isna().all()

    def test_filter_plausible(self):
        """Test missing, infinite, non-positive and too large BMI are dropped."""
        df = pd.DataFrame({"BMI": [20.0, 150.0, 149.9, np.nan, np.inf, 0.0, -1.0]})

        out = filter_plausible_bmi(df, upper_limit=150)

        assert out["BMI"].tolist() == [20.0, 149.9]


class TestComputeBmiTable:
    """Tests for the whole metric pipeline."""

    def test_fixture_patients(self, observations):
        """Test only patients with a plausible BMI remain."""
        table = compute_bmi_table(observations)

        assert table["subject.reference"].tolist() == ["Patient/A", "Patient/D"]
        assert table.loc[0, "3142-7"] == 70.0
        assert table.loc[0, "BMI"] == pytest.approx(70 / 1.75 ** 2)
        assert table.loc[1, "BMI"] == pytest.approx(60 / 1.65 ** 2)

    def test_bmi_always_in_plausible_range(self, observations):
        """Test every remaining BMI is finite, positive and below the limit."""
        table = compute_bmi_table(observations)

        assert np.isfinite(table["BMI"]).all()
        assert (table["BMI"] > 0).all()
        assert (table["BMI"] < 150).all()

    def test_upper_limit_from_settings(self, observations):
        """Test the upper limit is taken from the settings."""
        table = compute_bmi_table(observations, AnalysisSettings(bmi_upper_limit=22.5))

        assert table["subject.reference"].tolist() == ["Patient/D"]

    def test_no_observations(self):
        """Test an empty Observation table gives an empty result."""
        table = compute_bmi_table(pd.DataFrame())

        assert table.empty
        assert list(table.columns) == ["subject.reference", "3142-7", "8302-2", "BMI"]

    def test_observations_without_subject(self):
        """Test Observations lacking a subject give an empty result, not an error."""
        bundle = {
            "resourceType": "Bundle",
            "entry": [{
                "resource": {
                    "resourceType": "Observation",
                    "id": "o1",
                    "code": {"coding": [{"system": "http://loinc.org", "code": "3142-7"}]},
                    "valueQuantity": {"value": 70},
                }
            }],
        }
        observations = fhir_crack([bundle], fhir_table_description("Observation"))
        assert "subject.reference" not in observations.columns

        table = compute_bmi_table(observations)

        assert table.empty
        assert list(table.columns) == ["subject.reference", "3142-7", "8302-2", "BMI"]

    def test_observations_without_code(self):
        """Test Observations lacking a code give an empty result, not an error."""
        observations = pd.DataFrame({
            "subject.reference": ["Patient/A"],
            "valueQuantity.value": ["70"],
        })

        table = compute_bmi_table(observations)

        assert table.empty
        assert "BMI" in table.columns
