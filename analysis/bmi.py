"""
BMI Metric Pipeline
===================
Derives one Body Mass Index per patient from cracked Observation tables.

Steps: numeric coercion, keep the highest measurement per patient and
code, pivot codes to columns, compute BMI, drop implausible values.
"""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import structlog

from core.models import AnalysisSettings, BODY_HEIGHT_CODE, BODY_WEIGHT_CODE

logger = structlog.get_logger(__name__)

# Column names produced by cracking Observations without explicit columns
CODE_COLUMN = "code.coding.code"
SUBJECT_COLUMN = "subject.reference"
VALUE_COLUMN = "valueQuantity.value"
BMI_COLUMN = "BMI"


def coerce_numeric(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """Convert a column to floats; unparseable values become NaN."""
    df = df.copy()
    if column not in df.columns:
        df[column] = np.nan
    df[column] = pd.to_numeric(df[column], errors="coerce").astype(float)
    return df


def keep_max_per_group(
    df: pd.DataFrame,
    group_cols: Sequence[str],
    value_col: str,
) -> pd.DataFrame:
    """
    Keep the row with the highest value in every group.

    Missing values sort first, so a group only keeps NaN if it has no
    measured value at all. Among rows tied on the maximum, the last one in
    input order is kept.

    Args:
        df: Table with numeric ``value_col``.
        group_cols: Grouping columns, e.g. subject reference and code.
        value_col: Column to maximise.

    Returns:
        One row per group, ordered by the group columns.
    """
    group_cols = list(group_cols)
    if df.empty:
        return df.copy()

    ordered = df.sort_values(
        by=group_cols + [value_col],
        kind="mergesort",
        na_position="first",
    )
    kept = ordered.groupby(group_cols, sort=False, dropna=False).tail(1)

    group_max = ordered.groupby(group_cols, dropna=False)[value_col].transform("max")
    at_max = ordered[value_col].notna() & ordered[value_col].eq(group_max)
    tied_groups = int(
        ordered[at_max].groupby(group_cols, dropna=False).size().gt(1).sum()
    )
    if tied_groups:
        logger.warning(
            "Tied maximum measurements, keeping the last in input order",
            tied_groups=tied_groups,
            value_column=value_col,
        )

    logger.debug(
        "Reduced to one row per group",
        rows_in=len(df),
        rows_out=len(kept),
    )

    return kept.reset_index(drop=True)


def pivot_codes(
    df: pd.DataFrame,
    code_col: str = CODE_COLUMN,
    subject_col: str = SUBJECT_COLUMN,
    value_col: str = VALUE_COLUMN,
) -> pd.DataFrame:
    """
    Spread values across one column per code.

    Expects at most one row per (subject, code); run keep_max_per_group
    first.
    """
    reduced = df[[code_col, subject_col, value_col]].dropna(subset=[code_col, subject_col])
    if reduced.empty:
        return pd.DataFrame(columns=[subject_col])

    wide = reduced.pivot(index=subject_col, columns=code_col, values=value_col)
    wide.columns = [str(column) for column in wide.columns]
    wide = wide.reset_index()
    wide.columns.name = None
    return wide


def compute_bmi(
    df: pd.DataFrame,
    weight_code: str = BODY_WEIGHT_CODE,
    height_code: str = BODY_HEIGHT_CODE,
    bmi_col: str = BMI_COLUMN,
) -> pd.DataFrame:
    """
    Add ``BMI = weight[kg] / (height[cm] / 100)^2``.

    A missing weight or height column gives NaN; a height of 0 gives inf.
    """
    df = df.copy()
    weight = df[weight_code] if weight_code in df.columns else pd.Series(np.nan, index=df.index)
    height = df[height_code] if height_code in df.columns else pd.Series(np.nan, index=df.index)

    with np.errstate(divide="ignore", invalid="ignore"):
        df[bmi_col] = weight.astype(float) / (height.astype(float) / 100) ** 2

    return df


def filter_plausible_bmi(
    df: pd.DataFrame,
    upper_limit: float = 150.0,
    bmi_col: str = BMI_COLUMN,
) -> pd.DataFrame:
    """Drop rows whose BMI is missing, infinite, not positive or >= upper_limit."""
    bmi = df[bmi_col]
    keep = bmi.notna() & np.isfinite(bmi) & (bmi > 0) & (bmi < upper_limit)

    dropped = int((~keep).sum())
    if dropped:
        logger.info(
            "Implausible or missing BMI values dropped",
            dropped=dropped,
            kept=int(keep.sum()),
            upper_limit=upper_limit,
        )

    return df[keep].reset_index(drop=True)


def compute_bmi_table(
    observations: pd.DataFrame,
    settings: Optional[AnalysisSettings] = None,
    code_col: str = CODE_COLUMN,
    subject_col: str = SUBJECT_COLUMN,
    value_col: str = VALUE_COLUMN,
) -> pd.DataFrame:
    """
    Run the whole metric pipeline on a cracked Observation table.

    Returns:
        One row per subject reference with one column per code and BMI.
    """
    settings = settings or AnalysisSettings()
    empty_columns: List[str] = [subject_col, settings.weight_code, settings.height_code, BMI_COLUMN]

    obs = coerce_numeric(observations, value_col)
    # Paths absent from every Observation give no column when cracking
    for column in (subject_col, code_col):
        if column not in obs.columns:
            obs[column] = np.nan

    obs = keep_max_per_group(obs, [subject_col, code_col], value_col)
    result = pivot_codes(obs, code_col=code_col, subject_col=subject_col, value_col=value_col)

    if result.empty:
        logger.info("No Observation with subject and code", observations=len(observations))
        return pd.DataFrame(columns=empty_columns)

    result = compute_bmi(result, settings.weight_code, settings.height_code)
    result = filter_plausible_bmi(result, settings.bmi_upper_limit)

    logger.info(
        "BMI computed",
        observations=len(observations),
        patients=len(result),
    )

    return result
