"""Attach a comorbidity Yes/No flag to the BMI table."""

from typing import Iterable

import pandas as pd
import structlog

logger = structlog.get_logger(__name__)

FLAG_YES = "Yes"
FLAG_NO = "No"


def flag_comorbidity(
    metric_table: pd.DataFrame,
    subjects: Iterable[str],
    column: str = "Hypertension",
    subject_col: str = "subject.reference",
) -> pd.DataFrame:
    """
    Add ``column`` = "Yes" for rows whose subject is in ``subjects``.

    Every row starts as "No", so the flag is never missing.
    """
    result = metric_table.copy()
    result[column] = FLAG_NO
    result.loc[result[subject_col].isin(set(subjects)), column] = FLAG_YES

    logger.info(
        "Comorbidity flag joined",
        column=column,
        flagged=int((result[column] == FLAG_YES).sum()),
        total=len(result),
    )

    return result
