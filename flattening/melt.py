"""
Melting of Indexed Tables
=========================
Reshapes cracked tables with repeated elements into one row per element.

Melting groups the values of all melt columns by their first index level,
so values that came from the same repeated element (e.g. ``diagnosis[2]``
and its ``use``) always end up in the same output row.
"""

import re
from typing import Dict, List, Optional, Sequence

import pandas as pd
import structlog

from core.exceptions import MeltError
from flattening.crack import DEFAULT_SEP, validate_brackets

logger = structlog.get_logger(__name__)


def _index_pattern(brackets):
    opening, closing = (re.escape(b) for b in brackets)
    return re.compile(rf"^{opening}([0-9]+(?:\.[0-9]+)*){closing}(.*)$", re.DOTALL)


def fhir_melt(
    indexed_data_frame: pd.DataFrame,
    columns: Sequence[str],
    brackets: Sequence[str] = ("[", "]"),
    sep: str = DEFAULT_SEP,
    id_name: str = "resource_identifier",
    index_name: Optional[str] = None,
    all_columns: bool = False,
) -> pd.DataFrame:
    """
    Spread indexed multiple values over rows.

    Args:
        indexed_data_frame: Table cracked with brackets.
        columns: Columns holding elements of the same repeated parent.
        brackets: Index markers used when cracking.
        sep: Separator used when cracking.
        id_name: Name of the column recording the source row label.
        index_name: If given, name of a column recording the element's
            position in the repeated parent.
        all_columns: Copy the remaining columns into every output row.

    Returns:
        Molten DataFrame with one index level removed from melted values.
    """
    brackets = validate_brackets(brackets)
    if brackets is None:
        raise MeltError("Melting requires brackets")

    columns = list(columns)
    if not columns:
        raise MeltError("No columns to melt")
    for column in columns:
        if column not in indexed_data_frame.columns:
            raise MeltError(f"Column '{column}' not in table", column=column)

    pattern = _index_pattern(brackets)
    rows = []

    for row_id, row in indexed_data_frame.iterrows():
        slots: Dict[int, Dict[str, List[str]]] = {}

        for column in columns:
            cell = row[column]
            if pd.isna(cell):
                continue
            for element in str(cell).split(sep):
                match = pattern.match(element)
                if match is None:
                    raise MeltError(
                        f"Value {element!r} in column '{column}' has no index",
                        column=column,
                    )
                levels = match.group(1).split(".")
                value = match.group(2)
                if len(levels) > 1:
                    value = f"{brackets[0]}{'.'.join(levels[1:])}{brackets[1]}{value}"
                slots.setdefault(int(levels[0]), {}).setdefault(column, []).append(value)

        base = row.to_dict() if all_columns else {}

        if not slots:
            molten = {**base, **{column: None for column in columns}, id_name: row_id}
            if index_name:
                molten[index_name] = None
            rows.append(molten)
            continue

        for slot in sorted(slots):
            molten = dict(base)
            for column in columns:
                values = slots[slot].get(column)
                molten[column] = sep.join(values) if values else None
            molten[id_name] = row_id
            if index_name:
                molten[index_name] = slot
            rows.append(molten)

    if all_columns:
        output_columns = list(indexed_data_frame.columns)
    else:
        output_columns = list(columns)
    output_columns.append(id_name)
    if index_name:
        output_columns.append(index_name)

    molten_df = pd.DataFrame.from_records(rows, columns=output_columns)

    logger.debug(
        "Table melted",
        columns=columns,
        rows_in=len(indexed_data_frame),
        rows_out=len(molten_df),
    )

    return molten_df


def fhir_rm_indices(
    indexed_data_frame: pd.DataFrame,
    brackets: Sequence[str] = ("[", "]"),
    columns: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Remove all bracketed indices from the string cells of a table."""
    brackets = validate_brackets(brackets)
    if brackets is None:
        raise MeltError("Removing indices requires brackets")

    opening, closing = (re.escape(b) for b in brackets)
    pattern = re.compile(rf"{opening}[0-9.]*{closing}")

    df = indexed_data_frame.copy()
    for column in columns if columns is not None else df.columns:
        if column not in df.columns:
            raise MeltError(f"Column '{column}' not in table", column=column)
        df[column] = df[column].map(
            lambda value: pattern.sub("", value) if isinstance(value, str) else value
        )

    return df
