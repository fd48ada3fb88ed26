"""
FHIR Bundle Cracking Module
===========================
Flattens FHIR R4 bundles into one pandas DataFrame per table description.

Each cell holds the values found under the column's element path. Multiple
values are joined with a separator; with brackets every value carries its
position on each path level, e.g. ``[2.1.1]Condition/c7`` for the
reference of the second ``diagnosis`` element of an Encounter.
"""

import json
import re
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
import structlog
from pydantic import ValidationError

from core.exceptions import FlatteningError, TableDesignError
from core.models import TableDescription, TableDesign, TableFormat

logger = structlog.get_logger(__name__)

DEFAULT_SEP = ":::"

Index = Tuple[int, ...]
IndexedValue = Tuple[Index, str]
Brackets = Optional[Tuple[str, str]]


# =============================================================================
# Table Descriptions
# =============================================================================


def fhir_table_description(
    resource: str,
    cols: Optional[Union[Mapping[str, str], Sequence[str]]] = None,
    rm_empty_cols: bool = False,
    format: Union[str, TableFormat] = TableFormat.COMPACT,
) -> TableDescription:
    """
    Describe a table to extract from FHIR bundles.

    Args:
        resource: FHIR resource type, e.g. "Patient".
        cols: Column name -> element path mapping, or a list of paths.
            None or empty extracts every leaf element.
        rm_empty_cols: Drop columns that have no value in any row.
        format: "compact" or "wide".

    Returns:
        Validated TableDescription.
    """
    try:
        return TableDescription(
            resource=resource,
            cols=cols,
            rm_empty_cols=rm_empty_cols,
            format=format,
        )
    except ValidationError as e:
        raise TableDesignError(
            f"Invalid table description for {resource}: {e}", table=resource
        ) from e


def fhir_design(*args: TableDesign, **descriptions: TableDescription) -> TableDesign:
    """
    Combine named table descriptions into one design.

    ``fhir_design(encounters=enc_desc, conditions=cond_desc)``
    """
    if args:
        if len(args) == 1 and isinstance(args[0], TableDesign) and not descriptions:
            return args[0]
        raise TableDesignError("Table descriptions must be passed by name")

    if not descriptions:
        raise TableDesignError("A design needs at least one table description")

    for name, description in descriptions.items():
        if not isinstance(description, TableDescription):
            raise TableDesignError(
                f"Design entry '{name}' is not a table description", table=name
            )

    return TableDesign(tables=descriptions)


# =============================================================================
# Element Extraction
# =============================================================================


def _split_path(path: str) -> List[str]:
    return [segment for segment in re.split(r"[/.]", path) if segment]


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _elements(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


def _iter_leaves(
    value: Any, path: Tuple[str, ...], index: Index
) -> Iterator[Tuple[Tuple[str, ...], Index, str]]:
    """Yield (path, index, value) for every leaf below ``value``."""
    for position, item in enumerate(_elements(value), start=1):
        item_index = index + (position,)
        if isinstance(item, dict):
            for key, child in item.items():
                if key == "resourceType":
                    continue
                yield from _iter_leaves(child, path + (key,), item_index)
        elif item is not None:
            yield path, item_index, _render(item)


def _select(value: Any, segments: List[str], index: Index) -> Iterator[IndexedValue]:
    """Yield indexed values found under ``segments`` starting at ``value``."""
    for position, item in enumerate(_elements(value), start=1):
        item_index = index + (position,)
        if not segments:
            if isinstance(item, dict):
                for key, child in item.items():
                    if key == "resourceType":
                        continue
                    for _, leaf_index, leaf in _iter_leaves(child, (key,), item_index):
                        yield leaf_index, leaf
            elif item is not None:
                yield item_index, _render(item)
        elif isinstance(item, dict) and segments[0] in item:
            yield from _select(item[segments[0]], segments[1:], item_index)


def extract_path(resource: Dict[str, Any], path: str) -> List[IndexedValue]:
    """All (index, value) pairs of ``path`` in one resource, in document order."""
    segments = _split_path(path)
    if not segments or segments[0] not in resource:
        return []
    return list(_select(resource[segments[0]], segments[1:], ()))


def extract_leaves(resource: Dict[str, Any]) -> Dict[str, List[IndexedValue]]:
    """Every leaf of a resource grouped by dotted path, in first-seen order."""
    leaves: Dict[str, List[IndexedValue]] = {}
    for key, child in resource.items():
        if key == "resourceType":
            continue
        for path, index, value in _iter_leaves(child, (key,), ()):
            leaves.setdefault(".".join(path), []).append((index, value))
    return leaves


def format_index(index: Index, brackets: Tuple[str, str]) -> str:
    return f"{brackets[0]}{'.'.join(str(i) for i in index)}{brackets[1]}"


# =============================================================================
# Cracking
# =============================================================================


def validate_brackets(brackets: Any) -> Brackets:
    if brackets is None:
        return None
    if (
        not isinstance(brackets, (list, tuple))
        or len(brackets) != 2
        or not all(isinstance(b, str) and b for b in brackets)
    ):
        raise TableDesignError(f"Brackets must be two non-empty strings, got {brackets!r}")
    return tuple(brackets)


def _iter_resources(bundles: Iterable[Dict[str, Any]], resource_type: str) -> Iterator[Dict[str, Any]]:
    if isinstance(bundles, dict):
        bundles = [bundles]
    for bundle in bundles:
        for entry in bundle.get("entry", []):
            resource = entry.get("resource")
            if resource and resource.get("resourceType") == resource_type:
                yield resource


def _compact_cell(values: List[IndexedValue], sep: str, brackets: Brackets) -> Optional[str]:
    if not values:
        return None
    if brackets:
        return sep.join(f"{format_index(index, brackets)}{value}" for index, value in values)
    return sep.join(value for _, value in values)


def _crack_table(
    bundles: Iterable[Dict[str, Any]],
    description: TableDescription,
    sep: str,
    brackets: Brackets,
    name: str,
) -> pd.DataFrame:
    """Crack all resources of one description into a DataFrame."""
    wide = description.format == TableFormat.WIDE
    if wide and brackets is None:
        raise TableDesignError("Wide format requires brackets", table=name)

    resources = list(_iter_resources(bundles, description.resource))
    extracted: List[Dict[str, List[IndexedValue]]] = []
    columns: List[str] = list(description.cols)

    for resource in resources:
        if description.infer_columns:
            values = extract_leaves(resource)
            for column in values:
                if column not in columns:
                    columns.append(column)
        else:
            values = {
                column: extract_path(resource, path)
                for column, path in description.cols.items()
            }
        extracted.append(values)

    # Values containing sep split into extra elements when the cell is read back
    clashing = {
        column
        for values in extracted
        for column, indexed in values.items()
        if any(sep in value for _, value in indexed)
    }
    if clashing:
        logger.warning(
            "Values contain the separator",
            table=name,
            sep=sep,
            columns=sorted(clashing),
        )

    if wide:
        df = _wide_frame(extracted, columns, sep, brackets)
    else:
        rows = [
            {column: _compact_cell(values.get(column, []), sep, brackets) for column in columns}
            for values in extracted
        ]
        df = pd.DataFrame.from_records(rows, columns=columns)

    if description.rm_empty_cols:
        df = df.dropna(axis=1, how="all")

    logger.debug(
        "Table cracked",
        table=name,
        resource=description.resource,
        rows=len(df),
        columns=len(df.columns),
    )

    return df


def _wide_frame(
    extracted: List[Dict[str, List[IndexedValue]]],
    columns: List[str],
    sep: str,
    brackets: Tuple[str, str],
) -> pd.DataFrame:
    """One column per (index, column) pair, named ``[index]column``."""
    seen: Dict[Tuple[int, Index], str] = {}
    rows = []
    for values in extracted:
        row = {}
        for position, column in enumerate(columns):
            for index, value in values.get(column, []):
                wide_name = f"{format_index(index, brackets)}{column}"
                seen.setdefault((position, index), wide_name)
                if wide_name in row:
                    row[wide_name] = f"{row[wide_name]}{sep}{value}"
                else:
                    row[wide_name] = value
        rows.append(row)

    ordered = [seen[key] for key in sorted(seen)]
    return pd.DataFrame.from_records(rows, columns=ordered)


def fhir_crack(
    bundles: Iterable[Dict[str, Any]],
    design: Union[TableDescription, TableDesign, Mapping[str, TableDescription]],
    sep: str = DEFAULT_SEP,
    brackets: Optional[Sequence[str]] = None,
) -> Union[pd.DataFrame, Dict[str, pd.DataFrame]]:
    """
    Flatten FHIR bundles into tables.

    Args:
        bundles: Bundle dictionaries (a BundleList or a single bundle).
        design: A TableDescription, or a TableDesign / mapping of
            descriptions cracked jointly.
        sep: Separator between multiple values of one cell. Values that
            themselves contain it cannot be told apart from multiple values
            (a warning is logged); choose a separator absent from the data.
        brackets: Opening and closing index markers, e.g. ("[", "]").
            None leaves values unindexed.

    Returns:
        A DataFrame for a single description, otherwise a dict of table
        name -> DataFrame in design order.
    """
    brackets = validate_brackets(brackets)
    if not sep:
        raise TableDesignError("Separator must not be empty")

    if isinstance(bundles, dict):
        bundles = [bundles]
    else:
        bundles = list(bundles)

    if isinstance(design, TableDescription):
        return _crack_table(bundles, design, sep, brackets, design.resource)

    if isinstance(design, Mapping) and not isinstance(design, TableDesign):
        design = fhir_design(**design)

    if not isinstance(design, TableDesign):
        raise TableDesignError(f"Cannot crack with design of type {type(design).__name__}")

    tables = {
        name: _crack_table(bundles, design.tables[name], sep, brackets, name)
        for name in design.names()
    }

    logger.info(
        "Bundles cracked",
        bundles=len(bundles),
        resources=design.resources(),
        tables={name: len(df) for name, df in tables.items()},
    )

    return tables


def fhir_common_columns(data_frame: pd.DataFrame, column_names_prefix: str) -> List[str]:
    """Columns named ``prefix`` or starting with ``prefix.``."""
    columns = [
        column for column in data_frame.columns
        if column == column_names_prefix or column.startswith(f"{column_names_prefix}.")
    ]
    if not columns:
        raise FlatteningError(f"No columns found with prefix '{column_names_prefix}'")
    return columns
