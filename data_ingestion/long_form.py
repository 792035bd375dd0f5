import logging
import re
import pandas as pd
from typing import Optional, Tuple

from data_ingestion.spreadsheet_loader import SheetLayout

logger = logging.getLogger(__name__)

LONG_COLUMNS = ['cushion_id', 'group', 'variable', 'level', 'value', 'sheet']


def parse_measurement_column(name: str, pattern: str) -> Optional[Tuple[str, float]]:
    """Split a wide header such as 'Load 25%' into ('Load', 25.0)"""
    match = re.match(pattern, str(name))
    if match is None:
        return None
    variable = match.group('variable').strip()
    if not variable:
        return None
    return variable, float(match.group('level'))


def _as_label(value) -> str:
    # Excel hands back whole-number ids as floats
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_long_form(wide: pd.DataFrame, layout: SheetLayout) -> pd.DataFrame:
    """
    Pivot wide measurement columns into one row per observation.

    Args:
        wide: Table produced by SpreadsheetLoader.load
        layout: Layout the table was loaded with

    Returns:
        Table with columns cushion_id, group, variable, level, value, sheet
    """
    group_source = 'sheet' if layout.group_from_sheet else layout.group_column
    id_vars = [layout.id_column, 'sheet']
    if group_source != 'sheet':
        id_vars.insert(1, group_source)

    parsed = {}
    seen = {}
    for column in wide.columns:
        if column in id_vars:
            continue
        key = parse_measurement_column(column, layout.value_pattern)
        if key is None:
            continue
        if key in seen:
            raise ValueError(
                f"Columns {seen[key]!r} and {column!r} both hold {key[0]} at level {key[1]:g}"
            )
        seen[key] = column
        parsed[column] = key
    if not parsed:
        raise ValueError("No measurement columns to reshape")

    long_df = wide.melt(
        id_vars=id_vars,
        value_vars=list(parsed),
        var_name='column',
        value_name='value'
    )
    long_df['variable'] = long_df['column'].map(lambda col: parsed[col][0])
    long_df['level'] = long_df['column'].map(lambda col: parsed[col][1])
    long_df['cushion_id'] = long_df[layout.id_column].map(_as_label)
    long_df['group'] = long_df[group_source].map(_as_label)

    missing = long_df['value'].isna()
    if missing.any():
        logger.debug("Dropping %d blank measurement cells", int(missing.sum()))
    long_df = long_df[~missing]

    if layout.variables:
        long_df = long_df[long_df['variable'].isin(layout.variables)]
        if long_df.empty:
            raise ValueError(f"None of the requested variables {layout.variables} are present")

    long_df = long_df[LONG_COLUMNS].astype({'value': float, 'level': float})
    return long_df.sort_values(['variable', 'level', 'group', 'cushion_id']).reset_index(drop=True)
