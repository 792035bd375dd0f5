"""
Spreadsheet loader for foam compression workbooks.

Reads the named sheets of a workbook, checks the fixed column layout and
rejects measurement cells that are not numeric.
"""

import logging
import re
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

DEFAULT_VALUE_PATTERN = r'^\s*(?P<variable>[A-Za-z][A-Za-z /]*?)[\s_@-]*(?P<level>\d+(?:\.\d+)?)\s*%?\s*$'

MAX_REPORTED_CELLS = 5


@dataclass
class SheetLayout:
    sheets: List[str]
    id_column: str = 'Cushion'
    group_column: Optional[str] = 'Batch'
    group_from_sheet: bool = False
    value_pattern: str = DEFAULT_VALUE_PATTERN
    variables: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.sheets:
            raise ValueError("Sheet layout must name at least one sheet")
        if not self.group_from_sheet and not self.group_column:
            raise ValueError("Sheet layout needs a group column unless groups come from sheet names")
        try:
            compiled = re.compile(self.value_pattern)
        except re.error as exc:
            raise ValueError(f"Invalid value pattern {self.value_pattern!r}: {exc}") from exc
        if not {'variable', 'level'} <= set(compiled.groupindex):
            raise ValueError("Value pattern must define named groups 'variable' and 'level'")

    @property
    def key_columns(self) -> List[str]:
        if self.group_from_sheet:
            return [self.id_column]
        return [self.id_column, self.group_column]

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'SheetLayout':
        return cls(
            sheets=list(config.get('sheets', [])),
            id_column=config.get('id_column', 'Cushion'),
            group_column=config.get('group_column', 'Batch'),
            group_from_sheet=bool(config.get('group_from_sheet', False)),
            value_pattern=config.get('value_pattern') or DEFAULT_VALUE_PATTERN,
            variables=list(config.get('variables') or [])
        )


class SpreadsheetLoader:
    """Loads wide measurement tables from named workbook sheets."""

    def __init__(self, engine: str = 'openpyxl'):
        self.engine = engine

    def load(self, workbook_path: str, layout: SheetLayout) -> pd.DataFrame:
        """
        Read every sheet named by the layout and stack them.

        Args:
            workbook_path: Path to the .xlsx workbook
            layout: Expected sheet names and column layout

        Returns:
            Wide table with the key columns, the measurement columns and a
            ``sheet`` column naming the source sheet
        """
        path = Path(workbook_path)
        if not path.exists():
            raise FileNotFoundError(f"Workbook not found: {path}")

        with pd.ExcelFile(path, engine=self.engine) as workbook:
            available = list(workbook.sheet_names)
            missing = [name for name in layout.sheets if name not in available]
            if missing:
                raise ValueError(
                    f"Sheet(s) {missing} not found in {path.name}; available sheets: {available}"
                )

            frames = []
            for sheet_name in layout.sheets:
                raw = workbook.parse(sheet_name)
                frames.append(self._prepare_sheet(raw, sheet_name, layout))

        wide = pd.concat(frames, ignore_index=True, sort=False)
        logger.info("Loaded %d rows from %d sheet(s) of %s", len(wide), len(frames), path.name)
        return wide

    def measurement_columns(self, columns: List[str], layout: SheetLayout) -> List[str]:
        """Columns whose header matches the layout's value pattern"""
        pattern = re.compile(layout.value_pattern)
        keys = set(layout.key_columns)
        return [col for col in columns if col not in keys and pattern.match(str(col))]

    def _prepare_sheet(self, raw: pd.DataFrame, sheet_name: str, layout: SheetLayout) -> pd.DataFrame:
        raw = raw.dropna(how='all')
        raw.columns = [str(col).strip() for col in raw.columns]

        for column in layout.key_columns:
            if column not in raw.columns:
                raise ValueError(f"Sheet '{sheet_name}' is missing required column '{column}'")

        value_columns = self.measurement_columns(list(raw.columns), layout)
        if not value_columns:
            raise ValueError(
                f"Sheet '{sheet_name}' has no measurement columns matching {layout.value_pattern!r}"
            )

        ignored = [col for col in raw.columns if col not in value_columns and col not in layout.key_columns]
        if ignored:
            logger.debug("Ignoring columns %s in sheet '%s'", ignored, sheet_name)

        sheet = raw[layout.key_columns + value_columns].copy()
        sheet[value_columns] = self._coerce_numeric(sheet[value_columns], sheet_name)
        self._check_labels(sheet, layout.key_columns, value_columns, sheet_name)
        sheet['sheet'] = sheet_name
        return sheet

    def _check_labels(
        self,
        sheet: pd.DataFrame,
        key_columns: List[str],
        value_columns: List[str],
        sheet_name: str
    ):
        """Rows holding a measurement need their id and group labels"""
        measured = sheet[value_columns].notna().any(axis=1)
        cells = []
        for column in key_columns:
            labels = sheet[column]
            blank = labels.isna() | labels.astype(str).str.strip().eq('')
            for row in sheet.index[blank & measured]:
                cells.append(f"{sheet_name}!{column} row {row + 2}")
        if cells:
            raise ValueError(f"Blank label cells on measured rows: {_format_cells(cells)}")

    def _coerce_numeric(self, values: pd.DataFrame, sheet_name: str) -> pd.DataFrame:
        """Convert measurement cells to floats, rejecting text that is not a number"""
        values = values.replace(r"^\s*$", np.nan, regex=True)
        coerced = values.apply(pd.to_numeric, errors='coerce')
        bad = coerced.isna() & values.notna()
        if bad.any().any():
            cells = []
            for column in bad.columns:
                for row in bad.index[bad[column]]:
                    # +2: one header row, spreadsheet rows are 1-based
                    cells.append(f"{sheet_name}!{column} row {row + 2}: {values.at[row, column]!r}")
            raise ValueError(f"Non-numeric measurement values: {_format_cells(cells)}")
        return coerced.astype(float)


def _format_cells(cells: List[str]) -> str:
    shown = ', '.join(cells[:MAX_REPORTED_CELLS])
    if len(cells) > MAX_REPORTED_CELLS:
        shown += f" (and {len(cells) - MAX_REPORTED_CELLS} more)"
    return shown
