"""Shared fixtures: a small hysteresis data set with two matching batches and one outlier batch."""

import pandas as pd
import pytest

from data_ingestion.long_form import to_long_form
from data_ingestion.spreadsheet_loader import SheetLayout
from report_config import DEFAULT_CONFIG, build_settings, merge_config

BATCH_VALUES = {
    'B1': [99.0, 101.0, 100.0, 102.0, 98.0, 100.0],
    'B2': [100.0, 102.0, 99.0, 101.0, 100.0, 101.0],
    'B3': [130.0, 128.0, 132.0, 131.0, 129.0, 130.0],
}

# Column header -> offset added to the base batch values
COLUMN_OFFSETS = {
    'Load 25%': 0.0,
    'Load 50%': 50.0,
    'Unload 25%': -20.0,
    'Unload 50%': 30.0,
}


def make_wide_frame() -> pd.DataFrame:
    rows = []
    cushion = 1
    for batch, values in BATCH_VALUES.items():
        for value in values:
            row = {'Cushion': cushion, 'Batch': batch, 'Notes': 'ok'}
            for column, offset in COLUMN_OFFSETS.items():
                row[column] = value + offset
            rows.append(row)
            cushion += 1
    return pd.DataFrame(rows)


def write_workbook(path, sheets):
    with pd.ExcelWriter(path, engine='openpyxl') as writer:
        for name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=name, index=False)
    return path


@pytest.fixture
def layout():
    return SheetLayout(sheets=['Hysteresis'], id_column='Cushion', group_column='Batch')


@pytest.fixture
def wide_frame():
    return make_wide_frame()


@pytest.fixture
def workbook_path(tmp_path, wide_frame):
    return write_workbook(tmp_path / 'hysteresis.xlsx', {'Hysteresis': wide_frame})


@pytest.fixture
def long_frame(wide_frame, layout):
    return to_long_form(wide_frame.assign(sheet='Hysteresis'), layout)


@pytest.fixture
def config(tmp_path):
    return merge_config(DEFAULT_CONFIG, {
        'output': {'directory': str(tmp_path / 'reports'), 'save_figures': False, 'dpi': 60},
    })


@pytest.fixture
def settings(config):
    return build_settings(config)
