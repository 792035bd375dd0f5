"""
Configuration loading for the foam compression reports.

A YAML file is deep-merged over DEFAULT_CONFIG, which carries the two
experimenters' report definitions, and turned into typed settings.
"""

import copy
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, Optional

from data_ingestion.spreadsheet_loader import SheetLayout
from equivalence_testing.tost_analyzer import EquivalenceMargin, MarginType, VarianceAssumption
from statistical_engine import P_ADJUST_METHODS


DEFAULT_CONFIG: Dict[str, Any] = {
    'analysis': {
        'alpha': 0.05,
        'confidence_level': 0.95,
        'usevar': 'unequal',
        'p_adjust': 'none',
    },
    'equivalence': {
        'margin': 0.10,
        'margin_type': 'relative',
    },
    'sample_size': {
        'enabled': True,
        'power': 0.8,
        'use_observed_difference': False,
    },
    'output': {
        'directory': 'reports',
        'save_figures': True,
        'dpi': 150,
    },
    'render': {
        'hide_answers': False,
        'print_full_output': False,
    },
    'reports': [
        {
            'name': 'hysteresis',
            'title': 'Hysteresis of foam cushions across production batches',
            'experimenter': 'Experimenter A',
            'workbook': 'data/hysteresis.xlsx',
            'measurement': 'Hysteresis',
            'units': 'N',
            'group_label': 'Batch',
            'layout': {
                'sheets': ['Hysteresis'],
                'id_column': 'Cushion',
                'group_column': 'Batch',
            },
        },
        {
            'name': 'lcdod',
            'title': 'Load compression deflection of foam types',
            'experimenter': 'Experimenter B',
            'workbook': 'data/lcdod.xlsx',
            'measurement': 'LCDOD',
            'units': 'N',
            'group_label': 'Foam',
            'layout': {
                'sheets': ['LCDOD'],
                'id_column': 'Cushion',
                'group_column': 'Foam',
            },
        },
    ],
}

REQUIRED_FIELDS = [
    'analysis.alpha',
    'analysis.confidence_level',
    'equivalence.margin',
    'equivalence.margin_type',
    'output.directory',
    'reports',
]


@dataclass
class AnalysisSettings:
    alpha: float
    confidence_level: float
    usevar: VarianceAssumption
    p_adjust: str
    sample_size_enabled: bool
    power: float
    use_observed_difference: bool
    output_dir: Path
    save_figures: bool
    dpi: int
    hide_answers: bool
    print_full_output: bool


@dataclass
class ReportDefinition:
    name: str
    title: str
    experimenter: str
    workbook: Path
    measurement: str
    units: str
    group_label: str
    layout: SheetLayout
    margin: EquivalenceMargin


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary containing configuration
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    with open(config_file, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError(f"Configuration file {config_file} must contain a mapping")
    return config


def validate_config(config: Dict[str, Any], required_fields: list) -> bool:
    """
    Validate that configuration has required fields.

    Args:
        config: Configuration dictionary
        required_fields: List of required field paths (e.g., ['analysis.alpha', 'reports'])

    Returns:
        True if valid, raises ValueError if invalid
    """
    missing_fields = []

    for field_path in required_fields:
        keys = field_path.split('.')
        current = config

        for key in keys:
            if not isinstance(current, dict) or key not in current:
                missing_fields.append(field_path)
                break
            current = current[key]

    if missing_fields:
        raise ValueError(f"Configuration missing required fields: {missing_fields}")

    return True


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base; lists are replaced, not merged"""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def resolve_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Defaults merged with the optional YAML file, validated"""
    user_config = load_config(config_path) if config_path else {}
    config = merge_config(DEFAULT_CONFIG, user_config)
    validate_config(config, REQUIRED_FIELDS)
    if config_path:
        config.setdefault('base_dir', str(Path(config_path).resolve().parent))
    return config


def build_settings(config: Dict[str, Any]) -> AnalysisSettings:
    """Typed analysis settings from a merged configuration"""
    analysis = config.get('analysis', {})
    sample_size = config.get('sample_size', {})
    output = config.get('output', {})
    render = config.get('render', {})

    alpha = float(analysis.get('alpha', 0.05))
    if not 0 < alpha < 0.5:
        raise ValueError(f"analysis.alpha must be in (0, 0.5), got {alpha}")

    confidence_level = float(analysis.get('confidence_level', 0.95))
    if not 0 < confidence_level < 1:
        raise ValueError(f"analysis.confidence_level must be in (0, 1), got {confidence_level}")

    p_adjust = analysis.get('p_adjust', 'none')
    if p_adjust != 'none' and p_adjust not in P_ADJUST_METHODS:
        raise ValueError(f"Unknown correction method: {p_adjust}")

    power = float(sample_size.get('power', 0.8))
    if not 0 < power < 1:
        raise ValueError(f"sample_size.power must be in (0, 1), got {power}")

    try:
        usevar = VarianceAssumption(analysis.get('usevar', 'unequal'))
    except ValueError:
        raise ValueError(f"Unknown variance assumption: {analysis.get('usevar')}") from None

    return AnalysisSettings(
        alpha=alpha,
        confidence_level=confidence_level,
        usevar=usevar,
        p_adjust=p_adjust,
        sample_size_enabled=bool(sample_size.get('enabled', True)),
        power=power,
        use_observed_difference=bool(sample_size.get('use_observed_difference', False)),
        output_dir=Path(output.get('directory', 'reports')),
        save_figures=bool(output.get('save_figures', True)),
        dpi=int(output.get('dpi', 150)),
        hide_answers=bool(render.get('hide_answers', False)),
        print_full_output=bool(render.get('print_full_output', False))
    )


def build_margin(equivalence: Dict[str, Any]) -> EquivalenceMargin:
    try:
        margin_type = MarginType(equivalence.get('margin_type', 'relative'))
    except ValueError:
        raise ValueError(f"Unknown margin type: {equivalence.get('margin_type')}") from None
    return EquivalenceMargin(value=float(equivalence['margin']), margin_type=margin_type)


def _default_group_label(layout: SheetLayout) -> str:
    if layout.group_from_sheet:
        return 'Sheet'
    return layout.group_column


def build_report_definitions(config: Dict[str, Any]) -> List[ReportDefinition]:
    """Report definitions with per-report equivalence overrides applied"""
    base_dir = Path(config['base_dir']) if config.get('base_dir') else None
    reports = config.get('reports') or []
    if not reports:
        raise ValueError("Configuration defines no reports")

    definitions = []
    seen = set()
    for entry in reports:
        validate_config(entry, ['name', 'workbook', 'layout.sheets'])
        name = str(entry['name'])
        if name in seen:
            raise ValueError(f"Duplicate report name: {name}")
        seen.add(name)

        workbook = Path(entry['workbook'])
        if base_dir is not None and not workbook.is_absolute():
            workbook = base_dir / workbook

        equivalence = merge_config(config.get('equivalence', {}), entry.get('equivalence', {}))
        layout = SheetLayout.from_dict(entry['layout'])

        definitions.append(ReportDefinition(
            name=name,
            title=entry.get('title', name),
            experimenter=entry.get('experimenter', ''),
            workbook=workbook,
            measurement=entry.get('measurement', name),
            units=entry.get('units', ''),
            group_label=entry.get('group_label') or _default_group_label(layout),
            layout=layout,
            margin=build_margin(equivalence)
        ))
    return definitions
