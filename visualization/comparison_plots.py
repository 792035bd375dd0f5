"""
Comparison plots for foam compression measurements.

Box plots with the individual cushions overlaid, and mean/CI interval
plots per group across load levels. Every figure is base64-encoded for
embedding in the HTML report and optionally saved as PNG.
"""

import base64
import io
import logging
import numpy as np
import pandas as pd
import matplotlib

matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class FigureResult:
    name: str
    png_base64: str
    caption: str = ""
    png_path: Optional[Path] = None


def _level_labels(levels) -> List[str]:
    return [f"{level:g}" for level in levels]


def _save_and_encode(
    fig,
    name: str,
    caption: str,
    output_dir: Optional[Path] = None,
    dpi: int = 150
) -> FigureResult:
    """Encode a figure as base64 PNG, writing it to output_dir/figures when given"""
    png_path = None
    if output_dir is not None:
        figures_dir = Path(output_dir) / "figures"
        figures_dir.mkdir(parents=True, exist_ok=True)
        png_path = figures_dir / f"{name}.png"
        fig.savefig(png_path, dpi=dpi, bbox_inches='tight')
        logger.info("Saved figure %s", png_path)

    buf = io.BytesIO()
    fig.savefig(buf, format='png', dpi=dpi, bbox_inches='tight')
    buf.seek(0)
    encoded = base64.b64encode(buf.read()).decode('ascii')
    buf.close()
    plt.close(fig)

    return FigureResult(name=name, png_base64=encoded, caption=caption, png_path=png_path)


def box_scatter_plot(
    data: pd.DataFrame,
    variable: str,
    group_label: str = 'Group',
    value_label: str = 'Value',
    output_dir: Optional[Path] = None,
    name_prefix: str = '',
    dpi: int = 150
) -> FigureResult:
    """Box plot of values by load level, one box per group, cushions as jittered points"""
    subset = data[data['variable'] == variable]
    if subset.empty:
        raise ValueError(f"No observations for variable '{variable}'")

    levels = sorted(subset['level'].unique())
    groups = sorted(subset['group'].unique())
    plot_data = subset.assign(level_label=subset['level'].map(lambda level: f"{level:g}"))
    order = _level_labels(levels)

    fig, ax = plt.subplots(figsize=(max(6, 1.6 * len(levels) * max(1, len(groups) / 2)), 5))
    sns.boxplot(
        data=plot_data, x='level_label', y='value', hue='group',
        order=order, hue_order=groups, ax=ax, showfliers=False, palette='Set2'
    )
    sns.stripplot(
        data=plot_data, x='level_label', y='value', hue='group',
        order=order, hue_order=groups, ax=ax, dodge=True, jitter=0.15,
        palette={group: 'black' for group in groups}, size=4, alpha=0.7, legend=False
    )
    ax.set_xlabel('Load level (%)')
    ax.set_ylabel(f"{variable} ({value_label})" if value_label else variable)
    ax.set_title(f"{variable} by {group_label.lower()} and load level")
    sns.move_legend(ax, 'best', title=group_label, frameon=False)
    ax.grid(axis='y', alpha=0.3)
    fig.tight_layout()

    name = f"{name_prefix}{_slug(variable)}_box"
    caption = (f"{variable}: distribution per {group_label.lower()} at each load level; "
               f"points are individual cushions.")
    return _save_and_encode(fig, name, caption, output_dir, dpi)


def interval_plot(
    summary: pd.DataFrame,
    variable: str,
    group_label: str = 'Group',
    value_label: str = 'Value',
    confidence_level: float = 0.95,
    output_dir: Optional[Path] = None,
    name_prefix: str = '',
    dpi: int = 150
) -> FigureResult:
    """Group means with confidence-interval error bars across load levels"""
    subset = summary[summary['variable'] == variable]
    if subset.empty:
        raise ValueError(f"No summary rows for variable '{variable}'")

    levels = sorted(subset['level'].unique())
    groups = sorted(subset['group'].unique())
    positions = {level: i for i, level in enumerate(levels)}
    offsets = np.linspace(-0.2, 0.2, len(groups)) if len(groups) > 1 else [0.0]
    palette = sns.color_palette('Set2', len(groups))

    fig, ax = plt.subplots(figsize=(max(6, 1.4 * len(levels)), 5))
    for offset, color, group in zip(offsets, palette, groups):
        rows = subset[subset['group'] == group].sort_values('level')
        x = np.array([positions[level] for level in rows['level']]) + offset
        yerr = rows['ci_half_width'].fillna(0).to_numpy()
        ax.errorbar(x, rows['mean'], yerr=yerr, fmt='o-', capsize=4,
                    color=color, label=group, linewidth=1.2)

    ax.set_xticks(range(len(levels)))
    ax.set_xticklabels(_level_labels(levels))
    ax.set_xlabel('Load level (%)')
    ax.set_ylabel(f"Mean {variable} ({value_label})" if value_label else f"Mean {variable}")
    ax.set_title(f"{variable}: mean and {confidence_level:.0%} CI by {group_label.lower()}")
    ax.legend(title=group_label, frameon=False)
    ax.grid(axis='y', alpha=0.3)
    fig.tight_layout()

    name = f"{name_prefix}{_slug(variable)}_interval"
    caption = f"{variable}: mean ± {confidence_level:.0%} t confidence interval per {group_label.lower()}."
    return _save_and_encode(fig, name, caption, output_dir, dpi)


def comparison_figures(
    data: pd.DataFrame,
    summary: pd.DataFrame,
    group_label: str = 'Group',
    value_label: str = 'Value',
    confidence_level: float = 0.95,
    output_dir: Optional[Path] = None,
    name_prefix: str = '',
    dpi: int = 150
) -> List[FigureResult]:
    """Box/scatter and interval plot for every measurement variable"""
    figures = []
    for variable in sorted(data['variable'].unique()):
        figures.append(box_scatter_plot(
            data, variable, group_label, value_label, output_dir, name_prefix, dpi
        ))
        figures.append(interval_plot(
            summary, variable, group_label, value_label, confidence_level,
            output_dir, name_prefix, dpi
        ))
    return figures


def _slug(text: str) -> str:
    return ''.join(ch.lower() if ch.isalnum() else '_' for ch in text).strip('_')
