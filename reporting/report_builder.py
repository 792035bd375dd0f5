"""
Report rendering for the foam compression analyses.

Builds the literate report as an ordered list of sections. Sections that
hold answers (equivalence conclusions, sample-size estimates) are flagged
so they can be hidden. Sections are rendered to a self-contained HTML file
through Jinja2 and printed to the console as plain tables.
"""

import logging
import pandas as pd
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from jinja2 import Environment, BaseLoader, select_autoescape
from markupsafe import Markup

from equivalence_testing.tost_analyzer import RESULT_COLUMNS
from visualization.comparison_plots import FigureResult

logger = logging.getLogger(__name__)

BANNER_WIDTH = 80

P_VALUE_COLUMNS = {'p_value', 'p_lower', 'p_upper', 'p_adjusted', 'normality_p'}


@dataclass
class ReportSection:
    section_id: str
    title: str
    paragraphs: List[str] = field(default_factory=list)
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    figures: List[FigureResult] = field(default_factory=list)
    is_answer: bool = False


def visible_sections(sections: List[ReportSection], hide_answers: bool) -> List[ReportSection]:
    if not hide_answers:
        return list(sections)
    return [section for section in sections if not section.is_answer]


def format_table(df: pd.DataFrame, decimals: int = 3, p_digits: int = 4) -> pd.DataFrame:
    """Display copy: levels without trailing zeros, values to fixed decimals, p-values significant digits"""
    display = df.copy()
    if isinstance(display.index, pd.MultiIndex) or display.index.name is not None:
        display = display.reset_index()
    for column in display.columns:
        if column == 'level':
            display[column] = display[column].map(lambda level: f"{level:g}")
        elif column in P_VALUE_COLUMNS:
            display[column] = display[column].map(
                lambda value: '' if pd.isna(value) else f"{value:.{p_digits}g}"
            )
        elif pd.api.types.is_float_dtype(display[column]):
            display[column] = display[column].map(
                lambda value: '' if pd.isna(value) else f"{value:.{decimals}f}"
            )
    return display


# ---------------------------------------------------------------------------
# Section construction
# ---------------------------------------------------------------------------

def overview_section(data: pd.DataFrame, group_label: str, workbook_name: str) -> ReportSection:
    counts = (data.groupby(['variable', 'group'])['cushion_id']
              .nunique()
              .unstack('group')
              .fillna(0)
              .astype(int))
    counts.columns.name = None
    levels = ', '.join(f"{level:g}" for level in sorted(data['level'].unique()))
    paragraphs = [
        Markup("Data were read from <code>{}</code>: {} observations on {} cushions "
               "across {} {} groups.").format(
            workbook_name, len(data), data['cushion_id'].nunique(),
            data['group'].nunique(), group_label.lower()
        ),
        f"Measured variables: {', '.join(sorted(data['variable'].unique()))}. "
        f"Load levels (%): {levels}.",
        "The wide sheet columns were reshaped into long form, one row per "
        "(cushion, variable, load level) observation.",
    ]
    return ReportSection(
        section_id='data',
        title='Data',
        paragraphs=paragraphs,
        tables={
            f'Cushions per variable and {group_label.lower()}': counts,
            'First rows of the long-form table': data.head(10),
        }
    )


def summary_section(summary: pd.DataFrame, confidence_level: float) -> ReportSection:
    paragraphs = [
        f"Summary statistics per variable, load level and group. Confidence "
        f"intervals are {confidence_level:.0%} t intervals for the mean "
        f"(mean ± t × sd/√n). Groups with a single observation have no spread "
        f"or interval.",
    ]
    normality = summary['normality_p'].dropna()
    if len(normality):
        low = int((normality < 0.05).sum())
        paragraphs.append(
            f"Shapiro-Wilk normality p-values are below 0.05 in {low} of "
            f"{len(normality)} cells that have at least three observations."
        )
    return ReportSection(
        section_id='summary',
        title='Descriptive statistics',
        paragraphs=paragraphs,
        tables={'Summary statistics': summary}
    )


def plots_section(figures: List[FigureResult]) -> ReportSection:
    return ReportSection(
        section_id='plots',
        title='Exploratory plots',
        paragraphs=["Box plots show the spread of each group with individual cushions "
                    "overlaid; interval plots show the group means with their "
                    "confidence intervals."],
        figures=figures
    )


def question_section(group_label: str, margin_text: str, alpha: float) -> ReportSection:
    return ReportSection(
        section_id='question',
        title='Question: are the groups equivalent?',
        paragraphs=[
            f"For each variable and load level, is the mean of every "
            f"{group_label.lower()} within {margin_text} of every other "
            f"{group_label.lower()}?",
            f"Use two one-sided t tests (TOST) at α = {alpha:g}. Equivalence is "
            f"concluded when both one-sided tests reject, equivalently when the "
            f"{1 - 2 * alpha:.0%} confidence interval of the difference lies inside "
            f"the equivalence bounds.",
        ]
    )


def answer_section(
    tost_results: pd.DataFrame,
    flags: pd.DataFrame,
    counts: Dict,
    group_label: str,
    p_adjust: str
) -> ReportSection:
    paragraphs = []
    if counts['comparisons'] == 0:
        paragraphs.append(f"Fewer than two {group_label.lower()} groups were measured, "
                          f"so no equivalence tests were run.")
    else:
        paragraphs.append(
            f"{counts['equivalent']} of {counts['comparisons']} comparisons show "
            f"equivalence."
        )
        for variable, tally in counts['by_variable'].items():
            paragraphs.append(
                f"{variable}: {tally['equivalent']} of {tally['comparisons']} "
                f"comparisons equivalent."
            )
        not_equivalent = tost_results[~tost_results['equivalent']]
        if len(not_equivalent):
            worst = not_equivalent.sort_values('p_adjusted', ascending=False).iloc[0]
            paragraphs.append(
                f"The weakest comparison is {worst['group_1']} vs {worst['group_2']} for "
                f"{worst['variable']} at {worst['level']:g}% "
                f"(difference {worst['difference']:.3g}, bounds "
                f"±{worst['upper_bound']:.3g}, p = {worst['p_adjusted']:.3g})."
            )
        if p_adjust != 'none':
            paragraphs.append(f"p-values are adjusted across comparisons ({p_adjust}).")
        paragraphs.append("Flags: *** p < 0.001, ** p < 0.01, * p < α (equivalent), "
                          "ns not shown equivalent.")

    return ReportSection(
        section_id='answer',
        title='Answer: equivalence tests',
        paragraphs=paragraphs,
        tables={
            'Equivalence flags': flags,
            'TOST results': tost_results[RESULT_COLUMNS] if len(tost_results) else tost_results,
        },
        is_answer=True
    )


def sample_size_section(plan: pd.DataFrame, power: float, alpha: float) -> ReportSection:
    inadequate = plan[~plan['adequate']] if len(plan) else plan
    paragraphs = [
        f"Cushions needed per group to show equivalence with {power:.0%} power at "
        f"α = {alpha:g}, using the pooled standard deviation of each pair.",
    ]
    if len(plan):
        paragraphs.append(
            f"{len(plan) - len(inadequate)} of {len(plan)} comparisons already have enough "
            f"cushions per group."
        )
        finite = plan['required_n'].dropna()
        if len(finite):
            paragraphs.append(f"The largest requirement is {int(finite.max())} cushions per group.")
    return ReportSection(
        section_id='sample-size',
        title='Answer: required sample size',
        paragraphs=paragraphs,
        tables={'Sample size estimates': plan},
        is_answer=True
    )


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

_CSS = """
body { font-family: Georgia, "Times New Roman", serif; font-size: 14px; line-height: 1.6;
       color: #333; max-width: 980px; margin: 0 auto; padding: 32px 20px; background: #fafafa; }
header { text-align: center; margin-bottom: 32px; padding-bottom: 16px; border-bottom: 2px solid #2166ac; }
header h1 { font-size: 24px; margin-bottom: 6px; }
header .meta { font-size: 12px; color: #888; font-family: monospace; }
nav { background: #f0f4f8; padding: 12px 24px; border-radius: 6px; margin-bottom: 32px; }
nav a { color: #2166ac; text-decoration: none; }
section { margin-bottom: 36px; }
section h2 { font-size: 18px; border-bottom: 1px solid #ddd; padding-bottom: 4px; }
section.answer h2 { color: #1b7837; }
figure { margin: 20px 0; text-align: center; }
figure img { max-width: 100%; border: 1px solid #e0e0e0; border-radius: 4px; }
figcaption { font-size: 12px; color: #666; font-style: italic; }
.table-container { overflow-x: auto; margin: 16px 0; }
.table-container h3 { font-size: 14px; margin-bottom: 4px; }
table { border-collapse: collapse; width: 100%; font-size: 12px; font-family: Arial, sans-serif; }
thead th { background: #2166ac; color: white; padding: 6px 8px; text-align: left; }
tbody td { padding: 4px 8px; border-bottom: 1px solid #e8e8e8; }
tbody tr:nth-child(even) { background: #f8f9fa; }
footer { margin-top: 48px; font-size: 12px; color: #999; text-align: center; }
"""

_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
<style>{{ css }}</style>
</head>
<body>
<header>
  <h1>{{ title }}</h1>
  {% if subtitle %}<div class="subtitle">{{ subtitle }}</div>{% endif %}
  <div class="meta">Generated {{ generated }}</div>
</header>
<nav>
  <ol>
  {% for section in sections %}<li><a href="#{{ section.section_id }}">{{ section.title }}</a></li>
  {% endfor %}
  </ol>
</nav>
{% for section in sections %}
<section id="{{ section.section_id }}" class="{{ 'answer' if section.is_answer else 'prose' }}">
  <h2>{{ section.title }}</h2>
  {% for paragraph in section.paragraphs %}<p>{{ paragraph }}</p>
  {% endfor %}
  {% for caption, html in tables[section.section_id] %}
  <div class="table-container"><h3>{{ caption }}</h3>{{ html | safe }}</div>
  {% endfor %}
  {% for figure in section.figures %}
  <figure>
    <img src="data:image/png;base64,{{ figure.png_base64 }}" alt="{{ figure.name }}">
    <figcaption>{{ figure.caption }}</figcaption>
  </figure>
  {% endfor %}
</section>
{% endfor %}
<footer>{{ footer }}</footer>
</body>
</html>
"""


def html_table(df: pd.DataFrame) -> str:
    if df.empty:
        return "<p><em>No rows.</em></p>"
    return format_table(df).to_html(index=False, border=0, na_rep='', escape=True)


def render_html(
    sections: List[ReportSection],
    output_path: Path,
    title: str,
    subtitle: str = '',
    hide_answers: bool = False
) -> Path:
    """
    Render sections into a self-contained HTML file.

    Args:
        sections: Ordered report sections
        output_path: Where to write the .html file
        title: Report title
        subtitle: Line under the title (experimenter, workbook)
        hide_answers: Leave out sections flagged as answers

    Returns:
        Path to the written report
    """
    shown = visible_sections(sections, hide_answers)
    env = Environment(loader=BaseLoader(), autoescape=select_autoescape(default_for_string=True))
    template = env.from_string(_TEMPLATE)

    tables = {
        section.section_id: [(caption, html_table(df)) for caption, df in section.tables.items()]
        for section in shown
    }
    footer = "Answer sections hidden." if hide_answers else ""

    html = template.render(
        title=title,
        subtitle=subtitle,
        generated=datetime.now().strftime("%Y-%m-%d %H:%M"),
        sections=shown,
        tables=tables,
        css=_CSS,
        footer=footer
    )

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(html, encoding='utf-8')
    logger.info("Report written to %s (%.1f KB)", output_path, output_path.stat().st_size / 1024)
    return output_path


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------

def print_banner(title: str):
    print("\n" + "=" * BANNER_WIDTH)
    print(title)
    print("=" * BANNER_WIDTH)


def print_console_report(
    sections: List[ReportSection],
    title: str,
    hide_answers: bool = False,
    table_filter: Optional[List[str]] = None
):
    """Print section tables; table_filter limits output to the named tables"""
    print_banner(title)
    for section in visible_sections(sections, hide_answers):
        tables = {
            caption: df for caption, df in section.tables.items()
            if table_filter is None or caption in table_filter
        }
        if not tables:
            continue
        print(f"\n{section.title}")
        print("-" * BANNER_WIDTH)
        for caption, df in tables.items():
            print(f"\n{caption}:")
            if df.empty:
                print("  (no rows)")
            else:
                print(format_table(df).to_string(index=False))


def console_tables(print_full_output: bool) -> List[str]:
    """Tables printed to the console for the two output modes"""
    tables = ['Summary statistics', 'Equivalence flags', 'Sample size estimates']
    if print_full_output:
        tables.append('TOST results')
    return tables
