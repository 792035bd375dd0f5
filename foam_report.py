from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from pathlib import Path
import logging
import pandas as pd

from statistical_engine import StatisticalEngine
from data_ingestion.spreadsheet_loader import SpreadsheetLoader
from data_ingestion.long_form import to_long_form
from equivalence_testing.tost_analyzer import TostAnalyzer
from equivalence_testing.sample_size_planner import SampleSizePlanner
from visualization.comparison_plots import FigureResult, comparison_figures
from reporting.report_builder import (
    ReportSection,
    answer_section,
    console_tables,
    overview_section,
    plots_section,
    print_console_report,
    question_section,
    render_html,
    sample_size_section,
    summary_section,
)
from report_config import AnalysisSettings, ReportDefinition

logger = logging.getLogger(__name__)


@dataclass
class ReportResult:
    name: str
    measurements: pd.DataFrame
    summary: pd.DataFrame
    tost_results: pd.DataFrame
    equivalence_flags: pd.DataFrame
    equivalence_counts: Dict[str, Any]
    sample_sizes: Optional[pd.DataFrame] = None
    figures: List[FigureResult] = field(default_factory=list)
    sections: List[ReportSection] = field(default_factory=list)
    html_path: Optional[Path] = None


class FoamReportRunner:
    """Runs the load, reshape, summarize, plot, test and render sequence for each report"""

    def __init__(self, settings: AnalysisSettings, loader: Optional[SpreadsheetLoader] = None):
        self.settings = settings
        self.statistical_engine = StatisticalEngine(
            default_alpha=settings.alpha,
            default_power=settings.power,
            default_confidence=settings.confidence_level
        )
        self.loader = loader or SpreadsheetLoader()
        self.report_results: Dict[str, ReportResult] = {}

    def load_measurements(self, definition: ReportDefinition) -> pd.DataFrame:
        """Read the report's workbook and reshape it into long form"""
        wide = self.loader.load(definition.workbook, definition.layout)
        return to_long_form(wide, definition.layout)

    def analyze(self, definition: ReportDefinition, data: pd.DataFrame) -> ReportResult:
        """Descriptive statistics, equivalence tests and optional sample sizes"""
        if data.empty:
            raise ValueError(f"Report {definition.name} has no measurements")

        summary = self.statistical_engine.summarize(
            data, confidence_level=self.settings.confidence_level
        )

        analyzer = TostAnalyzer(
            margin=definition.margin,
            engine=self.statistical_engine,
            significance_level=self.settings.alpha,
            usevar=self.settings.usevar,
            p_adjust=self.settings.p_adjust
        )
        tost_results = analyzer.run(data)

        sample_sizes = None
        if self.settings.sample_size_enabled:
            planner = SampleSizePlanner(
                margin=definition.margin,
                engine=self.statistical_engine,
                significance_level=self.settings.alpha,
                power=self.settings.power,
                use_observed_difference=self.settings.use_observed_difference
            )
            sample_sizes = planner.plan(data)

        return ReportResult(
            name=definition.name,
            measurements=data,
            summary=summary,
            tost_results=tost_results,
            equivalence_flags=analyzer.flag_table(tost_results),
            equivalence_counts=analyzer.equivalence_summary(tost_results),
            sample_sizes=sample_sizes
        )

    def build_sections(self, definition: ReportDefinition, result: ReportResult) -> List[ReportSection]:
        """Ordered report sections, answers flagged"""
        sections = [
            overview_section(result.measurements, definition.group_label, definition.workbook.name),
            summary_section(result.summary, self.settings.confidence_level),
            plots_section(result.figures),
            question_section(definition.group_label, definition.margin.describe(), self.settings.alpha),
            answer_section(
                result.tost_results,
                result.equivalence_flags,
                result.equivalence_counts,
                definition.group_label,
                self.settings.p_adjust
            ),
        ]
        if result.sample_sizes is not None:
            sections.append(sample_size_section(result.sample_sizes, self.settings.power, self.settings.alpha))
        return sections

    def run_report(
        self,
        definition: ReportDefinition,
        data: Optional[pd.DataFrame] = None,
        render: bool = True,
        echo: bool = True
    ) -> ReportResult:
        """Full report for one definition; data skips the workbook read when given"""
        logger.info("Running report %s (%s)", definition.name, definition.experimenter or 'unknown experimenter')
        if data is None:
            data = self.load_measurements(definition)

        result = self.analyze(definition, data)

        output_dir = self.settings.output_dir
        result.figures = comparison_figures(
            result.measurements,
            result.summary,
            group_label=definition.group_label,
            value_label=definition.units,
            confidence_level=self.settings.confidence_level,
            output_dir=output_dir if self.settings.save_figures else None,
            name_prefix=f"{definition.name}_",
            dpi=self.settings.dpi
        )
        result.sections = self.build_sections(definition, result)

        if render:
            subtitle = ' · '.join(part for part in (definition.experimenter, definition.measurement) if part)
            result.html_path = render_html(
                result.sections,
                output_dir / f"{definition.name}.html",
                title=definition.title,
                subtitle=subtitle,
                hide_answers=self.settings.hide_answers
            )

        if echo:
            print_console_report(
                result.sections,
                title=definition.title,
                hide_answers=self.settings.hide_answers,
                table_filter=console_tables(self.settings.print_full_output)
            )

        self.report_results[definition.name] = result
        return result

    def run_all(self, definitions: List[ReportDefinition], render: bool = True, echo: bool = True) -> List[ReportResult]:
        """Run every report in order; the first failure propagates"""
        return [self.run_report(definition, render=render, echo=echo) for definition in definitions]

    def get_run_overview(self) -> pd.DataFrame:
        """One row per completed report with its equivalence tally"""
        rows = []
        for name, result in self.report_results.items():
            counts = result.equivalence_counts
            rows.append({
                'report': name,
                'observations': len(result.measurements),
                'groups': result.measurements['group'].nunique(),
                'comparisons': counts['comparisons'],
                'equivalent': counts['equivalent'],
                'equivalent_rate': counts['equivalent'] / counts['comparisons'] if counts['comparisons'] else 0.0,
                'html': str(result.html_path) if result.html_path else ''
            })
        return pd.DataFrame(rows, columns=[
            'report', 'observations', 'groups', 'comparisons', 'equivalent', 'equivalent_rate', 'html'
        ])
