#!/usr/bin/env python3
"""
Render the foam compression equivalence reports.

Reads each configured workbook, computes summary statistics, draws the
comparison plots, runs the TOST equivalence tests and writes one
self-contained HTML report per experimenter.
"""

import argparse
import logging
from typing import Dict, Any, List, Optional

from foam_report import FoamReportRunner
from logging_setup import setup_logging
from report_config import build_report_definitions, build_settings, resolve_config
from reporting.report_builder import print_banner

logger = logging.getLogger(__name__)


def _parse_workbooks(pairs: List[str]) -> Dict[str, str]:
    workbooks = {}
    for pair in pairs or []:
        name, sep, path = pair.partition('=')
        if not sep or not name or not path:
            raise ValueError(f"--workbook expects NAME=PATH, got {pair!r}")
        workbooks[name.strip()] = path.strip()
    return workbooks


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Command-line flags take precedence over the configuration file"""
    if args.output_dir:
        config['output']['directory'] = args.output_dir
    if args.hide_answers:
        config['render']['hide_answers'] = True
    if args.print_full_output:
        config['render']['print_full_output'] = True
    if args.no_sample_size:
        config['sample_size']['enabled'] = False
    if args.no_figures:
        config['output']['save_figures'] = False

    workbooks = _parse_workbooks(args.workbook)
    known = {entry['name'] for entry in config['reports']}
    unknown = sorted(set(workbooks) - known)
    if unknown:
        raise ValueError(f"--workbook names unknown report(s) {unknown}; known reports: {sorted(known)}")
    for entry in config['reports']:
        if entry['name'] in workbooks:
            entry['workbook'] = workbooks[entry['name']]

    if args.report:
        missing = sorted(set(args.report) - known)
        if missing:
            raise ValueError(f"Unknown report(s) {missing}; known reports: {sorted(known)}")
        config['reports'] = [entry for entry in config['reports'] if entry['name'] in args.report]
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render foam cushion compression reports with TOST equivalence tests"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to analysis configuration YAML file (optional, overrides defaults)"
    )
    parser.add_argument(
        "--report",
        action="append",
        help="Report to render (repeatable, default: all configured reports)"
    )
    parser.add_argument(
        "--workbook",
        action="append",
        metavar="NAME=PATH",
        help="Workbook for a report, e.g. hysteresis=data/hysteresis.xlsx (repeatable)"
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        help="Directory for HTML reports and figures"
    )
    parser.add_argument(
        "--hide-answers",
        action="store_true",
        help="Leave the answer sections out of the rendered report"
    )
    parser.add_argument(
        "--print-full-output",
        action="store_true",
        help="Print the full TOST table to the console"
    )
    parser.add_argument(
        "--no-sample-size",
        action="store_true",
        help="Skip the required sample size estimates"
    )
    parser.add_argument(
        "--no-figures",
        action="store_true",
        help="Do not write PNG files (plots are still embedded in the HTML)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Optional file to write logs to"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), log_file=args.log_file)

    config = apply_overrides(resolve_config(args.config), args)
    settings = build_settings(config)
    definitions = build_report_definitions(config)

    runner = FoamReportRunner(settings)
    runner.run_all(definitions)

    print_banner("Reports")
    print(runner.get_run_overview().to_string(index=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
