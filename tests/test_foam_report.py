"""End-to-end tests for the report runner."""

from dataclasses import replace

import pytest

from foam_report import FoamReportRunner
from report_config import build_report_definitions, build_settings


@pytest.fixture
def definition(config, workbook_path):
    hysteresis = build_report_definitions(config)[0]
    return replace(hysteresis, workbook=workbook_path)


class TestFoamReportRunner:
    """Test the full report sequence."""

    def test_run_from_workbook(self, settings, definition):
        """The workbook is read, analysed and rendered."""
        runner = FoamReportRunner(settings)
        result = runner.run_report(definition, echo=False)

        assert len(result.measurements) == 72
        assert len(result.tost_results) == 12
        assert result.sample_sizes is not None
        assert result.html_path == settings.output_dir / 'hysteresis.html'
        assert result.html_path.exists()
        assert len(result.figures) == 4
        assert all(figure.png_path is None for figure in result.figures)

    def test_html_contents(self, settings, definition, long_frame):
        """Both the question and the answers appear in the report."""
        result = FoamReportRunner(settings).run_report(definition, data=long_frame, echo=False)

        html = result.html_path.read_text(encoding='utf-8')
        assert 'Question: are the groups equivalent?' in html
        assert 'Answer: equivalence tests' in html
        assert 'Answer: required sample size' in html
        assert 'Experimenter A' in html

    def test_hidden_answers(self, config, definition, long_frame):
        """Hidden answers leave the question in place but are still computed."""
        config['render']['hide_answers'] = True
        runner = FoamReportRunner(build_settings(config))

        result = runner.run_report(definition, data=long_frame, echo=False)

        html = result.html_path.read_text(encoding='utf-8')
        assert 'Question: are the groups equivalent?' in html
        assert 'Answer: equivalence tests' not in html
        assert len(result.tost_results) == 12

    def test_figures_saved(self, config, definition, long_frame):
        """With save_figures the PNG files land beside the report."""
        config['output']['save_figures'] = True
        settings = build_settings(config)

        result = FoamReportRunner(settings).run_report(definition, data=long_frame, render=False, echo=False)

        assert result.html_path is None
        assert (settings.output_dir / 'figures' / 'hysteresis_load_box.png').exists()

    def test_no_sample_size(self, config, definition, long_frame):
        """Disabling sample sizes drops the section."""
        config['sample_size']['enabled'] = False
        runner = FoamReportRunner(build_settings(config))

        result = runner.run_report(definition, data=long_frame, render=False, echo=False)

        assert result.sample_sizes is None
        assert [section.section_id for section in result.sections][-1] == 'answer'

    def test_console_output(self, settings, definition, long_frame, capsys):
        """The console shows the flags; the TOST table only on request."""
        FoamReportRunner(settings).run_report(definition, data=long_frame, render=False)
        out = capsys.readouterr().out
        assert 'Equivalence flags:' in out
        assert 'TOST results:' not in out

        settings.print_full_output = True
        FoamReportRunner(settings).run_report(definition, data=long_frame, render=False)
        assert 'TOST results:' in capsys.readouterr().out

    def test_empty_measurements(self, settings, definition, long_frame):
        """A report without rows is an error."""
        with pytest.raises(ValueError, match="has no measurements"):
            FoamReportRunner(settings).run_report(definition, data=long_frame.iloc[0:0], render=False)

    def test_run_overview(self, settings, definition, long_frame):
        """The overview tallies each completed report."""
        runner = FoamReportRunner(settings)
        runner.run_report(definition, data=long_frame, echo=False)

        overview = runner.get_run_overview()

        assert list(overview['report']) == ['hysteresis']
        assert overview.loc[0, 'groups'] == 3
        assert overview.loc[0, 'comparisons'] == 12
        assert overview.loc[0, 'equivalent'] == 4
        assert overview.loc[0, 'html'].endswith('hysteresis.html')
