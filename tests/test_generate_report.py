"""Tests for the command-line entry point."""

import pytest
import yaml

from generate_report import apply_overrides, build_parser, main
from report_config import resolve_config


def parse(*argv):
    return build_parser().parse_args(list(argv))


class TestOverrides:
    """Test command-line overrides of the configuration."""

    def test_flags_override_config(self):
        """Boolean flags and the output directory replace configured values."""
        config = apply_overrides(resolve_config(), parse(
            '--output-dir', 'out', '--hide-answers', '--print-full-output', '--no-sample-size', '--no-figures'
        ))

        assert config['output']['directory'] == 'out'
        assert config['render']['hide_answers']
        assert config['render']['print_full_output']
        assert not config['sample_size']['enabled']
        assert not config['output']['save_figures']

    def test_report_selection(self):
        """--report keeps only the named reports."""
        config = apply_overrides(resolve_config(), parse('--report', 'lcdod'))

        assert [entry['name'] for entry in config['reports']] == ['lcdod']

    def test_workbook_override(self):
        """--workbook replaces the path of the named report."""
        config = apply_overrides(resolve_config(), parse('--workbook', 'hysteresis=/tmp/h.xlsx'))

        assert config['reports'][0]['workbook'] == '/tmp/h.xlsx'
        assert config['reports'][1]['workbook'] == 'data/lcdod.xlsx'

    @pytest.mark.parametrize("argv, message", [
        (('--report', 'recovery'), 'Unknown report'),
        (('--workbook', 'recovery=x.xlsx'), 'unknown report'),
        (('--workbook', 'hysteresis'), 'NAME=PATH'),
    ])
    def test_invalid_arguments(self, argv, message):
        """Unknown names and malformed pairs raise ValueError."""
        with pytest.raises(ValueError, match=message):
            apply_overrides(resolve_config(), parse(*argv))


class TestMain:
    """Test the entry point end to end."""

    def test_renders_selected_report(self, workbook_path, tmp_path, capsys):
        """One workbook in, one HTML report and an overview out."""
        output_dir = tmp_path / 'html'

        exit_code = main([
            '--workbook', f'hysteresis={workbook_path}',
            '--report', 'hysteresis',
            '--output-dir', str(output_dir),
            '--no-figures',
            '--log-level', 'WARNING',
        ])

        assert exit_code == 0
        assert (output_dir / 'hysteresis.html').exists()
        assert not (output_dir / 'figures').exists()
        out = capsys.readouterr().out
        assert 'Reports' in out
        assert 'hysteresis' in out

    def test_config_file(self, workbook_path, tmp_path):
        """Workbooks in a config file resolve against the file's directory."""
        config_path = tmp_path / 'config.yaml'
        config_path.write_text(yaml.safe_dump({
            'output': {'directory': str(tmp_path / 'from_config'), 'save_figures': False},
            'sample_size': {'enabled': False},
            'reports': [{
                'name': 'hysteresis',
                'workbook': workbook_path.name,
                'layout': {'sheets': ['Hysteresis'], 'id_column': 'Cushion', 'group_column': 'Batch'},
            }],
        }))

        assert main(['--config', str(config_path), '--log-level', 'ERROR']) == 0
        assert (tmp_path / 'from_config' / 'hysteresis.html').exists()

    def test_missing_workbook(self, tmp_path):
        """A missing workbook stops the run."""
        with pytest.raises(FileNotFoundError, match="Workbook not found"):
            main([
                '--workbook', f'hysteresis={tmp_path / "missing.xlsx"}',
                '--report', 'hysteresis',
                '--output-dir', str(tmp_path),
                '--log-level', 'ERROR',
            ])
