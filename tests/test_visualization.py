"""Tests for comparison plots."""

import base64

import pytest

from statistical_engine import StatisticalEngine
from visualization.comparison_plots import box_scatter_plot, comparison_figures, interval_plot

PNG_SIGNATURE = b'\x89PNG'


@pytest.fixture
def summary(long_frame):
    return StatisticalEngine().summarize(long_frame)


class TestComparisonPlots:
    """Test figure generation and encoding."""

    def test_box_scatter_encoded(self, long_frame):
        """The figure is returned as base64 PNG without touching disk."""
        figure = box_scatter_plot(long_frame, 'Load', group_label='Batch', dpi=50)

        assert figure.name == 'load_box'
        assert figure.png_path is None
        assert base64.b64decode(figure.png_base64)[:4] == PNG_SIGNATURE
        assert 'batch' in figure.caption

    def test_box_scatter_saved(self, long_frame, tmp_path):
        """With an output directory the PNG is written under figures/."""
        figure = box_scatter_plot(long_frame, 'Unload', output_dir=tmp_path, name_prefix='hyst_', dpi=50)

        assert figure.png_path == tmp_path / 'figures' / 'hyst_unload_box.png'
        assert figure.png_path.exists()

    def test_interval_plot(self, summary, tmp_path):
        """Interval plots are drawn from the summary table."""
        figure = interval_plot(summary, 'Load', confidence_level=0.9, output_dir=tmp_path, dpi=50)

        assert figure.png_path.exists()
        assert '90%' in figure.caption

    def test_unknown_variable(self, long_frame, summary):
        """Plotting a variable that is not in the data raises."""
        with pytest.raises(ValueError, match="No observations"):
            box_scatter_plot(long_frame, 'Recovery')
        with pytest.raises(ValueError, match="No summary rows"):
            interval_plot(summary, 'Recovery')

    def test_two_figures_per_variable(self, long_frame, summary):
        """Every variable gets a box and an interval plot."""
        figures = comparison_figures(long_frame, summary, dpi=40)

        assert [figure.name for figure in figures] == [
            'load_box', 'load_interval', 'unload_box', 'unload_interval'
        ]
