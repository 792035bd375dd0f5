"""Tests for pairwise TOST analysis and sample size planning."""

import numpy as np
import pandas as pd
import pytest

from equivalence_testing.sample_size_planner import PLAN_COLUMNS, SampleSizePlanner
from equivalence_testing.tost_analyzer import (
    RESULT_COLUMNS,
    EquivalenceMargin,
    MarginType,
    TostAnalyzer,
    pair_label,
)


@pytest.fixture
def relative_margin():
    return EquivalenceMargin(0.10, MarginType.RELATIVE)


class TestEquivalenceMargin:
    """Test margin bounds."""

    def test_relative_bounds(self, relative_margin):
        """Relative margins scale with the reference mean."""
        assert relative_margin.bounds(200.0) == pytest.approx((-20.0, 20.0))
        assert relative_margin.bounds(-50.0) == pytest.approx((-5.0, 5.0))

    def test_absolute_bounds(self):
        """Absolute margins ignore the reference mean."""
        margin = EquivalenceMargin(3.0, 'absolute')

        assert margin.margin_type == MarginType.ABSOLUTE
        assert margin.bounds(1000.0) == (-3.0, 3.0)

    def test_positive_value_required(self):
        """Zero or negative margins are rejected."""
        with pytest.raises(ValueError, match="must be positive"):
            EquivalenceMargin(0.0)

    def test_describe(self, relative_margin):
        """Descriptions name the margin type."""
        assert '10%' in relative_margin.describe()
        assert 'absolute' in EquivalenceMargin(2.5, MarginType.ABSOLUTE).describe()


class TestTostAnalyzer:
    """Test pairwise equivalence over variables and levels."""

    def test_all_pairs_at_all_levels(self, long_frame, relative_margin):
        """Three batches give three pairs in each of four cells."""
        results = TostAnalyzer(relative_margin).run(long_frame)

        assert list(results.columns) == RESULT_COLUMNS
        assert len(results) == 12
        assert set(zip(results['group_1'], results['group_2'])) == {('B1', 'B2'), ('B1', 'B3'), ('B2', 'B3')}

    def test_matching_batches_equivalent(self, long_frame, relative_margin):
        """B1 and B2 agree everywhere, B3 never matches."""
        results = TostAnalyzer(relative_margin).run(long_frame)

        matching = results[(results['group_1'] == 'B1') & (results['group_2'] == 'B2')]
        outlier = results[results['group_2'] == 'B3']
        assert matching['equivalent'].all()
        assert (matching['flag'] != 'ns').all()
        assert not outlier['equivalent'].any()
        assert (outlier['flag'] == 'ns').all()

    def test_bounds_follow_reference_group(self, long_frame, relative_margin):
        """Relative bounds use the first group's mean."""
        results = TostAnalyzer(relative_margin).run(long_frame)

        row = results[(results['variable'] == 'Load') & (results['level'] == 50.0) &
                      (results['group_1'] == 'B1') & (results['group_2'] == 'B2')].iloc[0]
        assert row['mean_1'] == pytest.approx(150.0)
        assert row['upper_bound'] == pytest.approx(15.0)
        assert row['lower_bound'] == pytest.approx(-15.0)

    def test_tight_absolute_margin(self, long_frame):
        """A margin far below the noise shows no equivalence."""
        results = TostAnalyzer(EquivalenceMargin(0.1, MarginType.ABSOLUTE)).run(long_frame)

        assert not results['equivalent'].any()

    def test_adjusted_p_values(self, long_frame, relative_margin):
        """Bonferroni-adjusted p-values are never smaller than raw ones."""
        results = TostAnalyzer(relative_margin, p_adjust='bonferroni').run(long_frame)

        assert (results['p_adjusted'] >= results['p_value']).all()
        assert (results['p_adjusted'] <= 1.0).all()

    def test_single_group(self, long_frame, relative_margin):
        """One group leaves nothing to compare."""
        analyzer = TostAnalyzer(relative_margin)
        results = analyzer.run(long_frame[long_frame['group'] == 'B1'])

        assert results.empty
        assert analyzer.flag_table(results).empty
        assert analyzer.equivalence_summary(results)['comparisons'] == 0

    def test_zero_reference_mean(self, relative_margin):
        """A relative margin around a zero mean cannot be tested."""
        data = pd.DataFrame({
            'variable': ['Load'] * 6,
            'level': [25.0] * 6,
            'group': ['A', 'A', 'A', 'B', 'B', 'B'],
            'value': [-1.0, 0.0, 1.0, -1.0, 0.5, 0.5],
        })

        results = TostAnalyzer(relative_margin).run(data)

        assert len(results) == 1
        assert np.isnan(results.loc[0, 'p_value'])
        assert not results.loc[0, 'equivalent']
        assert results.loc[0, 'flag'] == 'n/a'

    def test_flag_table(self, long_frame, relative_margin):
        """Flags are pivoted to one column per pair."""
        analyzer = TostAnalyzer(relative_margin)
        flags = analyzer.flag_table(analyzer.run(long_frame))

        assert flags.shape == (4, 3)
        assert list(flags.columns) == [pair_label('B1', 'B2'), pair_label('B1', 'B3'), pair_label('B2', 'B3')]
        assert (flags['B1 vs B3'] == 'ns').all()

    def test_equivalence_summary(self, long_frame, relative_margin):
        """Counts per variable add up to the total."""
        analyzer = TostAnalyzer(relative_margin)
        counts = analyzer.equivalence_summary(analyzer.run(long_frame))

        assert counts['comparisons'] == 12
        assert counts['equivalent'] == 4
        assert counts['by_variable']['Load'] == {'comparisons': 6, 'equivalent': 2}


class TestSampleSizePlanner:
    """Test sample size planning per comparison."""

    def test_plan_shape(self, long_frame, relative_margin):
        """One plan row per pair and cell."""
        plan = SampleSizePlanner(relative_margin).plan(long_frame)

        assert list(plan.columns) == PLAN_COLUMNS
        assert len(plan) == 12
        assert str(plan['required_n'].dtype) == 'Int64'

    def test_low_noise_is_adequate(self, long_frame, relative_margin):
        """Six cushions suffice when the noise is small against the margin."""
        plan = SampleSizePlanner(relative_margin).plan(long_frame)

        assert plan['adequate'].all()
        assert (plan['observed_n'] == 6).all()
        assert (plan['assumed_difference'] == 0.0).all()

    def test_observed_difference_beyond_margin(self, long_frame, relative_margin):
        """Using the observed difference makes the outlier batch unattainable."""
        plan = SampleSizePlanner(relative_margin, use_observed_difference=True).plan(long_frame)

        outlier = plan[plan['group_2'] == 'B3']
        assert outlier['required_n'].isna().all()
        assert not outlier['adequate'].any()

    def test_invalid_power(self, relative_margin):
        """Power must be a probability."""
        with pytest.raises(ValueError, match="Power"):
            SampleSizePlanner(relative_margin, power=1.2)
