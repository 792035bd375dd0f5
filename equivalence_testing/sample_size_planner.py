import logging
import numpy as np
import pandas as pd
from itertools import combinations
from typing import Optional

from statistical_engine import StatisticalEngine
from equivalence_testing.tost_analyzer import EquivalenceMargin

logger = logging.getLogger(__name__)

PLAN_COLUMNS = [
    'variable', 'level', 'group_1', 'group_2', 'pooled_sd', 'margin',
    'assumed_difference', 'required_n', 'observed_n', 'adequate'
]


class SampleSizePlanner:
    """Per-group sample sizes needed to show equivalence at each measurement level"""

    def __init__(
        self,
        margin: EquivalenceMargin,
        engine: Optional[StatisticalEngine] = None,
        significance_level: float = 0.05,
        power: float = 0.8,
        use_observed_difference: bool = False
    ):
        if not 0 < power < 1:
            raise ValueError(f"Power must be in (0, 1), got {power}")
        self.margin = margin
        self.engine = engine or StatisticalEngine(default_alpha=significance_level, default_power=power)
        self.significance_level = significance_level
        self.power = power
        self.use_observed_difference = use_observed_difference

    def plan(self, data: pd.DataFrame) -> pd.DataFrame:
        """Required n per group for every group pair within each (variable, level)"""
        rows = []
        for (variable, level), cell in data.groupby(['variable', 'level'], sort=True):
            samples = {
                group: values['value'].to_numpy(dtype=float)
                for group, values in cell.groupby('group', sort=True)
            }
            for group_1, group_2 in combinations(sorted(samples), 2):
                x1, x2 = samples[group_1], samples[group_2]
                sd = self.engine.pooled_std(x1, x2)
                _, delta = self.margin.bounds(float(np.mean(x1)))
                difference = float(np.mean(x1) - np.mean(x2)) if self.use_observed_difference else 0.0

                required = self.engine.tost_sample_size(
                    sd, delta,
                    significance_level=self.significance_level,
                    power=self.power,
                    true_difference=difference
                )
                if required is None:
                    logger.info("No attainable sample size for %s @ %g (%s vs %s)",
                                variable, level, group_1, group_2)

                observed = min(len(x1), len(x2))
                rows.append({
                    'variable': variable,
                    'level': level,
                    'group_1': group_1,
                    'group_2': group_2,
                    'pooled_sd': sd,
                    'margin': delta,
                    'assumed_difference': difference,
                    'required_n': required,
                    'observed_n': observed,
                    'adequate': required is not None and observed >= required
                })

        plan = pd.DataFrame(rows, columns=PLAN_COLUMNS)
        plan['required_n'] = plan['required_n'].astype('Int64')
        return plan
