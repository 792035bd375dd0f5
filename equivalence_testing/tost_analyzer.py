import logging
import numpy as np
import pandas as pd
from itertools import combinations
from typing import Dict, Tuple, Optional, Any
from dataclasses import dataclass, asdict
from enum import Enum

from statistical_engine import StatisticalEngine, TostResult

logger = logging.getLogger(__name__)


class MarginType(Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class VarianceAssumption(Enum):
    POOLED = "pooled"
    UNEQUAL = "unequal"


@dataclass
class EquivalenceMargin:
    value: float
    margin_type: MarginType = MarginType.RELATIVE

    def __post_init__(self):
        if isinstance(self.margin_type, str):
            self.margin_type = MarginType(self.margin_type)
        if not self.value > 0:
            raise ValueError(f"Equivalence margin must be positive, got {self.value}")

    def bounds(self, reference_mean: float) -> Tuple[float, float]:
        """Symmetric bounds on the mean difference"""
        if self.margin_type == MarginType.ABSOLUTE:
            delta = self.value
        else:
            delta = abs(reference_mean) * self.value
        return (-delta, delta)

    def describe(self) -> str:
        if self.margin_type == MarginType.ABSOLUTE:
            return f"±{self.value:g} (absolute)"
        return f"±{self.value:.0%} of the reference group mean"


RESULT_COLUMNS = [
    'variable', 'level', 'group_1', 'group_2', 'n_1', 'n_2', 'mean_1', 'mean_2',
    'difference', 'lower_bound', 'upper_bound', 'ci_lower', 'ci_upper',
    't_lower', 'p_lower', 't_upper', 'p_upper', 'df', 'p_value', 'p_adjusted',
    'equivalent', 'flag'
]


def pair_label(group_1: str, group_2: str) -> str:
    return f"{group_1} vs {group_2}"


class TostAnalyzer:
    """Pairwise equivalence tests between groups at every measurement level"""

    def __init__(
        self,
        margin: EquivalenceMargin,
        engine: Optional[StatisticalEngine] = None,
        significance_level: float = 0.05,
        usevar: VarianceAssumption = VarianceAssumption.UNEQUAL,
        p_adjust: str = 'none'
    ):
        self.margin = margin
        self.engine = engine or StatisticalEngine(default_alpha=significance_level)
        self.significance_level = significance_level
        self.usevar = VarianceAssumption(usevar)
        self.p_adjust = p_adjust

    def run(self, data: pd.DataFrame) -> pd.DataFrame:
        """Run TOST for every pair of groups within each (variable, level)"""
        rows = []
        for (variable, level), cell in data.groupby(['variable', 'level'], sort=True):
            samples = {
                group: values['value'].to_numpy(dtype=float)
                for group, values in cell.groupby('group', sort=True)
            }
            for group_1, group_2 in combinations(sorted(samples), 2):
                rows.append(self._compare(variable, level, group_1, group_2,
                                          samples[group_1], samples[group_2]))

        results = pd.DataFrame(rows, columns=RESULT_COLUMNS)
        if results.empty:
            logger.warning("No group pairs to compare, need at least two groups per level")
            return results

        results['p_adjusted'] = self.engine.correct_multiple_comparisons(
            results['p_value'].tolist(),
            method=self.p_adjust,
            significance_level=self.significance_level
        )
        results['equivalent'] = results['p_adjusted'] < self.significance_level
        results['flag'] = [
            self.engine.significance_flag(p, self.significance_level)
            for p in results['p_adjusted']
        ]
        return results

    def flag_table(self, results: pd.DataFrame) -> pd.DataFrame:
        """Significance flags with one row per (variable, level) and one column per pair"""
        if results.empty:
            return pd.DataFrame()
        labelled = results.assign(
            comparison=[pair_label(a, b) for a, b in zip(results['group_1'], results['group_2'])]
        )
        table = labelled.pivot_table(
            index=['variable', 'level'],
            columns='comparison',
            values='flag',
            aggfunc='first'
        )
        table.columns.name = None
        return table.fillna('')

    def equivalence_summary(self, results: pd.DataFrame) -> Dict[str, Any]:
        """Counts of equivalent comparisons overall and per variable"""
        if results.empty:
            return {'comparisons': 0, 'equivalent': 0, 'by_variable': {}}
        by_variable = {
            variable: {
                'comparisons': int(len(group)),
                'equivalent': int(group['equivalent'].sum())
            }
            for variable, group in results.groupby('variable', sort=True)
        }
        return {
            'comparisons': int(len(results)),
            'equivalent': int(results['equivalent'].sum()),
            'by_variable': by_variable
        }

    def _compare(
        self,
        variable: str,
        level: float,
        group_1: str,
        group_2: str,
        x1: np.ndarray,
        x2: np.ndarray
    ) -> Dict[str, Any]:
        reference_mean = float(np.mean(x1))
        low, upp = self.margin.bounds(reference_mean)

        if low == upp:
            # A zero reference mean collapses a relative margin
            logger.warning("Zero-width equivalence bounds for %s @ %g (%s)",
                           variable, level, pair_label(group_1, group_2))
            result = TostResult(
                p_value=np.nan, t_lower=np.nan, p_lower=np.nan, t_upper=np.nan,
                p_upper=np.nan, df=np.nan, difference=float(np.mean(x1) - np.mean(x2)),
                lower_bound=low, upper_bound=upp, confidence_interval=(np.nan, np.nan),
                equivalent=False, n_1=len(x1), n_2=len(x2)
            )
        else:
            result = self.engine.tost(
                x1, x2, low, upp,
                significance_level=self.significance_level,
                usevar=self.usevar.value
            )

        row = asdict(result)
        ci_lower, ci_upper = row.pop('confidence_interval')
        row.update({
            'variable': variable,
            'level': level,
            'group_1': group_1,
            'group_2': group_2,
            'mean_1': reference_mean,
            'mean_2': float(np.mean(x2)),
            'ci_lower': ci_lower,
            'ci_upper': ci_upper,
            'p_adjusted': np.nan,
            'flag': ''
        })
        return row
