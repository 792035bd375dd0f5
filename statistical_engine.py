import logging
import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.weightstats import ttost_ind, CompareMeans, DescrStatsW
from statsmodels.stats.power import TTestIndPower
from statsmodels.stats.multitest import multipletests
from typing import Dict, List, Tuple, Optional, Sequence
import warnings
from dataclasses import dataclass

logger = logging.getLogger(__name__)


P_ADJUST_METHODS = {
    'bonferroni': 'bonferroni',
    'holm': 'holm',
    'benjamini_hochberg': 'fdr_bh',
}

SUMMARY_COLUMNS = [
    'n', 'mean', 'median', 'std', 'se',
    'ci_lower', 'ci_upper', 'ci_half_width', 'normality_p'
]


@dataclass
class TostResult:
    p_value: float
    t_lower: float
    p_lower: float
    t_upper: float
    p_upper: float
    df: float
    difference: float
    lower_bound: float
    upper_bound: float
    confidence_interval: Tuple[float, float]
    equivalent: bool
    n_1: int
    n_2: int


class StatisticalEngine:
    """Descriptive statistics and equivalence testing for compression measurements"""

    def __init__(self, default_alpha: float = 0.05, default_power: float = 0.8,
                 default_confidence: float = 0.95):
        self.default_alpha = default_alpha
        self.default_power = default_power
        self.default_confidence = default_confidence

    def summarize(
        self,
        data: pd.DataFrame,
        by: Sequence[str] = ('variable', 'level', 'group'),
        value_column: str = 'value',
        confidence_level: float = None
    ) -> pd.DataFrame:
        """Summary table (n, mean, median, std, se, CI) per grouping"""
        confidence_level = confidence_level or self.default_confidence
        missing = [col for col in list(by) + [value_column] if col not in data.columns]
        if missing:
            raise ValueError(f"Cannot summarize, missing columns: {missing}")

        rows = []
        for keys, group in data.groupby(list(by), sort=True):
            if not isinstance(keys, tuple):
                keys = (keys,)
            row = dict(zip(by, keys))
            row.update(self.describe(group[value_column].to_numpy(dtype=float), confidence_level))
            rows.append(row)

        return pd.DataFrame(rows, columns=list(by) + SUMMARY_COLUMNS)

    def describe(self, values: np.ndarray, confidence_level: float = None) -> Dict[str, float]:
        """Descriptive statistics for one sample"""
        confidence_level = confidence_level or self.default_confidence
        values = np.asarray(values, dtype=float)
        values = values[~np.isnan(values)]
        n = len(values)

        if n == 0:
            return {col: (0 if col == 'n' else np.nan) for col in SUMMARY_COLUMNS}

        mean = float(np.mean(values))
        median = float(np.median(values))

        # Spread is undefined for a single observation
        if n < 2:
            std = se = lower = upper = half_width = np.nan
        else:
            std = float(np.std(values, ddof=1))
            se = std / np.sqrt(n)
            lower, upper = self.confidence_interval(values, confidence_level)
            half_width = (upper - lower) / 2

        return {
            'n': n,
            'mean': mean,
            'median': median,
            'std': std,
            'se': se,
            'ci_lower': lower,
            'ci_upper': upper,
            'ci_half_width': half_width,
            'normality_p': self._normality_p_value(values)
        }

    def confidence_interval(
        self,
        data: np.ndarray,
        confidence_level: float = None
    ) -> Tuple[float, float]:
        """Parametric t confidence interval for the mean"""
        confidence_level = confidence_level or self.default_confidence
        if not 0 < confidence_level < 1:
            raise ValueError(f"Confidence level must be in (0, 1), got {confidence_level}")

        data = np.asarray(data, dtype=float)
        n = len(data)
        if n < 2:
            return (np.nan, np.nan)

        mean = float(np.mean(data))
        sem = float(stats.sem(data))
        if sem == 0:
            return (mean, mean)

        t_crit = stats.t.ppf((1 + confidence_level) / 2, df=n - 1)
        return (mean - t_crit * sem, mean + t_crit * sem)

    def tost(
        self,
        x1: np.ndarray,
        x2: np.ndarray,
        low: float,
        upp: float,
        significance_level: float = None,
        usevar: str = 'unequal'
    ) -> TostResult:
        """Two one-sided tests for equivalence of mean(x1) - mean(x2) within (low, upp)"""
        alpha = significance_level or self.default_alpha
        if usevar not in ('pooled', 'unequal'):
            raise ValueError(f"Unknown variance assumption: {usevar}")
        if not low < upp:
            raise ValueError(f"Lower equivalence bound {low} must be below upper bound {upp}")

        x1 = np.asarray(x1, dtype=float)
        x2 = np.asarray(x2, dtype=float)
        n1, n2 = len(x1), len(x2)

        if n1 < 2 or n2 < 2:
            logger.warning("TOST needs at least 2 observations per group (got %d and %d)", n1, n2)
            difference = float(np.mean(x1) - np.mean(x2)) if n1 and n2 else np.nan
            return TostResult(
                p_value=np.nan, t_lower=np.nan, p_lower=np.nan,
                t_upper=np.nan, p_upper=np.nan, df=np.nan,
                difference=difference, lower_bound=low, upper_bound=upp,
                confidence_interval=(np.nan, np.nan), equivalent=False,
                n_1=n1, n_2=n2
            )

        difference = float(np.mean(x1) - np.mean(x2))

        if np.var(x1) == 0 and np.var(x2) == 0:
            # No sampling variability, the difference is known exactly
            inside = low < difference < upp
            p_value = 0.0 if inside else 1.0
            return TostResult(
                p_value=p_value,
                t_lower=np.inf if difference > low else -np.inf,
                p_lower=0.0 if difference > low else 1.0,
                t_upper=-np.inf if difference < upp else np.inf,
                p_upper=0.0 if difference < upp else 1.0,
                df=float(n1 + n2 - 2),
                difference=difference, lower_bound=low, upper_bound=upp,
                confidence_interval=(difference, difference),
                equivalent=p_value < alpha,
                n_1=n1, n_2=n2
            )

        p_value, (t1, p1, df1), (t2, p2, df2) = ttost_ind(x1, x2, low, upp, usevar=usevar)

        compare = CompareMeans(DescrStatsW(x1), DescrStatsW(x2))
        ci = compare.tconfint_diff(alpha=2 * alpha, usevar=usevar)

        return TostResult(
            p_value=float(p_value),
            t_lower=float(t1),
            p_lower=float(p1),
            t_upper=float(t2),
            p_upper=float(p2),
            df=float(df1),
            difference=difference,
            lower_bound=low,
            upper_bound=upp,
            confidence_interval=(float(ci[0]), float(ci[1])),
            equivalent=bool(p_value < alpha),
            n_1=n1,
            n_2=n2
        )

    def tost_sample_size(
        self,
        sd: float,
        margin: float,
        significance_level: float = None,
        power: float = None,
        true_difference: float = 0.0
    ) -> Optional[int]:
        """Required sample size per group for a two-sample TOST"""
        alpha = significance_level or self.default_alpha
        power = power or self.default_power

        if not np.isfinite(sd) or sd <= 0:
            return None

        gap = margin - abs(true_difference)
        if gap <= 0:
            return None

        # With no true difference both one-sided tests must succeed, beta is split across them
        per_side_power = 1 - (1 - power) / 2 if true_difference == 0 else power

        analysis = TTestIndPower()
        # Root finding starts at two per group, anything smaller is not a usable design
        minimum_power = analysis.power(
            effect_size=gap / sd, nobs1=2, alpha=alpha, ratio=1.0, alternative='larger'
        )
        if minimum_power >= per_side_power:
            return 2

        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            sample_size = analysis.solve_power(
                effect_size=gap / sd,
                nobs1=None,
                alpha=alpha,
                power=per_side_power,
                ratio=1.0,
                alternative='larger'
            )
        sample_size = float(np.squeeze(sample_size))
        if not np.isfinite(sample_size):
            return None
        return max(int(np.ceil(sample_size)), 2)

    def correct_multiple_comparisons(
        self,
        p_values: List[float],
        method: str = 'bonferroni',
        significance_level: float = None
    ) -> List[float]:
        """Apply multiple comparison corrections"""
        alpha = significance_level or self.default_alpha
        if method == 'none':
            return list(p_values)
        if method not in P_ADJUST_METHODS:
            raise ValueError(f"Unknown correction method: {method}")

        p_values = np.asarray(p_values, dtype=float)
        corrected = np.full(len(p_values), np.nan)
        valid = ~np.isnan(p_values)
        if valid.any():
            _, adjusted, _, _ = multipletests(
                p_values[valid], alpha=alpha, method=P_ADJUST_METHODS[method]
            )
            corrected[valid] = adjusted
        return corrected.tolist()

    def pooled_std(self, x1: np.ndarray, x2: np.ndarray) -> float:
        """Pooled standard deviation of two samples"""
        n1, n2 = len(x1), len(x2)
        if n1 < 2 or n2 < 2:
            return np.nan
        return float(np.sqrt(((n1 - 1) * np.var(x1, ddof=1) +
                              (n2 - 1) * np.var(x2, ddof=1)) /
                             (n1 + n2 - 2)))

    def significance_flag(self, p_value: float, significance_level: float = None) -> str:
        """Star marker for a p-value"""
        alpha = significance_level or self.default_alpha
        if p_value is None or np.isnan(p_value):
            return 'n/a'
        if p_value < 0.001:
            return '***'
        if p_value < 0.01:
            return '**'
        if p_value < alpha:
            return '*'
        return 'ns'

    def _normality_p_value(self, data: np.ndarray) -> float:
        """Shapiro-Wilk p-value, NaN where the test is not applicable"""
        if len(data) < 3 or len(data) > 5000 or np.ptp(data) == 0:
            return np.nan
        _, p_value = stats.shapiro(data)
        return float(p_value)
