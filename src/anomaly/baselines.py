"""
Cross-store baseline estimation.

Computes the mean and standard deviation of each tracked metric over every
store that reports it. Stores with a missing value are left out of that
metric's statistics; they are never counted as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import isfinite, sqrt
from typing import Iterable, Optional, Sequence

from src.core.config import BaselineConfig
from src.data.schema import StoreRecord

from .schema import BaselineStats, MetricBaseline


def compute_metric_baseline(
    values: Iterable[Optional[float]],
    ddof: int = 0,
    min_points: int = 2,
) -> MetricBaseline:
    """
    Mean and standard deviation over the non-null, finite values.

    ddof=0 gives the population deviation (N in the denominator), ddof=1 the
    sample deviation. stddev stays None below min_points observations.
    """

    observed = [v for v in (float(x) for x in values if x is not None) if isfinite(v)]
    if not observed:
        return MetricBaseline()

    count = len(observed)
    mean = sum(observed) / count
    if count < max(min_points, ddof + 1):
        return MetricBaseline(mean=mean, count=count)

    variance = sum((v - mean) ** 2 for v in observed) / (count - ddof)
    return MetricBaseline(mean=mean, stddev=sqrt(variance), count=count)


@dataclass(frozen=True)
class BaselineCalculator:
    """
    Computes BaselineStats for net profit %, gross profit % and sales.

    Pure: holds no state between calls and does not mutate its input.
    """

    ddof: int = 0
    min_points: int = 2

    @classmethod
    def from_config(cls, cfg: BaselineConfig) -> "BaselineCalculator":
        return cls(ddof=cfg.ddof, min_points=cfg.min_points)

    def compute(self, stores: Sequence[StoreRecord]) -> BaselineStats:
        return BaselineStats(
            net_profit_pct=self._metric(s.net_profit_pct for s in stores),
            gross_profit_pct=self._metric(s.gross_profit_pct for s in stores),
            sales=self._metric(s.sales for s in stores),
        )

    def _metric(self, values: Iterable[Optional[float]]) -> MetricBaseline:
        return compute_metric_baseline(values, ddof=self.ddof, min_points=self.min_points)
