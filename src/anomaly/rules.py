"""
Rule table for store anomaly classification.

Each rule is an independent predicate with its own severity and threshold
label. Rules run in table order for every store and each contributes at most
one record, so a store can appear several times in the output.

Default order:
1. Underperforming  (net profit %, low tail)
2. Outperforming    (net profit %, high tail)
3. Low Margin       (gross profit %, low tail)
4. Budget Miss      (sales vs budget, fixed relative threshold)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from src.core.config import AnomalyThresholds
from src.data.schema import StoreRecord

from .schema import AnomalyRecord, AnomalySeverity, AnomalyType, BaselineStats, MetricBaseline
from .scoring import (
    average_label,
    budget_miss_label,
    budget_miss_severity,
    budget_variance,
    lower_bound,
    underperform_severity,
    upper_bound,
)

Observe = Callable[[StoreRecord], Optional[float]]
SelectBaseline = Callable[[BaselineStats], MetricBaseline]
Predicate = Callable[[float, Optional[MetricBaseline]], bool]
Severity = Callable[[float, Optional[MetricBaseline]], AnomalySeverity]
ThresholdLabel = Callable[[Optional[MetricBaseline]], str]


@dataclass(frozen=True)
class AnomalyRule:
    """
    One classification rule.

    - observe: value under test, None to skip the store
    - baseline: picks the metric baseline; None for rules that do not use one
    - predicate / severity / threshold_label: receive the picked baseline

    A rule with a baseline is skipped when that baseline is undefined (fewer
    than the minimum observations), so sparse data never raises a flag.
    """

    kind: AnomalyType
    metric: str
    observe: Observe
    predicate: Predicate
    severity: Severity
    threshold_label: ThresholdLabel
    baseline: Optional[SelectBaseline] = None

    def evaluate(self, store: StoreRecord, stats: BaselineStats) -> Optional[AnomalyRecord]:
        value = self.observe(store)
        if value is None:
            return None

        baseline: Optional[MetricBaseline] = None
        if self.baseline is not None:
            baseline = self.baseline(stats)
            if not baseline.is_defined:
                return None

        if not self.predicate(value, baseline):
            return None

        return AnomalyRecord(
            store_name=store.store_name,
            type=self.kind,
            metric=self.metric,
            value=value,
            threshold=self.threshold_label(baseline),
            severity=self.severity(value, baseline),
        )


def default_rules(thresholds: Optional[AnomalyThresholds] = None) -> List[AnomalyRule]:
    """Build the ordered rule table for the given thresholds."""

    t = thresholds or AnomalyThresholds()

    def net_profit(stats: BaselineStats) -> MetricBaseline:
        return stats.net_profit_pct

    def gross_profit(stats: BaselineStats) -> MetricBaseline:
        return stats.gross_profit_pct

    return [
        AnomalyRule(
            kind=AnomalyType.UNDERPERFORMING,
            metric="Net Profit %",
            observe=lambda s: s.net_profit_pct,
            baseline=net_profit,
            predicate=lambda v, b: v < lower_bound(b, t.underperform_sigma),
            severity=lambda v, b: underperform_severity(v, b, t),
            threshold_label=average_label,
        ),
        AnomalyRule(
            kind=AnomalyType.OUTPERFORMING,
            metric="Net Profit %",
            observe=lambda s: s.net_profit_pct,
            baseline=net_profit,
            predicate=lambda v, b: v > upper_bound(b, t.outperform_sigma),
            severity=lambda v, b: AnomalySeverity.LOW,
            threshold_label=average_label,
        ),
        # Flat medium severity; no second sigma tier for margins.
        AnomalyRule(
            kind=AnomalyType.LOW_MARGIN,
            metric="Gross Profit %",
            observe=lambda s: s.gross_profit_pct,
            baseline=gross_profit,
            predicate=lambda v, b: v < lower_bound(b, t.low_margin_sigma),
            severity=lambda v, b: AnomalySeverity.MEDIUM,
            threshold_label=average_label,
        ),
        AnomalyRule(
            kind=AnomalyType.BUDGET_MISS,
            metric="Sales vs Budget",
            observe=lambda s: budget_variance(s.sales, s.budget),
            predicate=lambda v, b: v < -t.budget_miss,
            severity=lambda v, b: budget_miss_severity(v, t),
            threshold_label=lambda b: budget_miss_label(t),
        ),
    ]
