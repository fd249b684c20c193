"""
Severity mapping and threshold labels for store anomalies.
"""

from __future__ import annotations

from typing import Iterable, Optional

from src.core.config import AnomalyThresholds

from .schema import AnomalyRecord, AnomalySeverity, AnomalySummary, MetricBaseline

SEVERITY_ORDER = [AnomalySeverity.HIGH, AnomalySeverity.MEDIUM, AnomalySeverity.LOW]

BUDGET_MISS_LABEL = "More than 20% below budget"


def lower_bound(baseline: MetricBaseline, sigmas: float) -> float:
    return baseline.mean - sigmas * baseline.stddev


def upper_bound(baseline: MetricBaseline, sigmas: float) -> float:
    return baseline.mean + sigmas * baseline.stddev


def budget_variance(sales: Optional[float], budget: Optional[float]) -> Optional[float]:
    """
    (sales - budget) / budget, or None when either side is missing or the
    budget is not positive.
    """

    if sales is None or budget is None or budget <= 0:
        return None
    return (sales - budget) / budget


def underperform_severity(
    value: float, baseline: MetricBaseline, thresholds: AnomalyThresholds
) -> AnomalySeverity:
    if value < lower_bound(baseline, thresholds.underperform_high_sigma):
        return AnomalySeverity.HIGH
    return AnomalySeverity.MEDIUM


def budget_miss_severity(variance: float, thresholds: AnomalyThresholds) -> AnomalySeverity:
    if variance < -thresholds.budget_miss_high:
        return AnomalySeverity.HIGH
    return AnomalySeverity.MEDIUM


def average_label(baseline: MetricBaseline) -> str:
    """Baseline mean as a percentage, e.g. 'Avg: 12.3%'."""
    return f"Avg: {baseline.mean * 100:.1f}%"


def budget_miss_label(thresholds: AnomalyThresholds) -> str:
    if thresholds.budget_miss == AnomalyThresholds().budget_miss:
        return BUDGET_MISS_LABEL
    return f"More than {thresholds.budget_miss * 100:g}% below budget"


def summarize(records: Iterable[AnomalyRecord]) -> AnomalySummary:
    """
    Count records per severity and per type. Record order is untouched.
    """

    summary = AnomalySummary()
    for record in records:
        summary.total += 1
        summary.by_severity[record.severity] += 1
        summary.by_type[record.type] = summary.by_type.get(record.type, 0) + 1
    return summary
