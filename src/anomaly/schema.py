"""
Schema definitions for store anomaly detection.

All anomaly outputs are deterministic and explainable. Each record names the
store, the rule that fired, the raw value that fired it, and the baseline it
was compared against.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AnomalySeverity(str, Enum):
    """Severity levels for anomalies."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnomalyType(str, Enum):
    """Anomaly classifications, valued by their display label."""

    UNDERPERFORMING = "Underperforming"
    OUTPERFORMING = "Outperforming"
    LOW_MARGIN = "Low Margin"
    BUDGET_MISS = "Budget Miss"


class MetricBaseline(BaseModel):
    """
    Cross-store statistics for a single metric.

    Fields:
    - mean: arithmetic mean over non-null observations (None if there are none)
    - stddev: standard deviation (None below the minimum observation count)
    - count: number of non-null observations
    """

    model_config = ConfigDict(frozen=True)

    mean: Optional[float] = None
    stddev: Optional[float] = Field(default=None, ge=0.0)
    count: int = Field(0, ge=0)

    @property
    def is_defined(self) -> bool:
        """True when both mean and stddev can be used by sigma rules."""
        return self.mean is not None and self.stddev is not None


class BaselineStats(BaseModel):
    """
    Baselines for the tracked metrics, computed fresh on every run.
    """

    model_config = ConfigDict(frozen=True)

    net_profit_pct: MetricBaseline = MetricBaseline()
    gross_profit_pct: MetricBaseline = MetricBaseline()
    sales: MetricBaseline = MetricBaseline()


class AnomalyRecord(BaseModel):
    """
    One triggered rule for one store.

    Fields:
    - store_name: store identifier
    - type: anomaly classification
    - metric: display label of the field that triggered the rule
    - value: raw triggering value, a fraction (budget variance for Budget Miss)
    - threshold: human-readable comparison baseline
    - severity: high, medium or low
    """

    model_config = ConfigDict(frozen=True)

    store_name: str
    type: AnomalyType
    metric: str
    value: float
    threshold: str
    severity: AnomalySeverity


class AnomalySummary(BaseModel):
    """
    Counts for the summary cards above the anomaly table.

    by_severity always carries high, medium and low; by_type lists only the
    types that occurred, in first-seen order.
    """

    total: int = Field(0, ge=0)
    by_severity: Dict[AnomalySeverity, int] = Field(
        default_factory=lambda: {s: 0 for s in (AnomalySeverity.HIGH, AnomalySeverity.MEDIUM, AnomalySeverity.LOW)}
    )
    by_type: Dict[AnomalyType, int] = Field(default_factory=dict)
