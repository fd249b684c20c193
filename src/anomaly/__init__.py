"""
Anomaly module: cross-store statistical outlier detection.

Implements baselines, the ordered rule table, severity mapping, and the engine.
"""

from .baselines import BaselineCalculator, compute_metric_baseline
from .engine import AnomalyEngine
from .rules import AnomalyRule, default_rules
from .schema import (
	AnomalyRecord,
	AnomalySeverity,
	AnomalySummary,
	AnomalyType,
	BaselineStats,
	MetricBaseline,
)
from .scoring import SEVERITY_ORDER, budget_variance, summarize

__all__ = [
	"AnomalyEngine",
	"AnomalyRecord",
	"AnomalySeverity",
	"AnomalySummary",
	"AnomalyType",
	"BaselineStats",
	"MetricBaseline",
	"BaselineCalculator",
	"compute_metric_baseline",
	"AnomalyRule",
	"default_rules",
	"SEVERITY_ORDER",
	"budget_variance",
	"summarize",
]
