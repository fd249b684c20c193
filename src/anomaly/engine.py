"""
Store anomaly detection engine.

Consumes the full StoreRecord snapshot, computes cross-store baselines, runs
the rule table over every store, and returns a flat list of AnomalyRecord in
input order (store order, then rule order).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from src.core.config import AnomalyConfig, config
from src.core.exceptions import AnomalyDetectionError
from src.data.schema import StoreRecord

from .baselines import BaselineCalculator
from .rules import AnomalyRule, default_rules
from .schema import AnomalyRecord, BaselineStats

logger = logging.getLogger(__name__)


@dataclass
class AnomalyEngine:
    """
    Deterministic, stateless anomaly engine.

    Notes:
    - Identical input produces identical output, order included.
    - Records are not deduplicated per store and not sorted by severity.
    - Safe to share between request handlers; nothing is retained between calls.
    """

    settings: Optional[AnomalyConfig] = None
    rules: List[AnomalyRule] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.settings = self.settings or config.anomaly
        self._calculator = BaselineCalculator.from_config(self.settings.baselines)
        if not self.rules:
            self.rules = default_rules(self.settings.thresholds)

    def baselines(self, stores: Sequence[StoreRecord]) -> BaselineStats:
        return self._calculator.compute(stores)

    def detect(self, stores: Iterable[StoreRecord]) -> List[AnomalyRecord]:
        snapshot = list(stores)
        stats = self.baselines(snapshot)
        logger.debug(
            "Baselines over %d stores: np%%=%s gp%%=%s sales=%s",
            len(snapshot),
            stats.net_profit_pct,
            stats.gross_profit_pct,
            stats.sales,
        )
        records = self.classify(stats, snapshot)
        logger.info("Detected %d anomalies across %d stores", len(records), len(snapshot))
        return records

    def classify(
        self, stats: BaselineStats, stores: Iterable[StoreRecord]
    ) -> List[AnomalyRecord]:
        """
        Run every rule over every store against precomputed baselines.

        Raises:
            AnomalyDetectionError: if stats is missing
        """

        if stats is None:
            raise AnomalyDetectionError("Baseline statistics are required for classification")

        records: List[AnomalyRecord] = []
        for store in stores:
            for rule in self.rules:
                record = rule.evaluate(store, stats)
                if record is not None:
                    records.append(record)
        return records
