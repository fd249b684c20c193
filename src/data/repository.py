"""
In-memory tabular store for one reporting-period snapshot.

The repository answers the read contracts the dashboard and the anomaly
engine need (all stores, rankings, variance lookups, pivot totals, company
aggregates). A new import replaces the snapshot wholesale; there are no
partial updates.

Thread-safety: the snapshot reference and the chat history are guarded by a
lock. Readers take a reference under the lock and work on it unlocked, since
a loaded snapshot is never mutated.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Dict, List, Optional

import pandas as pd

from src.core.config import config
from src.data.schema import (
    AggregateMetrics,
    ChatMessage,
    FinancialDataset,
    PivotTotal,
    StoreRecord,
    VarianceLineItem,
)

logger = logging.getLogger(__name__)

STORE_COLUMNS = list(StoreRecord.model_fields)
TEXT_COLUMNS = ["store_name", "opening_date", "age"]
NUMERIC_COLUMNS = [c for c in STORE_COLUMNS if c not in TEXT_COLUMNS]

# Ranking metric names accepted from the UI (camelCase) or from code (snake_case).
RANKING_METRICS: Dict[str, str] = {
    "sales": "sales",
    "netProfit": "net_profit",
    "net_profit": "net_profit",
    "grossProfit": "gross_profit",
    "gross_profit": "gross_profit",
    "operatingProfit": "operating_profit",
    "operating_profit": "operating_profit",
}
DEFAULT_RANKING_METRIC = "sales"


def _stores_frame(stores: List[StoreRecord]) -> pd.DataFrame:
    frame = pd.DataFrame([s.model_dump() for s in stores], columns=STORE_COLUMNS)
    frame[NUMERIC_COLUMNS] = frame[NUMERIC_COLUMNS].astype("float64")
    return frame.sort_values("store_name", kind="mergesort").reset_index(drop=True)


def _optional(value: object) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


class FinancialRepository:
    """
    Snapshot-backed store for stores, variance line items and pivot totals.
    """

    def __init__(
        self,
        dataset: Optional[FinancialDataset] = None,
        company_store_name: Optional[str] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._company_store_name = company_store_name or config.company_store_name
        self._stores = _stores_frame([])
        self._variance: List[VarianceLineItem] = []
        self._pivot: List[PivotTotal] = []
        self._chat: List[ChatMessage] = []
        if dataset is not None:
            self.load(dataset)

    def load(self, dataset: FinancialDataset) -> None:
        """Replace the current snapshot with a freshly imported dataset."""
        frame = _stores_frame(dataset.stores)
        with self._lock:
            self._stores = frame
            self._variance = list(dataset.variance)
            self._pivot = list(dataset.pivot_totals)
        logger.info("Snapshot replaced: %d stores", len(frame))

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return self._stores.empty

    # -------- stores --------

    def all_stores(self) -> List[StoreRecord]:
        """All stores ordered by store name."""
        return self._records(self._frame())

    def store_by_name(self, name: str) -> Optional[StoreRecord]:
        frame = self._frame()
        match = frame[frame["store_name"] == name]
        if match.empty:
            return None
        return self._records(match.head(1))[0]

    def store_names(self) -> List[str]:
        return self._frame()["store_name"].tolist()

    def top_stores(self, metric: str = DEFAULT_RANKING_METRIC, limit: int = 10) -> List[StoreRecord]:
        return self._ranked(metric, limit, ascending=False)

    def bottom_stores(self, metric: str = DEFAULT_RANKING_METRIC, limit: int = 10) -> List[StoreRecord]:
        return self._ranked(metric, limit, ascending=True)

    def _ranked(self, metric: str, limit: int, ascending: bool) -> List[StoreRecord]:
        column = RANKING_METRICS.get(metric)
        if column is None:
            logger.debug("Unknown ranking metric %r; ranking by sales", metric)
            column = RANKING_METRICS[DEFAULT_RANKING_METRIC]
        frame = self._frame().sort_values(
            column, ascending=ascending, na_position="last", kind="mergesort"
        )
        return self._records(frame.head(max(limit, 0)))

    # -------- variance and pivot --------

    def variance_by_store(self, store_name: str) -> List[VarianceLineItem]:
        return [v for v in self._variance_rows() if v.store == store_name]

    def variance_by_line_item(self, line_item: str) -> List[VarianceLineItem]:
        return [v for v in self._variance_rows() if v.line_item == line_item]

    def company_variance(self) -> List[VarianceLineItem]:
        """Variance rows of the company-level rollup."""
        return self.variance_by_store(self._company_store_name)

    def pivot_data(self) -> List[PivotTotal]:
        with self._lock:
            return list(self._pivot)

    # -------- aggregates --------

    def aggregate_metrics(self) -> Optional[AggregateMetrics]:
        """
        Company totals and averages, or None when no stores are loaded.

        Sums are None when every store lacks the field; averages skip missing
        values.
        """
        frame = self._frame()
        if frame.empty:
            return None

        def total(column: str) -> Optional[float]:
            return _optional(frame[column].sum(min_count=1))

        def average(column: str) -> Optional[float]:
            return _optional(frame[column].mean())

        return AggregateMetrics(
            total_sales=total("sales"),
            total_budget=total("budget"),
            total_cogs=total("cogs"),
            total_gross_profit=total("gross_profit"),
            total_operating_profit=total("operating_profit"),
            total_net_profit=total("net_profit"),
            total_staff_cost=total("staff_cost"),
            total_rent=total("rent"),
            total_overhead=total("overhead"),
            avg_gross_profit_pct=average("gross_profit_pct"),
            avg_net_profit_pct=average("net_profit_pct"),
            avg_operating_profit_pct=average("operating_profit_pct"),
            store_count=len(frame),
            profitable_stores=int((frame["net_profit"] > 0).sum()),
            loss_stores=int((frame["net_profit"] <= 0).sum()),
        )

    # -------- chat history --------

    def save_chat_message(self, user_id: Optional[int], role: str, content: str) -> ChatMessage:
        message = ChatMessage(user_id=user_id, role=role, content=content)
        with self._lock:
            self._chat.append(message)
        return message

    def chat_history(self, user_id: Optional[int], limit: int = 50) -> List[ChatMessage]:
        """Messages for a user, newest first."""
        with self._lock:
            messages = list(reversed(self._chat))
        return [m for m in messages if m.user_id == user_id][: max(limit, 0)]

    # -------- helpers --------

    def _frame(self) -> pd.DataFrame:
        with self._lock:
            return self._stores

    def _variance_rows(self) -> List[VarianceLineItem]:
        with self._lock:
            return self._variance

    @staticmethod
    def _records(frame: pd.DataFrame) -> List[StoreRecord]:
        rows = frame.astype(object).where(frame.notna(), None).to_dict("records")
        return [StoreRecord.model_validate(row) for row in rows]
