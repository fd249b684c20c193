"""
Data module: financial snapshot schema, ingestion, and the tabular repository.

Pipeline:

    Report export (JSON / CSV)
        ↓
    Ingestion (src/data/ingestion.py) → FinancialDataset
        ↓
    Repository (src/data/repository.py) → StoreRecord lists, rankings, aggregates
        ↓
    Anomaly detection (src/anomaly)
"""

from src.data.ingestion import (
    CSVStoreSource,
    DataIngestionError,
    JSONDatasetSource,
    load_financial_dataset,
)
from src.data.repository import FinancialRepository
from src.data.schema import (
    AggregateMetrics,
    ChatMessage,
    FinancialDataset,
    PivotTotal,
    StoreRecord,
    VarianceLineItem,
)

__all__ = [
    # Schema
    "StoreRecord",
    "VarianceLineItem",
    "PivotTotal",
    "AggregateMetrics",
    "ChatMessage",
    "FinancialDataset",

    # Ingestion
    "load_financial_dataset",
    "JSONDatasetSource",
    "CSVStoreSource",
    "DataIngestionError",

    # Repository
    "FinancialRepository",
]
