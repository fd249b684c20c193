"""
Pytest configuration and shared fixtures.

Provides a sample report export on disk and a loaded repository for
unit and integration tests.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
import pytest

from src.data.repository import FinancialRepository
from src.data.schema import FinancialDataset, PivotTotal, StoreRecord, VarianceLineItem


@pytest.fixture
def sample_report() -> Dict[str, Any]:
    """
    Fixture providing a small report export in the JSON layout.

    Five stores with a deliberately weak one (Jahra), a strong one (Avenues),
    a budget miss (Fahaheel), and a store with missing ratios (Airport).
    The company rollup carries the key variance lines.
    """
    stores: List[Dict[str, Any]] = [
        {"store_name": "Avenues", "opening_date": "2015-03-01", "age": "10Y", "sales": 250000.0,
         "budget": 240000.0, "cogs": 80000.0, "gross_profit": 170000.0, "gross_profit_pct": 0.68,
         "operating_profit": 90000.0, "operating_profit_pct": 0.36, "net_profit": 75000.0,
         "net_profit_pct": 0.30, "staff_cost": 40000.0, "rent": 20000.0, "overhead": 5000.0},
        {"store_name": "Marina", "sales": 180000.0, "budget": 185000.0, "cogs": 60000.0,
         "gross_profit": 120000.0, "gross_profit_pct": 0.667, "operating_profit": 40000.0,
         "operating_profit_pct": 0.22, "net_profit": 27000.0, "net_profit_pct": 0.15,
         "staff_cost": 35000.0, "rent": 18000.0, "overhead": 4000.0},
        {"store_name": "Jahra", "sales": 90000.0, "budget": 100000.0, "cogs": 40000.0,
         "gross_profit": 50000.0, "gross_profit_pct": 0.556, "operating_profit": -5000.0,
         "operating_profit_pct": -0.056, "net_profit": -18000.0, "net_profit_pct": -0.20,
         "staff_cost": 30000.0, "rent": 15000.0, "overhead": 3000.0},
        {"store_name": "Fahaheel", "sales": 65000.0, "budget": 100000.0, "cogs": 22000.0,
         "gross_profit": 43000.0, "gross_profit_pct": 0.66, "operating_profit": 9000.0,
         "operating_profit_pct": 0.14, "net_profit": 6500.0, "net_profit_pct": 0.10,
         "staff_cost": 20000.0, "rent": 9000.0, "overhead": 2000.0},
        {"store_name": "Airport", "sales": 120000.0, "budget": None, "gross_profit_pct": None,
         "net_profit_pct": None, "net_profit": None},
        {"store_name": "", "sales": 1.0},
    ]
    variance = [
        {"store": "GULF COFFEE CO", "line_item": "NET SALES", "ytd_actual": 705000.0,
         "ytd_var_budget_pct": -0.05, "ytd_var_lastyear_pct": 0.08},
        {"store": "GULF COFFEE CO", "line_item": "NET PROFIT/LOSS", "ytd_actual": 90500.0,
         "ytd_var_budget_pct": -0.12, "ytd_var_lastyear_pct": 0.02},
        {"store": "GULF COFFEE CO", "line_item": "RENT", "ytd_actual": 62000.0},
        {"store": "Avenues", "line_item": "NET SALES", "dec_actual": 21000.0, "ytd_actual": 250000.0,
         "ytd_var_budget_pct": 0.04},
        {"store": "Jahra", "line_item": "NET SALES", "ytd_actual": 90000.0, "ytd_var_budget_pct": -0.10},
        {"store": "Jahra", "line_item": None},
    ]
    pivot = [
        {"gl_account": "Rent Expense", "total": 62000.0},
        {"gl_account": "Salaries", "total": 125000.0, "cost_center_data": {"Avenues": 40000.0}},
        {"gl_account": None, "total": 10.0},
    ]
    return {"pl_summary": stores, "variance_data": variance, "pivot_totals": pivot}


@pytest.fixture
def sample_report_file(tmp_path: Path, sample_report: Dict[str, Any]) -> Path:
    path = tmp_path / "financial_data.json"
    path.write_text(json.dumps(sample_report), encoding="utf-8")
    return path


@pytest.fixture
def sample_dataset(sample_report: Dict[str, Any]) -> FinancialDataset:
    """Sample report validated directly, skipping rows without identifiers."""
    return FinancialDataset(
        stores=[StoreRecord(**s) for s in sample_report["pl_summary"] if s["store_name"]],
        variance=[VarianceLineItem(**v) for v in sample_report["variance_data"] if v["line_item"]],
        pivot_totals=[PivotTotal(**p) for p in sample_report["pivot_totals"] if p["gl_account"]],
    )


@pytest.fixture
def repository(sample_dataset: FinancialDataset) -> FinancialRepository:
    return FinancialRepository(sample_dataset, company_store_name="GULF COFFEE CO")


@pytest.fixture
def sample_store_dataframe(sample_report: Dict[str, Any]) -> pd.DataFrame:
    """
    Sample P&L summary as a DataFrame, for CSV round trips.
    """
    df = pd.DataFrame([s for s in sample_report["pl_summary"] if s["store_name"]])
    return df


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )
