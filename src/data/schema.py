"""
Canonical schema for the financial reporting snapshot.

One snapshot per reporting period: per-store P&L summaries, budget/prior-year
variance line items, and GL-account pivot totals. Every record is produced by
the ingestion layer and is read-only afterwards.

Design rationale:
- Numeric fields are Optional; absence is None, never zero (zero is a valid profit)
- Percent fields are fractions (0.281 means 28.1%)
- camelCase aliases accepted so exports from the dashboard load unchanged
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _blank_to_none(value: Any) -> Any:
    """Coerce blank strings and NaN to None so missing data stays missing."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _finite_or_none(value: Any) -> Any:
    """Parsed NaN or infinity (e.g. from a "NaN" cell) is missing data too."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class StoreRecord(_SnapshotModel):
    """
    P&L summary for one store in the reporting period.

    Attributes:
        store_name: Unique store identifier
        sales: Actual revenue
        budget: Budgeted revenue
        gross_profit_pct: Gross profit / sales (fraction)
        operating_profit_pct: Operating profit / sales (fraction)
        net_profit_pct: Net profit / sales (fraction)

    The remaining cost lines mirror the P&L summary sheet and are carried for
    rankings, aggregate metrics and narration context.
    """

    store_name: str = Field(..., min_length=1, max_length=200)
    opening_date: Optional[str] = Field(default=None, max_length=20)
    age: Optional[str] = Field(default=None, max_length=20)

    sales: Optional[float] = None
    budget: Optional[float] = None
    cogs: Optional[float] = None
    gross_profit: Optional[float] = None
    gross_profit_pct: Optional[float] = None
    staff_cost: Optional[float] = None
    staff_cost_pct: Optional[float] = None
    marketing_exp: Optional[float] = None
    marketing_exp_pct: Optional[float] = None
    rent: Optional[float] = None
    rent_pct: Optional[float] = None
    royalty: Optional[float] = None
    royalty_pct: Optional[float] = None
    other_opex: Optional[float] = None
    other_opex_pct: Optional[float] = None
    operating_profit: Optional[float] = None
    operating_profit_pct: Optional[float] = None
    depreciation: Optional[float] = None
    amortization: Optional[float] = None
    others: Optional[float] = None
    np_before_overhead: Optional[float] = None
    overhead: Optional[float] = None
    net_profit: Optional[float] = None
    net_profit_pct: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def _missing_is_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("*", mode="after")
    @classmethod
    def _non_finite_is_none(cls, value: Any) -> Any:
        return _finite_or_none(value)

    @field_validator("opening_date", "age", mode="before")
    @classmethod
    def _text_fields(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)


class VarianceLineItem(_SnapshotModel):
    """
    Budget / prior-year variance for one P&L line item of one store.

    `dec_*` fields are the reporting month, `ytd_*` fields are year-to-date.
    `var_*` fields are actual minus comparison, as amount and as fraction.
    The company rollup uses the company name as its store label.
    """

    store: str = Field(..., min_length=1, max_length=200)
    line_item: str = Field(..., min_length=1, max_length=200)

    dec_actual: Optional[float] = None
    dec_actual_pct: Optional[float] = None
    dec_budget: Optional[float] = None
    dec_budget_pct: Optional[float] = None
    dec_lastyear: Optional[float] = None
    dec_lastyear_pct: Optional[float] = None
    var_budget_amt: Optional[float] = None
    var_budget_pct: Optional[float] = None
    var_lastyear_amt: Optional[float] = None
    var_lastyear_pct: Optional[float] = None

    ytd_actual: Optional[float] = None
    ytd_actual_pct: Optional[float] = None
    ytd_budget: Optional[float] = None
    ytd_budget_pct: Optional[float] = None
    ytd_lastyear: Optional[float] = None
    ytd_lastyear_pct: Optional[float] = None
    ytd_var_budget_amt: Optional[float] = None
    ytd_var_budget_pct: Optional[float] = None
    ytd_var_lastyear_amt: Optional[float] = None
    ytd_var_lastyear_pct: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def _missing_is_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("*", mode="after")
    @classmethod
    def _non_finite_is_none(cls, value: Any) -> Any:
        return _finite_or_none(value)


class PivotTotal(_SnapshotModel):
    """GL account total from the pivot analysis sheet."""

    gl_account: str = Field(..., min_length=1, max_length=200)
    total: Optional[float] = None
    cost_center_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("total", mode="before")
    @classmethod
    def _missing_is_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("total", mode="after")
    @classmethod
    def _non_finite_is_none(cls, value: Any) -> Any:
        return _finite_or_none(value)


class AggregateMetrics(_SnapshotModel):
    """
    Company-wide totals and averages over the store snapshot.

    Totals are None when every store lacks the field. Averages skip missing
    values. A store with unknown net profit counts as neither profitable nor
    loss-making.
    """

    total_sales: Optional[float] = None
    total_budget: Optional[float] = None
    total_cogs: Optional[float] = None
    total_gross_profit: Optional[float] = None
    total_operating_profit: Optional[float] = None
    total_net_profit: Optional[float] = None
    total_staff_cost: Optional[float] = None
    total_rent: Optional[float] = None
    total_overhead: Optional[float] = None
    avg_gross_profit_pct: Optional[float] = None
    avg_net_profit_pct: Optional[float] = None
    avg_operating_profit_pct: Optional[float] = None
    store_count: int = Field(0, ge=0)
    profitable_stores: int = Field(0, ge=0)
    loss_stores: int = Field(0, ge=0)


class ChatMessage(_SnapshotModel):
    """One turn of the financial chat assistant."""

    user_id: Optional[int] = None
    role: str = Field(..., min_length=1, max_length=20)
    content: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FinancialDataset(BaseModel):
    """Everything loaded by one import, replaced wholesale on the next."""

    stores: List[StoreRecord] = Field(default_factory=list)
    variance: List[VarianceLineItem] = Field(default_factory=list)
    pivot_totals: List[PivotTotal] = Field(default_factory=list)
