"""
Prompt construction for financial narration.

Prompts carry only figures taken from the snapshot and the anomaly engine;
missing values are written as N/A rather than guessed. Every builder returns a
ChatPrompt (system + user turn).
"""

from __future__ import annotations

import json
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel

from src.anomaly.schema import AnomalyRecord
from src.data.schema import AggregateMetrics, StoreRecord, VarianceLineItem

CURRENCY = "KWD"

KEY_LINE_ITEMS = ("NET SALES", "GROSS PROFIT", "OPERATING PROFIT", "NET PROFIT/LOSS")

FINANCIAL_SYSTEM_PROMPT = (
    "You are a financial analyst assistant for a multi-store coffee retail chain. "
    "You read store P&L summaries (sales, COGS, gross profit, staff cost, marketing, "
    "rent, royalty, operating profit, depreciation, overhead, net profit) and "
    "budget / prior-year variance for the current reporting period.\n"
    "Rules:\n"
    "- Base every statement on the figures provided. Never invent numbers.\n"
    "- Positive variance is good for revenue lines and bad for cost lines.\n"
    "- Consider store age and location type when comparing stores.\n"
    f"- Write percentages like 28.1% and amounts in {CURRENCY}.\n"
    "- If the data is insufficient for a conclusion, say so.\n"
    "- Use short headings and bullet points, and end with concrete recommendations."
)

ANOMALY_SYSTEM_PROMPT = (
    "You are a financial anomaly analyst for a multi-store retail chain. You receive "
    "statistically detected anomalies in store performance, one per line.\n"
    "For each anomaly:\n"
    "1. Explain what it means in business terms.\n"
    "2. Suggest two or three plausible root causes.\n"
    "3. Recommend specific actions to investigate or resolve it.\n"
    "Values are fractions (-0.25 means 25% below). Group related anomalies, "
    "cover high severity items first, and keep each explanation brief."
)

QUERY_SYSTEM_PROMPT = (
    "You translate questions about the financial dashboard into a JSON object.\n"
    "Return ONLY valid JSON with exactly these keys:\n"
    '{"queryType": "ranking"|"comparison"|"trend"|"distribution"|"detail"|"summary", '
    '"metric": "sales"|"netProfit"|"grossProfit"|"operatingProfit"|"cogs"|"staffCost"|'
    '"rent"|"grossProfitPct"|"netProfitPct"|"operatingProfitPct", '
    '"stores": [store names] or null, "chartType": "bar"|"line"|"pie"|"table", '
    '"title": string, "description": string, "sortOrder": "asc"|"desc", '
    '"limit": number or null}\n'
    "Examples:\n"
    '- "Which stores are most profitable?" -> ranking, netProfit, desc, limit 10, bar\n'
    '- "Show me revenue distribution" -> distribution, sales, pie\n'
    '- "Compare Avenues vs Marina" -> comparison, sales, bar, stores ["Avenues", "Marina"]'
)


class ChatPrompt(BaseModel):
    """A system instruction plus one user turn."""

    system: str
    user: str

    def as_text(self) -> str:
        """Flattened form for models without a chat template."""
        return f"{self.system}\n\n{self.user}\n"


def _money(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{CURRENCY} {value:,.0f}"


def _pct(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value * 100:.1f}%"


def format_anomaly_lines(records: Iterable[AnomalyRecord]) -> str:
    """
    One line per anomaly, in the order the engine produced them.
    """

    return "\n".join(
        f"Store: {r.store_name}, Type: {r.type.value}, Metric: {r.metric}, "
        f"Value: {r.value}, Threshold: {r.threshold}, Severity: {r.severity.value}"
        for r in records
    )


def build_anomaly_prompt(records: Sequence[AnomalyRecord]) -> ChatPrompt:
    return ChatPrompt(
        system=ANOMALY_SYSTEM_PROMPT,
        user=f"Please analyze these detected anomalies:\n{format_anomaly_lines(records)}",
    )


def key_variance(rows: Iterable[VarianceLineItem]) -> List[VarianceLineItem]:
    return [v for v in rows if v.line_item in KEY_LINE_ITEMS]


def _variance_lines(rows: Iterable[VarianceLineItem]) -> str:
    return "\n".join(
        f"- {v.line_item}: Month Actual {_money(v.dec_actual)}, YTD Actual {_money(v.ytd_actual)}, "
        f"vs Budget {_pct(v.ytd_var_budget_pct)}, vs Last Year {_pct(v.ytd_var_lastyear_pct)}"
        for v in key_variance(rows)
    )


def _metrics_lines(metrics: Optional[AggregateMetrics]) -> str:
    if metrics is None:
        return "Company metrics unavailable."
    return "\n".join(
        [
            f"- Total Sales: {_money(metrics.total_sales)}",
            f"- Total Budget: {_money(metrics.total_budget)}",
            f"- Total COGS: {_money(metrics.total_cogs)}",
            f"- Total Gross Profit: {_money(metrics.total_gross_profit)}",
            f"- Total Operating Profit: {_money(metrics.total_operating_profit)}",
            f"- Total Net Profit: {_money(metrics.total_net_profit)}",
            f"- Average Gross Profit %: {_pct(metrics.avg_gross_profit_pct)}",
            f"- Average Net Profit %: {_pct(metrics.avg_net_profit_pct)}",
            f"- Average Operating Profit %: {_pct(metrics.avg_operating_profit_pct)}",
            f"- Total Stores: {metrics.store_count}",
            f"- Profitable Stores: {metrics.profitable_stores}",
            f"- Loss-Making Stores: {metrics.loss_stores}",
        ]
    )


def build_store_insights_prompt(
    store: StoreRecord,
    variance: Sequence[VarianceLineItem],
    metrics: Optional[AggregateMetrics],
) -> ChatPrompt:
    """
    Store-level performance review against company averages.
    """

    store_block = "\n".join(
        [
            f"STORE: {store.store_name}",
            f"Opening Date: {store.opening_date or 'N/A'}, Age: {store.age or 'N/A'}",
            f"Sales: {_money(store.sales)}, Budget: {_money(store.budget)}",
            f"COGS: {_money(store.cogs)}",
            f"Gross Profit: {_money(store.gross_profit)} ({_pct(store.gross_profit_pct)})",
            f"Staff Cost: {_money(store.staff_cost)} ({_pct(store.staff_cost_pct)})",
            f"Marketing: {_money(store.marketing_exp)}",
            f"Rent: {_money(store.rent)} ({_pct(store.rent_pct)})",
            f"Operating Profit: {_money(store.operating_profit)} ({_pct(store.operating_profit_pct)})",
            f"Net Profit: {_money(store.net_profit)} ({_pct(store.net_profit_pct)})",
        ]
    )
    averages = "Company averages unavailable."
    if metrics is not None:
        averages = (
            f"Avg GP%: {_pct(metrics.avg_gross_profit_pct)}\n"
            f"Avg NP%: {_pct(metrics.avg_net_profit_pct)}\n"
            f"Avg OP%: {_pct(metrics.avg_operating_profit_pct)}"
        )

    return ChatPrompt(
        system=(
            f"{FINANCIAL_SYSTEM_PROMPT}\n\nYou are reviewing one store. Compare it with the "
            "company averages and give 5-7 specific, actionable recommendations."
        ),
        user=(
            "Provide a performance analysis and improvement recommendations for this store:\n"
            f"{store_block}\n\nCOMPANY AVERAGES:\n{averages}\n\n"
            f"VARIANCE DATA:\n{_variance_lines(variance) or 'No variance data.'}"
        ),
    )


def build_chat_prompt(
    message: str,
    metrics: Optional[AggregateMetrics],
    top_by_sales: Sequence[StoreRecord],
    bottom_by_net_profit: Sequence[StoreRecord],
    company_variance: Sequence[VarianceLineItem],
    context: Optional[str] = None,
) -> ChatPrompt:
    """
    Free-form question answered over company aggregates and rankings.
    """

    top = "\n".join(
        f"- {s.store_name}: Sales {_money(s.sales)}, NP% {_pct(s.net_profit_pct)}"
        for s in top_by_sales
    )
    bottom = "\n".join(
        f"- {s.store_name}: NP {_money(s.net_profit)}, NP% {_pct(s.net_profit_pct)}"
        for s in bottom_by_net_profit
    )
    sections = [
        f"COMPANY AGGREGATE METRICS:\n{_metrics_lines(metrics)}",
        f"TOP {len(top_by_sales)} STORES BY SALES:\n{top or 'N/A'}",
        f"BOTTOM {len(bottom_by_net_profit)} STORES BY NET PROFIT:\n{bottom or 'N/A'}",
        f"COMPANY P&L VARIANCE (Key Items):\n{_variance_lines(company_variance) or 'N/A'}",
    ]
    if context:
        sections.append(f"ADDITIONAL CONTEXT:\n{context}")

    data_context = "\n\n".join(sections)
    return ChatPrompt(
        system=FINANCIAL_SYSTEM_PROMPT,
        user=f"Here is the current financial data:\n{data_context}\n\nUser question: {message}",
    )


def build_query_prompt(query: str, store_names: Sequence[str]) -> ChatPrompt:
    return ChatPrompt(
        system=f"{QUERY_SYSTEM_PROMPT}\n\nAvailable store names: {json.dumps(list(store_names))}",
        user=f"{query}\nRETURN_JSON_ONLY:",
    )
