"""
Backend service layer for financial narration.

Turns anomaly records and snapshot figures into natural-language text using a
local model. Anomaly detection never depends on this service: when the model
is missing or fails, a deterministic narration built from the same facts is
returned instead.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

from pydantic import ValidationError

from llm.config import LLMConfig
from llm.prompt import (
    ChatPrompt,
    build_anomaly_prompt,
    build_chat_prompt,
    build_query_prompt,
    build_store_insights_prompt,
)
from llm.schema import Narration, NarrationSource, QuerySpec
from src.anomaly.schema import AnomalyRecord
from src.anomaly.scoring import SEVERITY_ORDER
from src.core.exceptions import ConfigurationError
from src.data.schema import AggregateMetrics, StoreRecord, VarianceLineItem

logger = logging.getLogger("backend.narration")

NO_ANOMALIES_TEXT = "No anomalies detected for the current reporting period."
CHAT_UNAVAILABLE_TEXT = "I couldn't generate a response. Please try again."


class TextGenerator(Protocol):
    def generate(self, prompt: ChatPrompt) -> str:
        ...


def _pct(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value * 100:.1f}%"


@dataclass
class NarrationService:
    """
    Narration over anomaly records, store figures and chat questions.

    - Builds prompts from snapshot facts only.
    - Runs local inference when a model is configured.
    - Validates structured output (query translation) against its schema.
    - Falls back to deterministic text on any generation failure.
    """

    model: Optional[TextGenerator] = None

    def explain_anomalies(self, records: Sequence[AnomalyRecord]) -> Narration:
        if not records:
            return Narration(text=NO_ANOMALIES_TEXT, source=NarrationSource.FALLBACK)

        text = self._generate(build_anomaly_prompt(records))
        if text is None:
            return self._fallback_anomalies(records)
        return Narration(text=text)

    def store_insights(
        self,
        store: StoreRecord,
        variance: Sequence[VarianceLineItem],
        metrics: Optional[AggregateMetrics],
    ) -> Narration:
        text = self._generate(build_store_insights_prompt(store, variance, metrics))
        if text is None:
            return self._fallback_store(store, metrics)
        return Narration(text=text)

    def chat(
        self,
        message: str,
        metrics: Optional[AggregateMetrics],
        top_by_sales: Sequence[StoreRecord],
        bottom_by_net_profit: Sequence[StoreRecord],
        company_variance: Sequence[VarianceLineItem],
        context: Optional[str] = None,
    ) -> Narration:
        prompt = build_chat_prompt(
            message, metrics, top_by_sales, bottom_by_net_profit, company_variance, context
        )
        text = self._generate(prompt)
        if text is None:
            return Narration(
                text=CHAT_UNAVAILABLE_TEXT,
                source=NarrationSource.FALLBACK,
                limitations="Narration model unavailable or returned no output.",
            )
        return Narration(text=text)

    def translate_query(self, query: str, store_names: Sequence[str]) -> Optional[QuerySpec]:
        """
        Natural-language question to a QuerySpec, or None if the model output
        is missing or does not validate.
        """

        raw = self._generate(build_query_prompt(query, store_names))
        if raw is None:
            return None
        try:
            return QuerySpec.model_validate(self._parse_json(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Could not parse query translation: %s", exc)
            return None

    def _generate(self, prompt: ChatPrompt) -> Optional[str]:
        if self.model is None:
            return None
        try:
            text = self.model.generate(prompt)
        except Exception as exc:
            logger.exception("Narration generation failed: %s", exc)
            return None
        text = (text or "").strip()
        return text or None

    def _parse_json(self, raw: str) -> Dict[str, object]:
        start = raw.find("{")
        end = raw.rfind("}")
        if start == -1 or end == -1 or end <= start:
            raise ValueError("No JSON object found in model output")
        payload = json.loads(raw[start : end + 1])
        if not isinstance(payload, dict):
            raise ValueError("Model output is not a JSON object")
        return payload

    def _fallback_anomalies(self, records: Sequence[AnomalyRecord]) -> Narration:
        sections: List[str] = []
        for severity in SEVERITY_ORDER:
            items = [r for r in records if r.severity == severity]
            if not items:
                continue
            lines = [
                f"- {r.store_name}: {r.type.value} on {r.metric} at {_pct(r.value)} ({r.threshold})"
                for r in items
            ]
            sections.append(f"**{severity.value.title()} severity ({len(items)})**\n" + "\n".join(lines))

        return Narration(
            text="\n\n".join(sections),
            source=NarrationSource.FALLBACK,
            limitations="Narration model unavailable; listing detected anomalies without explanation.",
        )

    def _fallback_store(
        self, store: StoreRecord, metrics: Optional[AggregateMetrics]
    ) -> Narration:
        avg_gp = metrics.avg_gross_profit_pct if metrics else None
        avg_np = metrics.avg_net_profit_pct if metrics else None
        text = (
            f"**{store.store_name}**\n"
            f"- Gross profit %: {_pct(store.gross_profit_pct)} (company average {_pct(avg_gp)})\n"
            f"- Net profit %: {_pct(store.net_profit_pct)} (company average {_pct(avg_np)})"
        )
        return Narration(
            text=text,
            source=NarrationSource.FALLBACK,
            limitations="Narration model unavailable; showing key ratios only.",
        )


def create_narration_service(model_path: Optional[str]) -> NarrationService:
    """
    Factory for a narration service backed by the local Mistral model.

    Raises:
        ConfigurationError: if no model path is configured
    """

    if not model_path:
        raise ConfigurationError("MODEL_PATH is not set; narration model unavailable")

    from llm.mistral import MistralLocalModel

    model = MistralLocalModel(config=LLMConfig(model_path=model_path))
    return NarrationService(model=model)
