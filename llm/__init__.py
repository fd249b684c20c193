"""
LLM utilities for financial narration.

Prompt builders, output schemas and model configuration. The transformers-backed
model lives in llm.mistral and is imported only when a narration model is loaded.
"""

from .config import LLMConfig
from .prompt import (
    ChatPrompt,
    build_anomaly_prompt,
    build_chat_prompt,
    build_query_prompt,
    build_store_insights_prompt,
    format_anomaly_lines,
)
from .schema import Narration, NarrationSource, QuerySpec

__all__ = [
    "LLMConfig",
    "ChatPrompt",
    "build_anomaly_prompt",
    "build_chat_prompt",
    "build_query_prompt",
    "build_store_insights_prompt",
    "format_anomaly_lines",
    "Narration",
    "NarrationSource",
    "QuerySpec",
]
