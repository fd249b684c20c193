"""
Schemas for narration output and natural-language query translation.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class NarrationSource(str, Enum):
    MODEL = "model"
    FALLBACK = "fallback"


class Narration(BaseModel):
    """
    Free-form narration returned to the UI.

    Fields:
    - text: markdown narration
    - source: whether the model produced it or a deterministic fallback did
    - limitations: set when the fallback was used, explaining why
    """

    text: str = Field(min_length=1)
    source: NarrationSource = NarrationSource.MODEL
    limitations: Optional[str] = None


class QueryType(str, Enum):
    RANKING = "ranking"
    COMPARISON = "comparison"
    TREND = "trend"
    DISTRIBUTION = "distribution"
    DETAIL = "detail"
    SUMMARY = "summary"


class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    TABLE = "table"


class QuerySpec(BaseModel):
    """
    Structured form of a natural-language dashboard question.

    The model is asked for camelCase keys; both spellings validate. A zero
    limit is read as "no limit given".
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query_type: QueryType
    metric: str = Field(min_length=1)
    stores: Optional[List[str]] = None
    chart_type: ChartType
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(max_length=1000)
    sort_order: str = Field(pattern="^(asc|desc)$")
    limit: Optional[int] = Field(default=None, ge=1, le=500)

    @field_validator("limit", mode="before")
    @classmethod
    def _zero_limit_is_default(cls, value: object) -> object:
        return None if value == 0 else value
