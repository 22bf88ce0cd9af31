from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

QueryType = Literal[
    "trend",
    "comparison",
    "ranking",
    "anomaly",
    "drill_down",
    "aggregation",
    "distribution",
    "correlation",
]

ComparisonMode = Literal[
    "none",
    "period_over_period",
    "year_over_year",
    "month_over_month",
    "week_over_week",
    "custom",
]

TimeGrain = Literal["hourly", "daily", "weekly", "monthly", "quarterly", "yearly"]

FilterOperator = Literal["eq", "neq", "gt", "gte", "lt", "lte", "in", "not_in", "like", "between"]

# Spellings the oracle commonly uses for the canonical operators.
OPERATOR_ALIASES: dict[str, str] = {
    "=": "eq",
    "==": "eq",
    "equal": "eq",
    "equals": "eq",
    "!=": "neq",
    "<>": "neq",
    "not_equals": "neq",
    ">": "gt",
    "greater_than": "gt",
    ">=": "gte",
    "greater_than_or_equal": "gte",
    "<": "lt",
    "less_than": "lt",
    "<=": "lte",
    "less_than_or_equal": "lte",
    "contains": "like",
}


class FilterClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: str = Field(min_length=1)
    operator: FilterOperator = "eq"
    value: str | int | float | bool | list[str | int | float] | None = None

    @field_validator("operator", mode="before")
    @classmethod
    def _canonical_operator(cls, value):
        if value is None:
            return "eq"
        key = str(value).strip().lower()
        return OPERATOR_ALIASES.get(key, key)


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str = Field(min_length=1)
    end: str = Field(min_length=1)
    grain: TimeGrain | None = None
    raw_expression: str | None = None


class Intent(BaseModel):
    """Structured interpretation of one question. Immutable once resolved."""

    model_config = ConfigDict(frozen=True)

    query_type: QueryType
    metrics: list[str] = Field(min_length=1)
    dimensions: list[str] = Field(default_factory=list)
    filters: list[FilterClause] = Field(default_factory=list)
    time_range: TimeRange | None = None
    comparison_mode: ComparisonMode = "none"
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] | None = None
    limit: int | None = Field(default=None, gt=0)
    is_follow_up: bool = False
    clarification_needed: bool = False
    clarification_question: str | None = None
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)

    @field_validator("dimensions", "filters", mode="before")
    @classmethod
    def _null_list(cls, value):
        return [] if value is None else value

    @field_validator("time_range", mode="before")
    @classmethod
    def _empty_time_range(cls, value):
        if value in (None, {}):
            return None
        return value

    @field_validator("comparison_mode", mode="before")
    @classmethod
    def _null_comparison(cls, value):
        return "none" if value is None else value

    @field_validator("is_follow_up", "clarification_needed", mode="before")
    @classmethod
    def _null_flag(cls, value):
        return False if value is None else value

    @model_validator(mode="after")
    def _clarification_has_question(self) -> Intent:
        if self.clarification_needed and not (self.clarification_question or "").strip():
            raise ValueError("clarification_needed requires a non-empty clarification_question")
        return self


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: str | None = None


class SessionContext(BaseModel):
    session_id: str = Field(min_length=1)
    turns: list[ConversationTurn] = Field(default_factory=list)
    active_metrics: list[str] = Field(default_factory=list)
    active_dimensions: list[str] = Field(default_factory=list)
    active_filters: list[FilterClause] = Field(default_factory=list)
