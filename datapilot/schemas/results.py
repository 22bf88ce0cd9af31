from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

CellValue = str | int | float | bool | None
Row = dict[str, CellValue]


class ColumnMetadata(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["string", "number", "date", "boolean", "null"]
    display_name: str | None = None
    semantic_role: Literal["metric", "dimension", "time", "identifier"] | None = None


class ResultSet(BaseModel):
    columns: list[ColumnMetadata] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)
    row_count: int = Field(ge=0)
    truncated: bool = False
    execution_time_ms: float = Field(default=0.0, ge=0)


class ColumnStats(BaseModel):
    column: str = Field(min_length=1)
    min: float | str | None = None
    max: float | str | None = None
    mean: float | None = None
    median: float | None = None
    stddev: float | None = None
    null_count: int = Field(ge=0)
    distinct_count: int = Field(ge=0)


class DataQualityFlag(BaseModel):
    kind: Literal[
        "missing_values",
        "outlier",
        "unexpected_nulls",
        "duplicate_rows",
        "time_gap",
        "value_out_of_range",
        "grain_mismatch",
    ]
    severity: Literal["info", "warning", "error"]
    column: str | None = None
    message: str
    affected_rows: int | None = Field(default=None, ge=0)


class DataValidationReport(BaseModel):
    quality_flags: list[DataQualityFlag] = Field(default_factory=list)
    column_stats: list[ColumnStats] = Field(default_factory=list)


class InsightAnnotation(BaseModel):
    kind: Literal["trend", "outlier", "anomaly", "growth_rate", "comparison", "correlation", "summary_stat"]
    message: str = Field(min_length=1)
    metric: str | None = None
    value: float | str | None = None
    significance: Literal["low", "medium", "high"] | None = None


class InsightList(BaseModel):
    insights: list[InsightAnnotation]


class EnrichedResultSet(ResultSet):
    stats: list[ColumnStats] = Field(default_factory=list)
    quality_flags: list[DataQualityFlag] = Field(default_factory=list)
    insights: list[InsightAnnotation] = Field(default_factory=list)
