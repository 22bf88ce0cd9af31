from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from datapilot.schemas.intent import TimeGrain


class FormattingRule(BaseModel):
    type: Literal["currency", "percentage", "number", "date", "text"]
    currency_code: str | None = None
    decimal_places: int | None = Field(default=None, ge=0)
    prefix: str | None = None
    suffix: str | None = None


class MetricDefinition(BaseModel):
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    description: str = ""
    formula: str = Field(min_length=1)
    grain: TimeGrain | None = None
    dimensions: list[str] = Field(default_factory=list)
    default_filters: list[str] = Field(default_factory=list)
    synonyms: list[str] = Field(default_factory=list)
    formatting: FormattingRule | None = None


class DimensionDefinition(BaseModel):
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    description: str = ""
    table: str = Field(min_length=1)
    column: str = Field(min_length=1)
    type: Literal["string", "number", "date", "boolean"]
    synonyms: list[str] = Field(default_factory=list)
    formatting: FormattingRule | None = None


class TableColumn(BaseModel):
    table: str = Field(min_length=1)
    column: str = Field(min_length=1)


class EntityRelationship(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: TableColumn = Field(alias="from")
    to: TableColumn
    type: Literal["one-to-one", "one-to-many", "many-to-many"]
    join_type: Literal["inner", "left", "right", "full"] = "inner"


class SemanticMetadata(BaseModel):
    metrics: list[MetricDefinition] = Field(default_factory=list)
    dimensions: list[DimensionDefinition] = Field(default_factory=list)
    relationships: list[EntityRelationship] = Field(default_factory=list)
    synonyms: dict[str, list[str]] = Field(default_factory=dict)
