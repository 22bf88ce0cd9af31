from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

StageName = Literal[
    "intent_resolver",
    "sql_generator",
    "sql_validator",
    "data_validator",
    "data_analyzer",
    "viz_planner",
    "narrative",
]


class StageTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: StageName
    started_at: datetime
    completed_at: datetime
    duration_ms: float = Field(ge=0)
    input_units: int = Field(default=0, ge=0)
    output_units: int = Field(default=0, ge=0)
    succeeded: bool
    error_message: str | None = None
    retry_index: int | None = Field(default=None, ge=0)
    model: str | None = None


class PipelineTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_id: str = Field(min_length=1)
    started_at: datetime
    completed_at: datetime
    total_duration_ms: float = Field(ge=0)
    stage_traces: list[StageTrace] = Field(default_factory=list)
    total_input_units: int = Field(default=0, ge=0)
    total_output_units: int = Field(default=0, ge=0)
