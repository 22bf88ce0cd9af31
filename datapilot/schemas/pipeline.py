from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from datapilot.schemas.intent import Intent
from datapilot.schemas.results import EnrichedResultSet
from datapilot.schemas.sql import CandidateQuery, WarehouseDialect
from datapilot.schemas.trace import PipelineTrace
from datapilot.schemas.visualization import VisualizationSpec


class OrchestratorConfig(BaseModel):
    dialect: WarehouseDialect = "postgresql"
    max_sql_retries: int = Field(default=3, ge=1)
    # Accepted for configuration compatibility; no loop consumes it yet.
    max_data_retries: int = Field(default=2, ge=0)
    enable_cache: bool = True
    cache_ttl_ms: int = Field(default=5 * 60 * 1000, gt=0)
    cache_max_size: int = Field(default=100, ge=1)


class OrchestratorResponse(BaseModel):
    """Either a clarification (intent + question) or a full answer."""

    request_id: str = Field(min_length=1)
    intent: Intent
    sql: CandidateQuery | None = None
    results: EnrichedResultSet | None = None
    visualization: VisualizationSpec | None = None
    narrative: str | None = None
    trace: PipelineTrace
    clarification_question: str | None = None

    @property
    def is_clarification(self) -> bool:
        return self.clarification_question is not None

    @model_validator(mode="after")
    def _one_outcome(self) -> OrchestratorResponse:
        answer_parts = (self.sql, self.results, self.visualization, self.narrative)
        if self.clarification_question is not None:
            if any(part is not None for part in answer_parts):
                raise ValueError("clarification responses carry no sql, results, visualization or narrative")
        elif any(part is None for part in answer_parts):
            raise ValueError("answers require sql, results, visualization and narrative")
        return self


class CacheStats(BaseModel):
    enabled: bool
    size: int
    max_size: int
    ttl_ms: int
