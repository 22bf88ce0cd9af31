from __future__ import annotations

from collections.abc import Callable
from typing import NotRequired, TypedDict

from datapilot.agents.base import AgentContext
from datapilot.schemas.intent import Intent, SessionContext
from datapilot.schemas.results import DataValidationReport, InsightAnnotation, ResultSet
from datapilot.schemas.semantic import SemanticMetadata
from datapilot.schemas.sql import CandidateQuery
from datapilot.schemas.visualization import VisualizationSpec
from datapilot.services.trace_service import PipelineRun

QueryExecutor = Callable[[str], ResultSet]


class PipelineState(TypedDict):
    context: AgentContext
    run: PipelineRun
    question: str
    semantic_metadata: SemanticMetadata
    session_context: SessionContext | None
    query_executor: QueryExecutor
    max_sql_retries: int
    intent: NotRequired[Intent]
    candidate: NotRequired[CandidateQuery]
    result_set: NotRequired[ResultSet]
    report: NotRequired[DataValidationReport]
    insights: NotRequired[list[InsightAnnotation]]
    visualization: NotRequired[VisualizationSpec]
    narrative: NotRequired[str]
