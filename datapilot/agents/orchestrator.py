from __future__ import annotations

from datapilot.agents.base import AgentContext
from datapilot.agents.pipeline_graph import run_pipeline
from datapilot.core.cancellation import CancellationToken
from datapilot.core.errors import PipelineError
from datapilot.core.logging import get_logger
from datapilot.core.settings import Settings, get_settings
from datapilot.llm.router import ModelRouter
from datapilot.llm.types import TextCompletionOracle
from datapilot.models.graph_state import PipelineState, QueryExecutor
from datapilot.schemas.intent import SessionContext
from datapilot.schemas.pipeline import CacheStats, OrchestratorConfig, OrchestratorResponse
from datapilot.schemas.results import EnrichedResultSet
from datapilot.schemas.semantic import SemanticMetadata
from datapilot.services.response_cache import CacheKey, ResponseCache
from datapilot.services.trace_service import PipelineRun, new_request_id

logger = get_logger(__name__)


def orchestrator_config_from_settings(settings: Settings | None = None) -> OrchestratorConfig:
    settings = settings or get_settings()
    return OrchestratorConfig(
        dialect=settings.warehouse_dialect,
        max_sql_retries=settings.max_sql_retries,
        max_data_retries=settings.max_data_retries,
        enable_cache=settings.enable_cache,
        cache_ttl_ms=settings.cache_ttl_ms,
        cache_max_size=settings.cache_max_size,
    )


class Orchestrator:
    """Runs one question through the stage pipeline, with a per-instance response cache."""

    def __init__(
        self,
        oracle: TextCompletionOracle,
        config: OrchestratorConfig | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self.oracle = oracle
        self.config = config or OrchestratorConfig()
        self.cache = cache or ResponseCache(ttl_ms=self.config.cache_ttl_ms, max_size=self.config.cache_max_size)

    def process(
        self,
        question: str,
        semantic_metadata: SemanticMetadata,
        query_executor: QueryExecutor,
        session_context: SessionContext | None = None,
        cancellation: CancellationToken | None = None,
    ) -> OrchestratorResponse:
        cache_key = CacheKey(
            question=question,
            session_id=session_context.session_id if session_context else None,
            dialect=self.config.dialect,
        )
        if self.config.enable_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info("Cache hit", extra={"request_id": cached.request_id})
                return cached

        run = PipelineRun(new_request_id())
        log_extra = {"request_id": run.request_id}
        logger.info("Processing question (cache %s)", "miss" if self.config.enable_cache else "off", extra=log_extra)

        state: PipelineState = {
            "context": AgentContext(
                request_id=run.request_id,
                oracle=self.oracle,
                dialect=self.config.dialect,
                cancellation=cancellation,
            ),
            "run": run,
            "question": question,
            "semantic_metadata": semantic_metadata,
            "session_context": session_context,
            "query_executor": query_executor,
            "max_sql_retries": self.config.max_sql_retries,
        }

        try:
            final_state = run_pipeline(state)
        except PipelineError as exc:
            stage_trace = getattr(exc, "stage_trace", None)
            if stage_trace is not None:
                run.add(stage_trace)
            exc.with_trace(run.finish())
            logger.warning(
                "Pipeline failed: %s (completed stages: %s)",
                exc.message,
                ", ".join(run.completed_stages()) or "none",
                extra={**log_extra, "stage": exc.stage, "error_code": str(exc.code)},
            )
            raise
        except Exception as exc:
            error = PipelineError(f"Unexpected pipeline failure: {exc}").with_trace(run.finish())
            logger.exception("Unexpected pipeline failure", extra=log_extra)
            raise error from exc

        response = self._build_response(final_state, run)
        if self.config.enable_cache:
            self.cache.set(cache_key, response)
        logger.info(
            "Completed with %s stage traces",
            len(response.trace.stage_traces),
            extra=log_extra,
        )
        return response

    def _build_response(self, state: PipelineState, run: PipelineRun) -> OrchestratorResponse:
        intent = state["intent"]
        if intent.clarification_needed:
            return OrchestratorResponse(
                request_id=run.request_id,
                intent=intent,
                trace=run.finish(),
                clarification_question=intent.clarification_question,
            )

        report = state["report"]
        results = EnrichedResultSet(
            **state["result_set"].model_dump(),
            stats=report.column_stats,
            quality_flags=report.quality_flags,
            insights=state["insights"],
        )
        return OrchestratorResponse(
            request_id=run.request_id,
            intent=intent,
            sql=state["candidate"],
            results=results,
            visualization=state["visualization"],
            narrative=state["narrative"],
            trace=run.finish(),
        )

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> CacheStats:
        return CacheStats(enabled=self.config.enable_cache, **self.cache.stats())


def create_orchestrator(
    settings: Settings | None = None,
    oracle: TextCompletionOracle | None = None,
) -> Orchestrator:
    settings = settings or get_settings()
    return Orchestrator(
        oracle=oracle or ModelRouter(settings),
        config=orchestrator_config_from_settings(settings),
    )
