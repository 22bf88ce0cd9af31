from __future__ import annotations

from functools import lru_cache

from langgraph.graph import END, StateGraph

from datapilot.agents.data_analyzer import analyze_data
from datapilot.agents.data_validator import validate_data
from datapilot.agents.intent_resolver import resolve_intent
from datapilot.agents.narrative import generate_narrative
from datapilot.agents.sql_loop import generate_validated_sql
from datapilot.agents.viz_planner import plan_visualization
from datapilot.core.errors import PipelineCancelledError, QueryExecutionError
from datapilot.core.logging import get_logger
from datapilot.models.graph_state import PipelineState
from datapilot.schemas.trace import StageTrace

logger = get_logger(__name__)


def _record(state: PipelineState, trace: StageTrace) -> None:
    state["run"].add(trace)
    logger.info(
        "Stage %s completed in %.1fms",
        trace.stage,
        trace.duration_ms,
        extra={"request_id": state["context"].request_id, "stage": trace.stage},
    )


def resolve_intent_node(state: PipelineState) -> PipelineState:
    result = resolve_intent(
        state["context"],
        question=state["question"],
        semantic_metadata=state["semantic_metadata"],
        session_context=state["session_context"],
    )
    _record(state, result.trace)
    state["intent"] = result.data
    return state


def generate_sql_node(state: PipelineState) -> PipelineState:
    outcome = generate_validated_sql(
        state["context"],
        intent=state["intent"],
        semantic_metadata=state["semantic_metadata"],
        max_attempts=state["max_sql_retries"],
        run=state["run"],
    )
    state["candidate"] = outcome.candidate
    return state


def execute_query_node(state: PipelineState) -> PipelineState:
    token = state["context"].cancellation
    if token is not None and token.cancelled:
        raise PipelineCancelledError(token.reason or "Request cancelled", stage="orchestrator")

    sql = state["candidate"].sql
    try:
        result_set = state["query_executor"](sql)
    except Exception as exc:
        raise QueryExecutionError(f"Query execution failed: {exc}", details={"sql": sql}) from exc

    logger.info(
        "Query returned %s rows in %.1fms",
        result_set.row_count,
        result_set.execution_time_ms,
        extra={"request_id": state["context"].request_id},
    )
    state["result_set"] = result_set
    return state


def validate_data_node(state: PipelineState) -> PipelineState:
    result = validate_data(state["context"], result_set=state["result_set"], intent=state["intent"])
    _record(state, result.trace)
    state["report"] = result.data
    return state


def analyze_data_node(state: PipelineState) -> PipelineState:
    result = analyze_data(
        state["context"],
        result_set=state["result_set"],
        column_stats=state["report"].column_stats,
        intent=state["intent"],
    )
    _record(state, result.trace)
    state["insights"] = result.data
    return state


def plan_visualization_node(state: PipelineState) -> PipelineState:
    result = plan_visualization(state["context"], intent=state["intent"], result_set=state["result_set"])
    _record(state, result.trace)
    state["visualization"] = result.data
    return state


def generate_narrative_node(state: PipelineState) -> PipelineState:
    result = generate_narrative(
        state["context"],
        intent=state["intent"],
        result_set=state["result_set"],
        insights=state["insights"],
        quality_flags=state["report"].quality_flags,
    )
    _record(state, result.trace)
    state["narrative"] = result.data
    return state


def _after_intent(state: PipelineState) -> str:
    if state["intent"].clarification_needed:
        return "clarify"
    return "continue"


@lru_cache
def build_pipeline_graph():
    graph = StateGraph(PipelineState)
    graph.add_node("resolve_intent", resolve_intent_node)
    graph.add_node("generate_sql", generate_sql_node)
    graph.add_node("execute_query", execute_query_node)
    graph.add_node("validate_data", validate_data_node)
    graph.add_node("analyze_data", analyze_data_node)
    graph.add_node("plan_visualization", plan_visualization_node)
    graph.add_node("generate_narrative", generate_narrative_node)

    graph.set_entry_point("resolve_intent")
    graph.add_conditional_edges(
        "resolve_intent",
        _after_intent,
        {
            "clarify": END,
            "continue": "generate_sql",
        },
    )
    graph.add_edge("generate_sql", "execute_query")
    graph.add_edge("execute_query", "validate_data")
    graph.add_edge("validate_data", "analyze_data")
    graph.add_edge("analyze_data", "plan_visualization")
    graph.add_edge("plan_visualization", "generate_narrative")
    graph.add_edge("generate_narrative", END)

    return graph.compile()


def run_pipeline(state: PipelineState) -> PipelineState:
    return build_pipeline_graph().invoke(state)
