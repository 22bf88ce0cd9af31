from __future__ import annotations

import pytest

from datapilot.agents import orchestrator as orchestrator_module
from datapilot.agents.orchestrator import Orchestrator, create_orchestrator
from datapilot.core.cancellation import CancellationToken
from datapilot.core.errors import (
    ConfigurationError,
    ErrorCode,
    MaxAttemptsExceededError,
    PipelineCancelledError,
    PipelineError,
    QueryExecutionError,
    StageError,
)
from datapilot.core.settings import Settings
from datapilot.schemas.pipeline import OrchestratorConfig

QUESTION = "Show me revenue trend for January"


def test_exhausted_retries_never_execute_the_query(oracle, payloads, executor, semantic_metadata) -> None:
    attempts = [f"SELECT order_date, total_amount FROM orders WHERE region = 'r{index}'" for index in range(3)]
    (
        oracle.script("resolve_intent", payloads.intent())
        .script("generate_sql", *(payloads.candidate(sql) for sql in attempts))
        .script(
            "validate_sql",
            payloads.verdict("missing GROUP BY"),
            payloads.verdict("missing GROUP BY"),
            payloads.verdict("revenue not aggregated"),
        )
    )
    orchestrator = Orchestrator(oracle, OrchestratorConfig(max_sql_retries=3))

    with pytest.raises(MaxAttemptsExceededError) as exc_info:
        orchestrator.process(QUESTION, semantic_metadata, executor)

    error = exc_info.value
    assert error.last_sql == attempts[2]
    assert error.last_errors == ["revenue not aggregated"]
    assert executor.calls == []

    assert error.trace is not None
    stages = [trace.stage for trace in error.trace.stage_traces]
    assert stages == ["intent_resolver"] + ["sql_generator", "sql_validator"] * 3
    assert error.trace.total_input_units == sum(trace.input_units for trace in error.trace.stage_traces)
    assert error.trace.total_input_units == 70


def test_query_failure_is_wrapped_with_partial_trace(oracle, payloads, make_executor, semantic_metadata) -> None:
    (
        oracle.script("resolve_intent", payloads.intent())
        .script("generate_sql", payloads.candidate())
        .script("validate_sql", payloads.verdict())
    )
    failing = make_executor(error=RuntimeError("relation \"orders\" does not exist"))

    with pytest.raises(QueryExecutionError) as exc_info:
        Orchestrator(oracle).process(QUESTION, semantic_metadata, failing)

    error = exc_info.value
    assert error.code == ErrorCode.QUERY_EXECUTION_FAILED
    assert error.stage == "orchestrator"
    assert "does not exist" in error.message
    assert isinstance(error.__cause__, RuntimeError)
    assert error.details["sql"] == failing.calls[0]
    assert [trace.stage for trace in error.trace.stage_traces] == ["intent_resolver", "sql_generator", "sql_validator"]


def test_stage_failure_trace_includes_the_failed_stage(oracle, payloads, executor, semantic_metadata) -> None:
    oracle.script("resolve_intent", payloads.intent()).script("generate_sql", payloads.candidate())
    oracle.script("validate_sql", payloads.verdict()).script("analyze_data", "no json here")

    with pytest.raises(StageError) as exc_info:
        Orchestrator(oracle).process(QUESTION, semantic_metadata, executor)

    error = exc_info.value
    assert error.code == ErrorCode.AGENT_ERROR
    assert error.stage == "data_analyzer"
    last = error.trace.stage_traces[-1]
    assert (last.stage, last.succeeded) == ("data_analyzer", False)
    assert last.error_message == error.message


def test_intent_failure_reports_intent_stage(oracle, executor, semantic_metadata) -> None:
    oracle.script("resolve_intent", '{"query_type": "trend", "metrics": []}')

    with pytest.raises(StageError) as exc_info:
        Orchestrator(oracle).process(QUESTION, semantic_metadata, executor)

    assert exc_info.value.code == ErrorCode.INTENT_UNRESOLVABLE
    assert len(exc_info.value.trace.stage_traces) == 1


def test_cancellation_before_start(happy_oracle, executor, semantic_metadata) -> None:
    token = CancellationToken()
    token.cancel("client went away")

    with pytest.raises(PipelineCancelledError) as exc_info:
        Orchestrator(happy_oracle).process(QUESTION, semantic_metadata, executor, cancellation=token)

    assert exc_info.value.code == ErrorCode.PIPELINE_CANCELLED
    assert exc_info.value.stage == "intent_resolver"
    assert happy_oracle.call_count == 0
    assert [trace.succeeded for trace in exc_info.value.trace.stage_traces] == [False]


def test_cancellation_before_query_execution(happy_oracle, executor, semantic_metadata) -> None:
    token = CancellationToken()
    original_complete = happy_oracle.complete

    def complete(*, task, prompt):
        result = original_complete(task=task, prompt=prompt)
        if task == "validate_sql":
            token.cancel()
        return result

    happy_oracle.complete = complete

    with pytest.raises(PipelineCancelledError):
        Orchestrator(happy_oracle).process(QUESTION, semantic_metadata, executor, cancellation=token)

    assert executor.calls == []


def test_oracle_exception_fails_the_running_stage(oracle, executor, semantic_metadata) -> None:
    oracle.script("resolve_intent", KeyError("boom"))

    with pytest.raises(StageError) as exc_info:
        Orchestrator(oracle).process(QUESTION, semantic_metadata, executor)

    error = exc_info.value
    assert error.code == ErrorCode.INTENT_UNRESOLVABLE
    assert error.stage == "intent_resolver"
    assert isinstance(error.__cause__, KeyError)
    assert [(trace.stage, trace.succeeded) for trace in error.trace.stage_traces] == [("intent_resolver", False)]


def test_oracle_exception_inside_sql_loop_is_retried(oracle, payloads, executor, semantic_metadata) -> None:
    (
        oracle.script("resolve_intent", payloads.intent())
        .script("generate_sql", TimeoutError("read timed out"), payloads.candidate())
        .script("validate_sql", payloads.verdict())
        .script("analyze_data", payloads.insights())
        .script("plan_visualization", payloads.line_chart())
        .script("generate_narrative", "Revenue rose.")
    )

    response = Orchestrator(oracle).process(QUESTION, semantic_metadata, executor)

    loop_traces = [
        (trace.stage, trace.succeeded, trace.retry_index)
        for trace in response.trace.stage_traces
        if trace.stage in ("sql_generator", "sql_validator")
    ]
    assert loop_traces == [
        ("sql_generator", False, 0),
        ("sql_generator", True, 1),
        ("sql_validator", True, 1),
    ]
    assert len(executor.calls) == 1


def test_unexpected_errors_become_orchestration_errors(
    happy_oracle, executor, semantic_metadata, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken_pipeline(state):
        raise KeyError("boom")

    monkeypatch.setattr(orchestrator_module, "run_pipeline", broken_pipeline)

    with pytest.raises(PipelineError) as exc_info:
        Orchestrator(happy_oracle).process(QUESTION, semantic_metadata, executor)

    error = exc_info.value
    assert error.code == ErrorCode.ORCHESTRATION_ERROR
    assert error.stage == "orchestrator"
    assert isinstance(error.__cause__, KeyError)
    assert error.trace is not None
    assert error.trace.stage_traces == []


def test_failed_requests_are_not_cached(oracle, payloads, executor, semantic_metadata) -> None:
    oracle.script("resolve_intent", "garbage", payloads.intent())
    oracle.script("generate_sql", payloads.candidate()).script("validate_sql", payloads.verdict())
    oracle.script("analyze_data", payloads.insights()).script("plan_visualization", payloads.line_chart())
    oracle.script("generate_narrative", "Revenue rose.")
    orchestrator = Orchestrator(oracle)

    with pytest.raises(StageError):
        orchestrator.process(QUESTION, semantic_metadata, executor)
    assert orchestrator.cache_stats().size == 0

    response = orchestrator.process(QUESTION, semantic_metadata, executor)
    assert response.narrative == "Revenue rose."
    assert orchestrator.cache_stats().size == 1


def test_create_orchestrator_requires_provider_key() -> None:
    with pytest.raises(ConfigurationError):
        create_orchestrator(Settings(LLM_PROVIDER="anthropic", ANTHROPIC_API_KEY=""))


def test_create_orchestrator_uses_injected_oracle(oracle) -> None:
    orchestrator = create_orchestrator(Settings(WAREHOUSE_DIALECT="sqlite", MAX_SQL_RETRIES=2), oracle=oracle)

    assert orchestrator.oracle is oracle
    assert orchestrator.config.dialect == "sqlite"
    assert orchestrator.config.max_sql_retries == 2
