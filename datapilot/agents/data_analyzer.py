from __future__ import annotations

import json

from datapilot.agents.base import (
    AgentContext,
    AgentResult,
    StageRecorder,
    invoke_oracle,
    parse_stage_output,
    to_prompt_json,
)
from datapilot.core.errors import ErrorCode
from datapilot.llm.types import LlmPrompt
from datapilot.schemas.intent import Intent
from datapilot.schemas.results import ColumnStats, InsightAnnotation, InsightList, ResultSet

SAMPLE_ROWS = 50

EMPTY_RESULT_INSIGHT = InsightAnnotation(
    kind="summary_stat",
    message="The query returned no results. Consider adjusting your filters or time range.",
    significance="high",
)

SYSTEM_PROMPT = """You analyze query results and report meaningful insights.

Each insight has kind ("trend", "outlier", "anomaly", "growth_rate", "comparison", "correlation",
"summary_stat"), message, optional metric, optional value and significance ("low", "medium", "high").

Focus on trends over time, growth rates, anomalies, comparisons between series and key statistics.
Be concise and data-driven; report only insights that matter.

Respond with a single JSON object: {"insights": [...]}."""


def build_user_message(result_set: ResultSet, column_stats: list[ColumnStats], intent: Intent) -> str:
    sample = result_set.rows[:SAMPLE_ROWS]
    return (
        "Analyze these query results.\n\n"
        f"Intent: type={intent.query_type}; metrics={', '.join(intent.metrics)}; "
        f"dimensions={', '.join(intent.dimensions) or 'none'}\n\n"
        f"Column statistics:\n{to_prompt_json(column_stats)}\n\n"
        f"Data sample (first {len(sample)} of {result_set.row_count} rows):\n"
        f"{json.dumps(sample, indent=2, default=str)}\n\n"
        f"Truncated: {result_set.truncated}"
    )


def analyze_data(
    context: AgentContext,
    *,
    result_set: ResultSet,
    column_stats: list[ColumnStats],
    intent: Intent,
) -> AgentResult[list[InsightAnnotation]]:
    recorder = StageRecorder("data_analyzer", context, ErrorCode.AGENT_ERROR)
    if result_set.row_count == 0:
        recorder.check_cancelled()
        return recorder.success([EMPTY_RESULT_INSIGHT.model_copy()])

    prompt = LlmPrompt(
        system=SYSTEM_PROMPT,
        user=build_user_message(result_set, column_stats, intent),
        max_tokens=2048,
    )
    result = invoke_oracle(context, recorder, task="analyze_data", prompt=prompt)
    parsed = parse_stage_output(recorder, result.text, InsightList)
    return recorder.success(parsed.insights)
