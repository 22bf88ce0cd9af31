from __future__ import annotations

import json

from datapilot.agents.base import AgentContext, AgentResult, StageRecorder, invoke_oracle
from datapilot.core.errors import ErrorCode
from datapilot.llm.types import LlmPrompt
from datapilot.schemas.intent import Intent
from datapilot.schemas.results import DataQualityFlag, InsightAnnotation, ResultSet

SAMPLE_ROWS = 20

EMPTY_RESULT_NARRATIVE = (
    "**No data found** for the specified query. Consider:\n\n"
    "- Adjusting your time range\n"
    "- Checking your filter criteria\n"
    "- Verifying the metric or dimension names"
)

SYSTEM_PROMPT = """You write data summaries for non-technical stakeholders.

Start with a direct answer to the question, then the most important findings with specific numbers.
Keep it to two to four short paragraphs in markdown, use bullet points for several insights, bold
key numbers and mention data quality caveats briefly at the end.

Respond with only the markdown text, no JSON."""


def build_user_message(
    intent: Intent,
    result_set: ResultSet,
    insights: list[InsightAnnotation],
    quality_flags: list[DataQualityFlag],
) -> str:
    sample = result_set.rows[:SAMPLE_ROWS]
    insight_lines = [
        f"- [{insight.kind}] {insight.message}"
        + (f" ({insight.significance} significance)" if insight.significance else "")
        for insight in insights
    ]
    flag_lines = [f"- [{flag.severity}] {flag.message}" for flag in quality_flags]
    time_range = f"{intent.time_range.start} to {intent.time_range.end}" if intent.time_range else "not specified"
    return (
        "Write a summary for this analysis.\n\n"
        f"Intent: type={intent.query_type}; metrics={', '.join(intent.metrics)}; "
        f"dimensions={', '.join(intent.dimensions) or 'none'}; time range={time_range}\n\n"
        f"Total rows: {result_set.row_count}; truncated: {result_set.truncated}\n\n"
        f"Data sample:\n{json.dumps(sample, indent=2, default=str)}\n\n"
        "Insights:\n" + ("\n".join(insight_lines) or "None") + "\n\n"
        "Data quality notes:\n" + ("\n".join(flag_lines) or "No quality issues detected.")
    )


def generate_narrative(
    context: AgentContext,
    *,
    intent: Intent,
    result_set: ResultSet,
    insights: list[InsightAnnotation],
    quality_flags: list[DataQualityFlag],
) -> AgentResult[str]:
    recorder = StageRecorder("narrative", context, ErrorCode.AGENT_ERROR)
    if result_set.row_count == 0:
        recorder.check_cancelled()
        return recorder.success(EMPTY_RESULT_NARRATIVE)

    prompt = LlmPrompt(
        system=SYSTEM_PROMPT,
        user=build_user_message(intent, result_set, insights, quality_flags),
        max_tokens=1024,
    )
    result = invoke_oracle(context, recorder, task="generate_narrative", prompt=prompt)
    text = result.text.strip()
    if not text:
        raise recorder.failure("Narrative model returned empty text")
    return recorder.success(text)
