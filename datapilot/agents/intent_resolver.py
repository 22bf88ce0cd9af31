from __future__ import annotations

from datapilot.agents.base import (
    AgentContext,
    AgentResult,
    StageRecorder,
    invoke_oracle,
    parse_stage_output,
    session_history,
)
from datapilot.core.errors import ErrorCode
from datapilot.llm.types import LlmPrompt
from datapilot.schemas.intent import Intent, SessionContext
from datapilot.schemas.semantic import SemanticMetadata

SYSTEM_PROMPT = """You interpret natural-language questions about business data and convert them into structured intent objects.

Determine:
1. The type of analysis (trend, comparison, ranking, anomaly, drill_down, aggregation, distribution, correlation)
2. Which metrics to analyze
3. Which dimensions to group by
4. Any filters to apply (operators: eq, neq, gt, gte, lt, lte, in, not_in, like, between)
5. The time range, if specified
6. The comparison mode when comparing periods
7. Sort order and limit, if applicable

Available metrics:
{metrics}

Available dimensions:
{dimensions}

Guidelines:
- Use metric and dimension names exactly as listed; map user terms through synonyms.
- If the question is ambiguous, set clarification_needed to true and ask one clarification_question.
- For follow-up questions, use the conversation so far and set is_follow_up.
- Set confidence between 0.0 and 1.0.
- Convert relative time expressions ("last month", "this quarter") into start and end dates.

Respond with a single JSON object using snake_case keys: query_type, metrics, dimensions, filters,
time_range {{start, end, grain, raw_expression}}, comparison_mode, sort_by, sort_order, limit,
is_follow_up, clarification_needed, clarification_question, confidence."""


def _with_synonyms(name: str, display_name: str, description: str, synonyms: list[str]) -> str:
    line = f"- {name} ({display_name}): {description}"
    if synonyms:
        line += f" [synonyms: {', '.join(synonyms)}]"
    return line


def build_system_prompt(metadata: SemanticMetadata) -> str:
    metrics = "\n".join(
        _with_synonyms(m.name, m.display_name, m.description, m.synonyms) for m in metadata.metrics
    )
    dimensions = "\n".join(
        _with_synonyms(d.name, d.display_name, d.description, d.synonyms) for d in metadata.dimensions
    )
    return SYSTEM_PROMPT.format(metrics=metrics or "(none)", dimensions=dimensions or "(none)")


def resolve_intent(
    context: AgentContext,
    *,
    question: str,
    semantic_metadata: SemanticMetadata,
    session_context: SessionContext | None = None,
) -> AgentResult[Intent]:
    recorder = StageRecorder("intent_resolver", context, ErrorCode.INTENT_UNRESOLVABLE)
    prompt = LlmPrompt(
        system=build_system_prompt(semantic_metadata),
        user=question,
        history=session_history(session_context),
        max_tokens=1024,
    )
    result = invoke_oracle(context, recorder, task="resolve_intent", prompt=prompt)
    intent = parse_stage_output(recorder, result.text, Intent)
    return recorder.success(intent)
