from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

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
from datapilot.schemas.semantic import SemanticMetadata
from datapilot.schemas.sql import CandidateQuery

SYSTEM_PROMPT = """You generate one SQL query from a structured intent and semantic-layer metadata.

Today's date: {today}
Target dialect: {dialect}

Metrics (with formulas):
{metrics}

Dimensions (table.column mappings):
{dimensions}

Relationships:
{relationships}

Guidelines:
1. Use literal values; never parameter placeholders such as $1.
2. Join tables only through the relationships listed above.
3. Use the metric formulas exactly as defined.
4. Apply filters in WHERE clauses and group by every selected dimension.
5. Apply ORDER BY and LIMIT as specified in the intent.
6. Turn the intent time_range into date comparisons; trend queries group and order by the time column.
7. When metrics come from different fact tables, compute each in its own CTE before combining.
8. Produce a single read-only SELECT statement without comments.

Respond with a single JSON object: {{"sql": "...", "dialect": "{dialect}", "tables_touched": [...],
"estimated_complexity": "low" | "medium" | "high"}}."""


@dataclass
class SqlFeedback:
    """Rejected attempts so far: the last SQL and every error message, in order."""

    previous_sql: str | None = None
    errors: list[str] = field(default_factory=list)

    def record(self, sql: str | None, messages: list[str]) -> None:
        if sql is not None:
            self.previous_sql = sql
        self.errors.extend(messages)

    @property
    def empty(self) -> bool:
        return not self.errors


def build_system_prompt(metadata: SemanticMetadata, dialect: str, today: date | None = None) -> str:
    metrics = []
    for metric in metadata.metrics:
        line = f"- {metric.name}: {metric.formula}"
        if metric.grain:
            line += f" (grain: {metric.grain})"
        if metric.dimensions:
            line += f" [dimensions: {', '.join(metric.dimensions)}]"
        metrics.append(line)

    dimensions = [f"- {d.name}: {d.table}.{d.column} (type: {d.type})" for d in metadata.dimensions]
    relationships = [
        f"- {r.from_.table}.{r.from_.column} {r.type} {r.to.table}.{r.to.column} ({r.join_type})"
        for r in metadata.relationships
    ]
    return SYSTEM_PROMPT.format(
        today=(today or date.today()).isoformat(),
        dialect=dialect,
        metrics="\n".join(metrics) or "(none)",
        dimensions="\n".join(dimensions) or "(none)",
        relationships="\n".join(relationships) or "No relationships defined",
    )


def build_user_message(intent: Intent, feedback: SqlFeedback | None = None) -> str:
    message = f"Generate a SQL query for this intent:\n\n{to_prompt_json(intent)}"
    if feedback is None or feedback.empty:
        return message

    numbered = "\n".join(f"{index}. {error}" for index, error in enumerate(feedback.errors, start=1))
    message += "\n\nThe previous attempt failed validation. Fix every issue below.\n"
    if feedback.previous_sql:
        message += f"\nPrevious SQL:\n```sql\n{feedback.previous_sql}\n```\n"
    message += f"\nValidation errors:\n{numbered}\n\nReturn a corrected query."
    return message


def generate_sql(
    context: AgentContext,
    *,
    intent: Intent,
    semantic_metadata: SemanticMetadata,
    feedback: SqlFeedback | None = None,
    retry_index: int | None = None,
) -> AgentResult[CandidateQuery]:
    recorder = StageRecorder("sql_generator", context, ErrorCode.SQL_GENERATION_FAILED, retry_index=retry_index)
    prompt = LlmPrompt(
        system=build_system_prompt(semantic_metadata, context.dialect),
        user=build_user_message(intent, feedback),
        max_tokens=2048,
    )
    result = invoke_oracle(context, recorder, task="generate_sql", prompt=prompt)
    candidate = parse_stage_output(recorder, result.text, CandidateQuery)
    if candidate.dialect != context.dialect:
        raise recorder.failure(
            f"Generated SQL targets dialect {candidate.dialect}, expected {context.dialect}",
            details={"sql": candidate.sql},
        )
    return recorder.success(candidate)
