from __future__ import annotations

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
from datapilot.schemas.sql import CandidateQuery, ValidationVerdict
from datapilot.services.sql.guards import static_issues

SYSTEM_PROMPT = """You review one SQL query before it runs against a data warehouse.

Check for:
1. Syntax errors
2. Semantic issues (table or column mismatches)
3. Performance concerns (cartesian products, unnecessary subqueries)
4. Security issues (injection patterns, unsafe constructs)
5. Intent mismatch (the query does not answer the question)

For each issue give kind ("syntax", "semantic", "performance", "security", "intent_mismatch"),
severity ("error", "warning", "info"), message, suggestion and line when known.
Only problems that make the answer wrong are errors.

Respond with a single JSON object: {"valid": bool, "issues": [...], "confidence": number between 0 and 1}."""


def build_user_message(candidate: CandidateQuery, intent: Intent) -> str:
    return (
        f"Validate this SQL query:\n\n```sql\n{candidate.sql}\n```\n\n"
        f"Target dialect: {candidate.dialect}\n"
        f"Tables touched: {', '.join(candidate.tables_touched) or 'unknown'}\n"
        f"Estimated complexity: {candidate.estimated_complexity or 'unknown'}\n\n"
        f"Original intent:\n{to_prompt_json(intent)}"
    )


def validate_sql(
    context: AgentContext,
    *,
    candidate: CandidateQuery,
    intent: Intent,
    retry_index: int | None = None,
) -> AgentResult[ValidationVerdict]:
    recorder = StageRecorder("sql_validator", context, ErrorCode.SQL_VALIDATION_FAILED, retry_index=retry_index)
    recorder.check_cancelled()

    issues = static_issues(candidate.sql, context.dialect)
    if any(issue.severity == "error" for issue in issues):
        return recorder.success(ValidationVerdict(valid=False, issues=issues, confidence=1.0))

    prompt = LlmPrompt(system=SYSTEM_PROMPT, user=build_user_message(candidate, intent), max_tokens=1024)
    result = invoke_oracle(context, recorder, task="validate_sql", prompt=prompt)
    reported = parse_stage_output(recorder, result.text, ValidationVerdict)

    merged = [*issues, *reported.issues]
    verdict = ValidationVerdict(
        valid=not any(issue.severity == "error" for issue in merged),
        issues=merged,
        confidence=reported.confidence,
    )
    return recorder.success(verdict)
