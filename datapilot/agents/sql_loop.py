"""Bounded generate/validate loop for SQL candidates.

Each attempt runs the generator then the validator, both traced with the
attempt index. A candidate is accepted when the verdict is valid or carries no
error-severity issue. Rejections feed the previous SQL and every error seen so
far back to the generator. Stage failures inside the loop use up an attempt
rather than failing the request; cancellation always propagates.
"""

from __future__ import annotations

from dataclasses import dataclass

from datapilot.agents.base import AgentContext
from datapilot.agents.sql_generator import SqlFeedback, generate_sql
from datapilot.agents.sql_validator import validate_sql
from datapilot.core.errors import MaxAttemptsExceededError, StageError
from datapilot.core.logging import get_logger
from datapilot.schemas.intent import Intent
from datapilot.schemas.semantic import SemanticMetadata
from datapilot.schemas.sql import CandidateQuery, ValidationVerdict
from datapilot.services.trace_service import PipelineRun

logger = get_logger(__name__)


@dataclass
class SqlLoopOutcome:
    candidate: CandidateQuery
    verdict: ValidationVerdict
    attempts: int


def generate_validated_sql(
    context: AgentContext,
    *,
    intent: Intent,
    semantic_metadata: SemanticMetadata,
    max_attempts: int,
    run: PipelineRun,
) -> SqlLoopOutcome:
    feedback = SqlFeedback()
    all_errors: list[str] = []
    last_sql: str | None = None
    last_errors: list[str] = []

    for attempt in range(max_attempts):
        log_extra = {"request_id": context.request_id, "attempt": attempt}
        try:
            generated = generate_sql(
                context,
                intent=intent,
                semantic_metadata=semantic_metadata,
                feedback=feedback if attempt else None,
                retry_index=attempt,
            )
        except StageError as exc:
            run.add(exc.stage_trace)
            last_sql = None
            last_errors = [exc.message]
            all_errors.append(exc.message)
            feedback.record(None, [exc.message])
            logger.warning("SQL generation attempt failed: %s", exc.message, extra={**log_extra, "stage": exc.stage})
            continue
        run.add(generated.trace)
        candidate = generated.data
        last_sql = candidate.sql

        try:
            validated = validate_sql(context, candidate=candidate, intent=intent, retry_index=attempt)
        except StageError as exc:
            run.add(exc.stage_trace)
            last_errors = [exc.message]
            all_errors.append(exc.message)
            logger.warning("SQL validation attempt failed: %s", exc.message, extra={**log_extra, "stage": exc.stage})
            continue
        run.add(validated.trace)
        verdict = validated.data

        if verdict.is_acceptable():
            logger.info("SQL accepted on attempt %s", attempt + 1, extra=log_extra)
            return SqlLoopOutcome(candidate=candidate, verdict=verdict, attempts=attempt + 1)

        last_errors = verdict.error_messages()
        all_errors.extend(last_errors)
        feedback.record(candidate.sql, last_errors)
        logger.info("SQL rejected: %s", "; ".join(last_errors), extra={**log_extra, "stage": "sql_validator"})

    raise MaxAttemptsExceededError(
        f"SQL validation failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_sql=last_sql,
        last_errors=last_errors,
        all_errors=all_errors,
    )
