"""Shared contract for the pipeline stages.

Every stage takes an ``AgentContext`` plus its own input and returns an
``AgentResult`` holding the parsed output and a fully formed ``StageTrace``.
A failing stage raises ``StageError`` carrying the failed trace, so elapsed
time and consumed units are reported either way.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from datapilot.core.cancellation import CancellationToken
from datapilot.core.errors import ErrorCode, PipelineCancelledError, StageError
from datapilot.llm.parsing import OutputParseError, parse_structured
from datapilot.llm.providers import LlmProviderError
from datapilot.llm.types import LlmCallResult, LlmPrompt, TextCompletionOracle
from datapilot.schemas.intent import SessionContext
from datapilot.schemas.sql import WarehouseDialect
from datapilot.schemas.trace import StageName, StageTrace

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

HISTORY_TURNS = 4


@dataclass(frozen=True)
class AgentContext:
    request_id: str
    oracle: TextCompletionOracle
    dialect: WarehouseDialect
    cancellation: CancellationToken | None = None


@dataclass
class AgentResult(Generic[T]):
    data: T
    trace: StageTrace


class StageRecorder:
    """Clock and unit counter for one stage invocation."""

    def __init__(
        self,
        stage: StageName,
        context: AgentContext,
        error_code: ErrorCode,
        retry_index: int | None = None,
    ) -> None:
        self.stage = stage
        self.context = context
        self.error_code = error_code
        self.retry_index = retry_index
        self.started_at = datetime.now(tz=UTC)
        self._started = time.perf_counter()
        self.input_units = 0
        self.output_units = 0
        self.model: str | None = None

    def charge(self, result: LlmCallResult) -> None:
        self.input_units += result.prompt_tokens
        self.output_units += result.completion_tokens
        self.model = result.model

    def trace(self, *, succeeded: bool, error_message: str | None = None) -> StageTrace:
        elapsed_ms = max(0.0, (time.perf_counter() - self._started) * 1000)
        return StageTrace(
            stage=self.stage,
            started_at=self.started_at,
            completed_at=datetime.now(tz=UTC),
            duration_ms=round(elapsed_ms, 3),
            input_units=self.input_units,
            output_units=self.output_units,
            succeeded=succeeded,
            error_message=error_message,
            retry_index=self.retry_index,
            model=self.model,
        )

    def success(self, data: T) -> AgentResult[T]:
        return AgentResult(data=data, trace=self.trace(succeeded=True))

    def failure(self, message: str, details: dict[str, Any] | None = None) -> StageError:
        return StageError(
            message,
            code=self.error_code,
            stage=self.stage,
            stage_trace=self.trace(succeeded=False, error_message=message),
            details=details,
        )

    def check_cancelled(self) -> None:
        token = self.context.cancellation
        if token is None or not token.cancelled:
            return
        reason = token.reason or "Request cancelled"
        raise PipelineCancelledError(
            reason,
            stage=self.stage,
            stage_trace=self.trace(succeeded=False, error_message=reason),
        )


def invoke_oracle(context: AgentContext, recorder: StageRecorder, *, task: str, prompt: LlmPrompt) -> LlmCallResult:
    recorder.check_cancelled()
    try:
        result = context.oracle.complete(task=task, prompt=prompt)
    except PipelineCancelledError:
        raise
    except LlmProviderError as exc:
        raise recorder.failure(f"Model call failed: {exc}") from exc
    except Exception as exc:
        raise recorder.failure(f"Model call failed: {type(exc).__name__}: {exc}") from exc
    recorder.charge(result)
    recorder.check_cancelled()
    return result


def parse_stage_output(recorder: StageRecorder, text: str, model: type[M]) -> M:
    try:
        return parse_structured(text, model)
    except OutputParseError as exc:
        raise recorder.failure(f"Unparseable {recorder.stage} output: {exc}") from exc


def session_history(session_context: SessionContext | None) -> tuple[tuple[str, str], ...]:
    if session_context is None:
        return ()
    return tuple((turn.role, turn.content) for turn in session_context.turns[-HISTORY_TURNS:])


def to_prompt_json(value: BaseModel | list[BaseModel] | dict[str, Any]) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json(indent=2, exclude_none=True)
    if isinstance(value, list):
        return json.dumps([item.model_dump(mode="json", exclude_none=True) for item in value], indent=2)
    return json.dumps(value, indent=2, default=str)
