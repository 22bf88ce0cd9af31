from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datapilot.schemas.trace import PipelineTrace, StageTrace


class ErrorCode(StrEnum):
    CONFIG_ERROR = "CONFIG_ERROR"
    INTENT_UNRESOLVABLE = "INTENT_UNRESOLVABLE"
    SQL_GENERATION_FAILED = "SQL_GENERATION_FAILED"
    SQL_VALIDATION_FAILED = "SQL_VALIDATION_FAILED"
    QUERY_EXECUTION_FAILED = "QUERY_EXECUTION_FAILED"
    MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"
    AGENT_ERROR = "AGENT_ERROR"
    PIPELINE_CANCELLED = "PIPELINE_CANCELLED"
    ORCHESTRATION_ERROR = "ORCHESTRATION_ERROR"


class PipelineError(Exception):
    """Single tagged error surfaced by the pipeline.

    ``stage`` names the stage the failure originated in ("orchestrator" for
    failures outside a stage). ``trace`` is the partial pipeline trace, attached
    by the orchestrator on the way out.
    """

    code: ErrorCode = ErrorCode.ORCHESTRATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        stage: str = "orchestrator",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.stage = stage
        self.details = dict(details or {})
        self.trace: PipelineTrace | None = None

    def with_trace(self, trace: PipelineTrace) -> PipelineError:
        self.trace = trace
        return self

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": str(self.code),
            "message": self.message,
            "stage": self.stage,
        }
        if self.details:
            payload["details"] = self.details
        if self.__cause__ is not None:
            payload["cause"] = str(self.__cause__)
        return payload


class ConfigurationError(PipelineError):
    code = ErrorCode.CONFIG_ERROR


class StageError(PipelineError):
    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        stage: str,
        stage_trace: StageTrace,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, stage=stage, details=details)
        self.stage_trace = stage_trace


class QueryExecutionError(PipelineError):
    code = ErrorCode.QUERY_EXECUTION_FAILED


class MaxAttemptsExceededError(PipelineError):
    code = ErrorCode.MAX_RETRIES_EXCEEDED

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_sql: str | None,
        last_errors: list[str],
        all_errors: list[str],
    ) -> None:
        super().__init__(
            message,
            stage="sql_validator",
            details={
                "attempts": attempts,
                "last_sql": last_sql,
                "last_errors": list(last_errors),
                "all_errors": list(all_errors),
            },
        )
        self.attempts = attempts
        self.last_sql = last_sql
        self.last_errors = list(last_errors)


class PipelineCancelledError(PipelineError):
    code = ErrorCode.PIPELINE_CANCELLED

    def __init__(self, message: str, *, stage: str, stage_trace: StageTrace | None = None) -> None:
        super().__init__(message, stage=stage)
        self.stage_trace = stage_trace


HTTP_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.CONFIG_ERROR: 503,
    ErrorCode.MAX_RETRIES_EXCEEDED: 422,
    ErrorCode.QUERY_EXECUTION_FAILED: 502,
    ErrorCode.PIPELINE_CANCELLED: 499,
}


def http_status_for(error: PipelineError) -> int:
    return HTTP_STATUS_BY_CODE.get(error.code, 500)
