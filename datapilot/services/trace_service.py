from __future__ import annotations

import secrets
import threading
import time
from datetime import UTC, datetime

from datapilot.schemas.trace import PipelineTrace, StageTrace


def new_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(4)[:7]}"


def build_pipeline_trace(
    request_id: str,
    started_at: datetime,
    stage_traces: list[StageTrace],
    completed_at: datetime | None = None,
) -> PipelineTrace:
    completed_at = completed_at or datetime.now(tz=UTC)
    duration_ms = max(0.0, (completed_at - started_at).total_seconds() * 1000)
    return PipelineTrace(
        request_id=request_id,
        started_at=started_at,
        completed_at=completed_at,
        total_duration_ms=round(duration_ms, 3),
        stage_traces=list(stage_traces),
        total_input_units=sum(trace.input_units for trace in stage_traces),
        total_output_units=sum(trace.output_units for trace in stage_traces),
    )


class PipelineRun:
    """Stage traces of one request, in execution order, including failed attempts."""

    def __init__(self, request_id: str, started_at: datetime | None = None) -> None:
        self.request_id = request_id
        self.started_at = started_at or datetime.now(tz=UTC)
        self._traces: list[StageTrace] = []
        self._lock = threading.Lock()

    def add(self, trace: StageTrace) -> None:
        with self._lock:
            self._traces.append(trace)

    @property
    def traces(self) -> list[StageTrace]:
        with self._lock:
            return list(self._traces)

    def completed_stages(self) -> list[str]:
        return [trace.stage for trace in self.traces if trace.succeeded]

    def finish(self) -> PipelineTrace:
        return build_pipeline_trace(self.request_id, self.started_at, self.traces)
