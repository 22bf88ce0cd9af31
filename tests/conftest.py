from __future__ import annotations

import json
import os
from pathlib import Path
import tempfile
import threading
from typing import Any

import pytest

# Force deterministic offline behavior for all tests before app modules import settings.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
_RUNTIME_DIR = Path(tempfile.gettempdir()) / f"datapilot_api_pytest_{os.getpid()}"
os.environ["APP_ENV"] = "test"
os.environ["LLM_PROVIDER"] = "anthropic"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["LLM_DEFAULT_MODEL"] = "test-default"
os.environ["LLM_CHEAP_MODEL"] = "test-cheap"
os.environ["LLM_EXPENSIVE_MODEL"] = "test-expensive"
os.environ["SEMANTIC_PATH"] = str(PROJECT_ROOT / "data" / "semantic.json")
os.environ["WAREHOUSE_DB_PATH"] = str(_RUNTIME_DIR / "warehouse.db")

from datapilot.llm.types import LlmCallResult, LlmPrompt  # noqa: E402
from datapilot.schemas.results import ColumnMetadata, ResultSet  # noqa: E402

TREND_SQL = (
    "SELECT order_date AS date, SUM(total_amount) AS revenue FROM orders "
    "WHERE order_date BETWEEN '2024-01-01' AND '2024-01-31' GROUP BY order_date ORDER BY order_date"
)


class ScriptedOracle:
    """Fake oracle answering each task from a queue; the last entry repeats."""

    def __init__(self, prompt_tokens: int = 10, completion_tokens: int = 5) -> None:
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.scripts: dict[str, list[str | Exception]] = {}
        self.calls: list[tuple[str, LlmPrompt]] = []
        self._lock = threading.Lock()

    def script(self, task: str, *responses: str | Exception) -> ScriptedOracle:
        self.scripts.setdefault(task, []).extend(responses)
        return self

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def tasks(self) -> list[str]:
        return [task for task, _ in self.calls]

    def complete(self, *, task: str, prompt: LlmPrompt) -> LlmCallResult:
        with self._lock:
            self.calls.append((task, prompt))
            queue = self.scripts.get(task)
            if not queue:
                raise AssertionError(f"No scripted response for task {task}")
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return LlmCallResult(
            text=response,
            model=f"fake-{task}",
            provider="fake",
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
        )


class RecordingExecutor:
    def __init__(self, result_set: ResultSet | None = None, error: Exception | None = None) -> None:
        self.result_set = result_set
        self.error = error
        self.calls: list[str] = []

    def __call__(self, sql: str) -> ResultSet:
        self.calls.append(sql)
        if self.error is not None:
            raise self.error
        assert self.result_set is not None
        return self.result_set


class Payloads:
    @staticmethod
    def intent(**overrides: Any) -> str:
        payload: dict[str, Any] = {
            "query_type": "trend",
            "metrics": ["revenue"],
            "dimensions": ["date"],
            "filters": [],
            "time_range": {"start": "2024-01-01", "end": "2024-01-31", "grain": "daily"},
            "comparison_mode": "none",
            "is_follow_up": False,
            "clarification_needed": False,
            "confidence": 0.95,
        }
        payload.update(overrides)
        return json.dumps(payload)

    @staticmethod
    def clarification(question: str = "Which metric would you like to see?") -> str:
        return Payloads.intent(
            query_type="aggregation",
            dimensions=[],
            time_range=None,
            clarification_needed=True,
            clarification_question=question,
            confidence=0.4,
        )

    @staticmethod
    def candidate(sql: str = TREND_SQL, dialect: str = "postgresql") -> str:
        return json.dumps(
            {"sql": sql, "dialect": dialect, "tables_touched": ["orders"], "estimated_complexity": "low"}
        )

    @staticmethod
    def verdict(*errors: str, valid: bool | None = None, warnings: tuple[str, ...] = ()) -> str:
        issues = [{"kind": "semantic", "severity": "error", "message": message} for message in errors]
        issues += [{"kind": "performance", "severity": "warning", "message": message} for message in warnings]
        return json.dumps(
            {"valid": (not errors) if valid is None else valid, "issues": issues, "confidence": 0.9}
        )

    @staticmethod
    def insights() -> str:
        return json.dumps(
            {
                "insights": [
                    {
                        "kind": "trend",
                        "message": "Revenue grew steadily through January",
                        "metric": "revenue",
                        "significance": "high",
                    }
                ]
            }
        )

    @staticmethod
    def line_chart() -> str:
        return "```json\n" + json.dumps(
            {
                "chart_type": "line",
                "title": "Revenue in January",
                "x_axis": {"data_key": "date", "type": "datetime"},
                "y_axis": {"data_key": "revenue", "type": "number"},
                "series": [{"data_key": "revenue", "name": "Revenue"}],
            }
        ) + "\n```"


def january_revenue() -> ResultSet:
    rows = [
        {"date": "2024-01-01", "revenue": 1200.0},
        {"date": "2024-01-02", "revenue": 1350.5},
        {"date": "2024-01-03", "revenue": 1280.0},
        {"date": "2024-01-04", "revenue": 1420.25},
        {"date": "2024-01-05", "revenue": 1500.0},
    ]
    return ResultSet(
        columns=[
            ColumnMetadata(name="date", type="date", semantic_role="time"),
            ColumnMetadata(name="revenue", type="number", semantic_role="metric"),
        ],
        rows=rows,
        row_count=len(rows),
        execution_time_ms=4.2,
    )


def script_happy_path(oracle: ScriptedOracle) -> ScriptedOracle:
    return (
        oracle.script("resolve_intent", Payloads.intent())
        .script("generate_sql", Payloads.candidate())
        .script("validate_sql", Payloads.verdict())
        .script("analyze_data", Payloads.insights())
        .script("plan_visualization", Payloads.line_chart())
        .script("generate_narrative", "Revenue **rose 25%** across the first week of January.")
    )


@pytest.fixture(scope="session", autouse=True)
def _init_test_environment() -> None:
    from datapilot.core.settings import get_settings

    _RUNTIME_DIR.mkdir(parents=True, exist_ok=True)
    get_settings.cache_clear()


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def payloads() -> type[Payloads]:
    return Payloads


@pytest.fixture
def happy_oracle(oracle: ScriptedOracle) -> ScriptedOracle:
    return script_happy_path(oracle)


@pytest.fixture
def semantic_metadata():
    from datapilot.services.semantic_service import load_semantic_metadata

    return load_semantic_metadata(PROJECT_ROOT / "data" / "semantic.json")


@pytest.fixture
def result_set() -> ResultSet:
    return january_revenue()


@pytest.fixture
def executor(result_set: ResultSet) -> RecordingExecutor:
    return RecordingExecutor(result_set)


@pytest.fixture
def agent_context(oracle: ScriptedOracle):
    from datapilot.agents.base import AgentContext

    return AgentContext(request_id="req_test", oracle=oracle, dialect="postgresql")


@pytest.fixture
def make_executor() -> type[RecordingExecutor]:
    return RecordingExecutor
