from __future__ import annotations

import json

from datapilot.agents.base import AgentContext, AgentResult, StageRecorder, invoke_oracle, parse_stage_output
from datapilot.core.errors import ErrorCode
from datapilot.llm.types import LlmPrompt
from datapilot.schemas.intent import Intent
from datapilot.schemas.results import ResultSet
from datapilot.schemas.visualization import VisualizationSpec

SAMPLE_ROWS = 10

SYSTEM_PROMPT = """You choose the visualization for a query result.

Chart types:
- line: trends over time
- bar: comparisons across categories
- area: cumulative values or volume over time
- scatter: correlation between two metrics
- composed: several metrics on dual axes
- kpi: a single headline number (one row)
- table: many dimensions or detail rows

Put the time dimension on the x axis for time series, label axes, enable the legend for several
series and consider stacking for related categories.

Respond with a single JSON object using snake_case keys: chart_type, title,
x_axis {data_key, label, type, format}, y_axis, y_axis_right,
series [{data_key, name, color, type, y_axis_id, stack_id}], legend {show, position}, stacked,
kpi_value, kpi_label, kpi_comparison."""


def build_user_message(intent: Intent, result_set: ResultSet) -> str:
    sample = result_set.rows[:SAMPLE_ROWS]
    schema_lines = []
    for column in result_set.columns:
        role = f", role: {column.semantic_role}" if column.semantic_role else ""
        schema_lines.append(f"- {column.name} ({column.type}{role})")
    time_range = f"{intent.time_range.start} to {intent.time_range.end}" if intent.time_range else "not specified"
    return (
        "Design a visualization for this data.\n\n"
        f"Intent: type={intent.query_type}; metrics={', '.join(intent.metrics)}; "
        f"dimensions={', '.join(intent.dimensions) or 'none'}; time range={time_range}\n\n"
        "Columns:\n" + "\n".join(schema_lines) + "\n\n"
        f"Sample (first {len(sample)} of {result_set.row_count} rows):\n"
        f"{json.dumps(sample, indent=2, default=str)}"
    )


def _shortcut(intent: Intent, result_set: ResultSet) -> VisualizationSpec | None:
    if result_set.row_count == 0:
        return VisualizationSpec(chart_type="table", title="No data available")
    if result_set.row_count == 1 and len(intent.metrics) == 1:
        for column in result_set.columns:
            if column.semantic_role == "metric" or column.name in intent.metrics:
                return VisualizationSpec(
                    chart_type="kpi",
                    kpi_value=column.name,
                    kpi_label=column.display_name or column.name,
                )
    return None


def plan_visualization(context: AgentContext, *, intent: Intent, result_set: ResultSet) -> AgentResult[VisualizationSpec]:
    recorder = StageRecorder("viz_planner", context, ErrorCode.AGENT_ERROR)
    spec = _shortcut(intent, result_set)
    if spec is not None:
        recorder.check_cancelled()
        return recorder.success(spec)

    prompt = LlmPrompt(system=SYSTEM_PROMPT, user=build_user_message(intent, result_set), max_tokens=1024)
    result = invoke_oracle(context, recorder, task="plan_visualization", prompt=prompt)
    return recorder.success(parse_stage_output(recorder, result.text, VisualizationSpec))
