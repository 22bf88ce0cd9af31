from __future__ import annotations

import json
import statistics
from collections import Counter
from datetime import UTC, datetime

from datapilot.agents.base import AgentContext, AgentResult, StageRecorder
from datapilot.core.errors import ErrorCode
from datapilot.schemas.intent import Intent
from datapilot.schemas.results import (
    CellValue,
    ColumnMetadata,
    ColumnStats,
    DataQualityFlag,
    DataValidationReport,
    ResultSet,
)

NULL_RATIO_FLAG = 0.1
NULL_RATIO_WARNING = 0.5
IQR_FACTOR = 1.5
GAP_FACTOR = 1.5
SINGLE_VALUE_MIN_ROWS = 10


def _parse_date(value: CellValue) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _is_number(value: CellValue) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def count_outliers(values: list[float]) -> int:
    if len(values) < 4:
        return 0
    ordered = sorted(values)
    q1 = ordered[int(len(ordered) * 0.25)]
    q3 = ordered[int(len(ordered) * 0.75)]
    spread = IQR_FACTOR * (q3 - q1)
    return sum(1 for value in values if value < q1 - spread or value > q3 + spread)


def count_time_gaps(values: list[datetime]) -> int:
    if len(values) < 2:
        return 0
    ordered = sorted(values)
    intervals = [(later - earlier).total_seconds() for earlier, later in zip(ordered, ordered[1:])]
    mode_interval, _ = Counter(round(interval) for interval in intervals).most_common(1)[0]
    threshold = mode_interval * GAP_FACTOR
    return sum(1 for interval in intervals if interval > threshold)


def _time_range_flags(result_set: ResultSet, intent: Intent) -> list[DataQualityFlag]:
    time_range = intent.time_range
    if time_range is None or result_set.row_count == 0:
        return []
    requested_start = _parse_date(time_range.start)
    requested_end = _parse_date(time_range.end)

    flags: list[DataQualityFlag] = []
    for column in result_set.columns:
        if column.type != "date" and column.semantic_role != "time":
            continue
        dates = [d for d in (_parse_date(row.get(column.name)) for row in result_set.rows) if d is not None]
        if not dates:
            continue
        first, last = min(dates), max(dates)
        if requested_start is not None and last < requested_start:
            message = (
                f"Data ends at {last.date().isoformat()} but requested range starts at {time_range.start}. "
                "The returned data does not overlap with the requested time period."
            )
        elif requested_end is not None and first > requested_end:
            message = (
                f"Data starts at {first.date().isoformat()} but requested range ends at {time_range.end}. "
                "The returned data does not overlap with the requested time period."
            )
        else:
            continue
        flags.append(
            DataQualityFlag(
                kind="value_out_of_range",
                severity="error",
                column=column.name,
                message=message,
                affected_rows=result_set.row_count,
            )
        )
    return flags


def _column_report(result_set: ResultSet, column: ColumnMetadata) -> tuple[ColumnStats, list[DataQualityFlag]]:
    values = [row.get(column.name) for row in result_set.rows]
    present = [value for value in values if value is not None]
    null_count = len(values) - len(present)
    distinct = {str(value) for value in present}

    flags: list[DataQualityFlag] = []
    stats: dict = {"column": column.name, "null_count": null_count, "distinct_count": len(distinct)}

    row_count = max(result_set.row_count, len(values))
    if null_count > 0 and null_count > row_count * NULL_RATIO_FLAG:
        flags.append(
            DataQualityFlag(
                kind="unexpected_nulls",
                severity="warning" if null_count > row_count * NULL_RATIO_WARNING else "info",
                column=column.name,
                message=f'Column "{column.name}" has {null_count} null values ({null_count / row_count * 100:.1f}%)',
                affected_rows=null_count,
            )
        )

    if column.type == "number":
        numbers = [float(value) for value in present if _is_number(value)]
        if numbers:
            stats.update(
                min=min(numbers),
                max=max(numbers),
                mean=statistics.fmean(numbers),
                median=statistics.median(numbers),
                stddev=statistics.pstdev(numbers),
            )
            outliers = count_outliers(numbers)
            if outliers:
                flags.append(
                    DataQualityFlag(
                        kind="outlier",
                        severity="warning" if outliers > len(numbers) * 0.1 else "info",
                        column=column.name,
                        message=f'Column "{column.name}" has {outliers} potential outliers',
                        affected_rows=outliers,
                    )
                )
    elif column.type == "date":
        dates = [d for d in (_parse_date(value) for value in present) if d is not None]
        if dates:
            stats.update(min=min(dates).isoformat(), max=max(dates).isoformat())
            gaps = count_time_gaps(dates)
            if gaps:
                flags.append(
                    DataQualityFlag(
                        kind="time_gap",
                        severity="warning" if gaps > 3 else "info",
                        column=column.name,
                        message=f'Column "{column.name}" has {gaps} time gaps in the data',
                        affected_rows=gaps,
                    )
                )
    elif column.type == "string" and len(distinct) == 1 and len(present) > SINGLE_VALUE_MIN_ROWS:
        flags.append(
            DataQualityFlag(
                kind="grain_mismatch",
                severity="info",
                column=column.name,
                message=f'Column "{column.name}" has only 1 distinct value across {len(present)} rows',
            )
        )

    return ColumnStats(**stats), flags


def build_report(result_set: ResultSet, intent: Intent | None = None) -> DataValidationReport:
    flags: list[DataQualityFlag] = []
    column_stats: list[ColumnStats] = []

    if result_set.row_count == 0:
        flags.append(
            DataQualityFlag(
                kind="missing_values",
                severity="warning",
                message="Query returned no results",
                affected_rows=0,
            )
        )
    if result_set.truncated:
        flags.append(
            DataQualityFlag(
                kind="value_out_of_range",
                severity="info",
                message=f"Results were truncated. Only {result_set.row_count} rows returned.",
                affected_rows=result_set.row_count,
            )
        )
    if intent is not None:
        flags.extend(_time_range_flags(result_set, intent))

    for column in result_set.columns:
        stats, column_flags = _column_report(result_set, column)
        column_stats.append(stats)
        flags.extend(column_flags)

    fingerprints = [json.dumps(row, default=str) for row in result_set.rows]
    duplicates = len(fingerprints) - len(set(fingerprints))
    if duplicates > 0:
        flags.append(
            DataQualityFlag(
                kind="duplicate_rows",
                severity="warning" if duplicates > result_set.row_count * 0.1 else "info",
                message=f"Found {duplicates} duplicate rows",
                affected_rows=duplicates,
            )
        )

    return DataValidationReport(quality_flags=flags, column_stats=column_stats)


def validate_data(
    context: AgentContext,
    *,
    result_set: ResultSet,
    intent: Intent | None = None,
) -> AgentResult[DataValidationReport]:
    recorder = StageRecorder("data_validator", context, ErrorCode.AGENT_ERROR)
    recorder.check_cancelled()
    return recorder.success(build_report(result_set, intent))
