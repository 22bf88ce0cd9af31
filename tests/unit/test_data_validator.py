from __future__ import annotations

from datetime import UTC, datetime, timedelta

from datapilot.agents.data_validator import build_report, count_outliers, count_time_gaps, validate_data
from datapilot.schemas.intent import Intent
from datapilot.schemas.results import ColumnMetadata, ResultSet


def _result(columns: list[ColumnMetadata], rows: list[dict], truncated: bool = False) -> ResultSet:
    return ResultSet(columns=columns, rows=rows, row_count=len(rows), truncated=truncated)


def _kinds(report) -> list[str]:
    return [flag.kind for flag in report.quality_flags]


def test_clean_result_has_no_flags_and_numeric_stats(result_set: ResultSet) -> None:
    report = build_report(result_set)

    assert report.quality_flags == []
    revenue = next(stats for stats in report.column_stats if stats.column == "revenue")
    assert revenue.min == 1200.0
    assert revenue.max == 1500.0
    assert revenue.median == 1350.5
    assert revenue.null_count == 0
    assert revenue.distinct_count == 5

    dates = next(stats for stats in report.column_stats if stats.column == "date")
    assert dates.min == "2024-01-01T00:00:00+00:00"
    assert dates.max == "2024-01-05T00:00:00+00:00"


def test_empty_result_is_flagged() -> None:
    report = build_report(_result([ColumnMetadata(name="revenue", type="number")], []))

    assert _kinds(report) == ["missing_values"]
    assert report.quality_flags[0].severity == "warning"
    assert report.quality_flags[0].message == "Query returned no results"


def test_truncation_is_info() -> None:
    report = build_report(_result([ColumnMetadata(name="n", type="number")], [{"n": 1}], truncated=True))
    assert [(flag.kind, flag.severity) for flag in report.quality_flags] == [("value_out_of_range", "info")]


def test_null_ratio_severity() -> None:
    column = ColumnMetadata(name="region", type="string")
    mostly_null = build_report(_result([column], [{"region": None}] * 6 + [{"region": "EMEA"}] * 4))
    some_null = build_report(_result([column], [{"region": None}] * 2 + [{"region": "EMEA"}] * 8))

    def null_flags(report):
        return [(f.severity, f.affected_rows) for f in report.quality_flags if f.kind == "unexpected_nulls"]

    assert null_flags(mostly_null) == [("warning", 6)]
    assert null_flags(some_null) == [("info", 2)]


def test_outliers_use_interquartile_range() -> None:
    assert count_outliers([10, 11, 12, 13, 14, 15, 16, 500]) == 1
    assert count_outliers([1, 2, 1000]) == 0

    rows = [{"amount": value} for value in (10, 11, 12, 13, 14, 15, 16, 500)]
    report = build_report(_result([ColumnMetadata(name="amount", type="number")], rows))
    assert [(f.kind, f.severity) for f in report.quality_flags] == [("outlier", "warning")]


def test_time_gaps_compare_against_most_common_interval() -> None:
    start = datetime(2024, 1, 1, tzinfo=UTC)
    days = [start + timedelta(days=offset) for offset in (0, 1, 2, 3, 10, 11)]
    assert count_time_gaps(days) == 1
    assert count_time_gaps(days[:1]) == 0

    rows = [{"day": day.date().isoformat()} for day in days]
    report = build_report(_result([ColumnMetadata(name="day", type="date")], rows))
    assert [(f.kind, f.severity) for f in report.quality_flags] == [("time_gap", "info")]


def test_duplicate_rows() -> None:
    rows = [{"region": "EMEA", "n": 1}, {"region": "EMEA", "n": 1}, {"region": "AMER", "n": 2}]
    report = build_report(
        _result([ColumnMetadata(name="region", type="string"), ColumnMetadata(name="n", type="number")], rows)
    )
    duplicates = [flag for flag in report.quality_flags if flag.kind == "duplicate_rows"]
    assert len(duplicates) == 1
    assert duplicates[0].affected_rows == 1
    assert duplicates[0].severity == "warning"


def test_single_distinct_value_across_many_rows() -> None:
    rows = [{"status": "done"}] * 11
    report = build_report(_result([ColumnMetadata(name="status", type="string")], rows))
    assert "grain_mismatch" in _kinds(report)


def test_data_outside_requested_range_is_an_error(result_set: ResultSet) -> None:
    intent = Intent(
        query_type="trend",
        metrics=["revenue"],
        time_range={"start": "2024-03-01", "end": "2024-03-31"},
    )
    report = build_report(result_set, intent)

    errors = [flag for flag in report.quality_flags if flag.severity == "error"]
    assert len(errors) == 1
    assert errors[0].column == "date"
    assert "does not overlap" in errors[0].message


def test_overlapping_range_is_not_flagged(result_set: ResultSet) -> None:
    intent = Intent(
        query_type="trend",
        metrics=["revenue"],
        time_range={"start": "2024-01-01", "end": "2024-01-31"},
    )
    assert build_report(result_set, intent).quality_flags == []


def test_stage_records_zero_unit_trace(agent_context, result_set: ResultSet, oracle) -> None:
    outcome = validate_data(agent_context, result_set=result_set)

    assert outcome.trace.stage == "data_validator"
    assert outcome.trace.succeeded is True
    assert (outcome.trace.input_units, outcome.trace.output_units) == (0, 0)
    assert oracle.call_count == 0
