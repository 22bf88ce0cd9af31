from __future__ import annotations

import re
import sqlite3
import time
from pathlib import Path

import sqlglot
from sqlglot.errors import SqlglotError

from datapilot.schemas.results import CellValue, ColumnMetadata, ResultSet
from datapilot.services.sql.guards import validate_safe_select

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}([ T]\d{2}:\d{2}(:\d{2}(\.\d+)?)?)?(Z|[+-]\d{2}:?\d{2})?$")


class SqlExecutionError(Exception):
    pass


def _enforce_limit(sql: str, limit: int) -> str:
    cleaned = sql.strip().rstrip(";").strip()
    try:
        tree = sqlglot.parse_one(cleaned, read="sqlite")
    except SqlglotError as exc:
        raise SqlExecutionError(f"Could not parse SQL: {exc}") from exc
    # fetchmany still caps the rows when the query brings its own LIMIT
    if tree.args.get("limit") is not None:
        return cleaned
    return f"{cleaned} LIMIT {limit}"


def _cell(value: object) -> CellValue:
    if isinstance(value, bytes):
        return value.hex()
    return value  # type: ignore[return-value]


def infer_column_type(values: list[CellValue]) -> str:
    present = [value for value in values if value is not None]
    if not present:
        return "null"
    if all(isinstance(value, bool) for value in present):
        return "boolean"
    if all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in present):
        return "number"
    if all(isinstance(value, str) and _DATE_RE.match(value) for value in present):
        return "date"
    return "string"


class SqliteQueryExecutor:
    """Read-only query execution against a SQLite file with a row cap and timeout."""

    def __init__(self, db_path: Path | str, timeout_seconds: float = 5.0, max_rows: int = 10_000) -> None:
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds
        self.max_rows = max_rows

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise SqlExecutionError(f"Warehouse database not found: {self.db_path}")
        return sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True, check_same_thread=False)

    def __call__(self, sql: str) -> ResultSet:
        validation = validate_safe_select(sql, dialect="sqlite")
        if not validation.is_valid:
            raise SqlExecutionError(validation.reason or "Unsafe SQL")

        bounded_sql = _enforce_limit(sql, self.max_rows + 1)
        conn = self._connect()
        start = time.monotonic()

        def progress_handler() -> int:
            if time.monotonic() - start > self.timeout_seconds:
                return 1
            return 0

        conn.set_progress_handler(progress_handler, 1000)
        try:
            cursor = conn.execute(bounded_sql)
            names = [description[0] for description in cursor.description or ()]
            raw_rows = cursor.fetchmany(self.max_rows + 1)
        except sqlite3.OperationalError as exc:
            if "interrupted" in str(exc).lower():
                raise SqlExecutionError("Query timed out") from exc
            raise SqlExecutionError(str(exc)) from exc
        except sqlite3.Error as exc:
            raise SqlExecutionError(str(exc)) from exc
        finally:
            conn.set_progress_handler(None, 0)
            conn.close()

        truncated = len(raw_rows) > self.max_rows
        rows = [{name: _cell(value) for name, value in zip(names, raw)} for raw in raw_rows[: self.max_rows]]
        columns = [
            ColumnMetadata(name=name, type=infer_column_type([row[name] for row in rows]))
            for name in names
        ]
        return ResultSet(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            truncated=truncated,
            execution_time_ms=round((time.monotonic() - start) * 1000, 3),
        )
