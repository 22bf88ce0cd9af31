from __future__ import annotations

import re
from dataclasses import dataclass

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from datapilot.schemas.sql import ValidationIssue

FORBIDDEN_KEYWORDS = (
    "DROP",
    "DELETE",
    "TRUNCATE",
    "INSERT",
    "UPDATE",
    "ALTER",
    "CREATE",
    "GRANT",
    "REVOKE",
    "EXEC",
    "EXECUTE",
    "CALL",
    "INTO OUTFILE",
    "INTO DUMPFILE",
    "LOAD_FILE",
    "LOAD DATA",
    "PRAGMA",
    "ATTACH",
    "DETACH",
    "VACUUM",
)

SQLGLOT_DIALECTS = {
    "postgresql": "postgres",
    "bigquery": "bigquery",
    "snowflake": "snowflake",
    "redshift": "redshift",
    "databricks": "databricks",
    "sqlite": "sqlite",
}

_KEYWORD_PATTERNS = {
    keyword: re.compile(r"\b" + r"\s+".join(keyword.split()) + r"\b", re.IGNORECASE)
    for keyword in FORBIDDEN_KEYWORDS
}
_SELECT_STAR = re.compile(r"SELECT\s+\*\s+FROM", re.IGNORECASE)
_FORBIDDEN_NODES = (exp.Delete, exp.Update, exp.Drop, exp.Insert, exp.Create, exp.Command, exp.Alter)
_QUERY_NODES = (exp.Select, exp.Union, exp.Intersect, exp.Except)


@dataclass
class ValidationResult:
    is_valid: bool
    reason: str | None = None


def _security_error(message: str) -> ValidationIssue:
    return ValidationIssue(
        kind="security",
        severity="error",
        message=message,
        suggestion="Only single read-only SELECT queries are allowed",
    )


def _parse_issues(sql: str, dialect: str) -> list[ValidationIssue]:
    read = SQLGLOT_DIALECTS.get(dialect, dialect)
    try:
        statements = [statement for statement in sqlglot.parse(sql, read=read) if statement is not None]
    except SqlglotError as exc:
        return [
            ValidationIssue(
                kind="syntax",
                severity="error",
                message=f"Invalid SQL for {dialect}: {exc}",
                suggestion="Fix the syntax error",
            )
        ]

    if len(statements) > 1:
        return [_security_error("Multiple statements are not allowed")]
    if not statements:
        return [ValidationIssue(kind="syntax", severity="error", message="Empty SQL")]

    parsed = statements[0]
    if not isinstance(parsed, _QUERY_NODES):
        return [_security_error("Only top-level SELECT queries are allowed")]
    for node in parsed.walk():
        if isinstance(node, _FORBIDDEN_NODES):
            return [_security_error(f"Forbidden SQL node: {node.key}")]
    return []


def static_issues(sql: str, dialect: str = "postgresql") -> list[ValidationIssue]:
    stripped = sql.strip().rstrip(";").strip()
    if not stripped:
        return [ValidationIssue(kind="syntax", severity="error", message="Empty SQL")]

    issues: list[ValidationIssue] = []
    for keyword, pattern in _KEYWORD_PATTERNS.items():
        if pattern.search(stripped):
            issues.append(_security_error(f"Forbidden SQL operation detected: {keyword}"))

    upper = stripped.upper()
    if not (upper.startswith("SELECT") or upper.startswith("WITH")):
        issues.append(_security_error("Only SELECT statements are allowed"))

    if "--" in stripped or "/*" in stripped:
        issues.append(
            ValidationIssue(
                kind="security",
                severity="warning",
                message="SQL comments detected which could indicate injection attempts",
                suggestion="Remove comments from the query",
            )
        )

    if "WHERE" not in upper and "LIMIT" not in upper:
        issues.append(
            ValidationIssue(
                kind="performance",
                severity="warning",
                message="Query has no WHERE clause or LIMIT",
                suggestion="Add filters or a LIMIT clause to avoid large result sets",
            )
        )

    if _SELECT_STAR.search(stripped):
        issues.append(
            ValidationIssue(
                kind="performance",
                severity="info",
                message="SELECT * may return unnecessary columns",
                suggestion="Select only the required columns",
            )
        )

    if not any(issue.kind == "security" and issue.severity == "error" for issue in issues):
        issues.extend(_parse_issues(stripped, dialect))
    return issues


def validate_safe_select(sql: str, dialect: str = "sqlite") -> ValidationResult:
    for issue in static_issues(sql, dialect):
        if issue.severity == "error":
            return ValidationResult(is_valid=False, reason=issue.message)
    return ValidationResult(is_valid=True)
