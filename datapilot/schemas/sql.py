from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

WarehouseDialect = Literal["postgresql", "bigquery", "snowflake", "redshift", "databricks", "sqlite"]

Severity = Literal["error", "warning", "info"]


class CandidateQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    sql: str = Field(min_length=1)
    dialect: WarehouseDialect
    tables_touched: list[str] = Field(default_factory=list)
    estimated_complexity: Literal["low", "medium", "high"] | None = None


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["syntax", "semantic", "performance", "security", "intent_mismatch"]
    severity: Severity
    message: str
    suggestion: str | None = None
    line: int | None = Field(default=None, gt=0)


class ValidationVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    def error_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.error_issues()]

    def is_acceptable(self) -> bool:
        # Only error-severity issues block. A false `valid` with no error issue is accepted,
        # and any error issue rejects even when `valid` is true.
        return not self.error_issues()
