"""
Pydantic models for the script flatten API.

Request bodies are plain SQL text; these models shape the JSON responses.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .flatten.types import ExecutionOutcome, FlattenResult


class ResultSetModel(BaseModel):
    """Rows for one side of a table comparison."""
    name: str
    columns: list[str] = []
    rows: list[dict[str, Any]] = []


class TableComparisonModel(BaseModel):
    """Before/after rows for a table the script changed."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "table_name": "DBO.ORDERS",
                "before": {"name": "Before_0", "columns": ["ID", "STATUS"], "rows": [{"ID": 1, "STATUS": "open"}]},
                "after": {"name": "After_1", "columns": ["ID", "STATUS"], "rows": [{"ID": 1, "STATUS": "closed"}]},
            }
        }
    )

    table_name: str
    before: ResultSetModel | None = None
    after: ResultSetModel | None = None


class SqlErrorModel(BaseModel):
    """Structured error reported by the database engine."""
    number: int
    state: int
    line_number: int


class TableReferenceModel(BaseModel):
    name: str
    alias: str


class ScriptResponse(BaseModel):
    """Response from POST /script."""
    success: bool
    executed: bool
    execution_time_ms: int = 0
    table_comparisons: list[TableComparisonModel] = []
    tables: list[TableReferenceModel] = []

    error_message: str | None = Field(None, description="Set when success is false")
    error_kind: str | None = Field(None, description="sql | timeout | infrastructure | parse")
    sql_error: SqlErrorModel | None = None

    @classmethod
    def from_result(cls, result: FlattenResult) -> ScriptResponse:
        outcome: ExecutionOutcome = result.outcome
        data = outcome.to_dict()
        return cls(
            success=outcome.success,
            executed=result.executed,
            execution_time_ms=outcome.execution_time_ms,
            table_comparisons=data["table_comparisons"],
            tables=[{"name": t.name, "alias": t.alias} for t in result.tables],
            error_message=data["error_message"],
            error_kind=data["error_kind"],
            sql_error=data["sql_error"],
        )


class CacheStatusResponse(BaseModel):
    """Schema name cache state."""
    enabled: bool
    expiration_minutes: float
    size: int
    last_refreshed: float | None = None
    age_minutes: float | None = None
    fresh: bool
    hits: int
    fetches: int
    failures: int


class HealthResponse(BaseModel):
    status: str
    gateway: str
    execution_enabled: bool
    cache: dict[str, Any]


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
