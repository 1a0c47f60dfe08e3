"""Data model for the flatten pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# Literal column injected into every diff result set
TABLE_TAG_COLUMN = "__TableName__"

# Label used when a result set pair carries no readable tag
UNKNOWN_TABLE = "Unknown"

Row = dict[str, Any]


class ErrorKind(str, Enum):
    """Why an execution failed."""
    SQL = "sql"                        # Engine rejected the script
    TIMEOUT = "timeout"                # Gateway timeout elapsed
    INFRASTRUCTURE = "infrastructure"  # Connectivity or unexpected failure
    PARSE = "parse"                    # Result sets could not be assembled


@dataclass(frozen=True)
class TableReference:
    """A real table found in a script, with its snapshot alias."""
    name: str   # Canonical, uppercased (e.g. DBO.CUSTOMERS)
    alias: str  # temp1, temp2, ...

    @property
    def snapshot_table(self) -> str:
        return f"#{self.alias}"

    @property
    def diff_table(self) -> str:
        return f"#{self.alias}Dif"


@dataclass
class RawResultSet:
    """One result set exactly as the execution gateway returned it."""
    index: int
    columns: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)


@dataclass
class ResultSet:
    """A result set with the tag column removed."""
    name: str
    columns: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "columns": self.columns, "rows": self.rows}


@dataclass
class TableComparison:
    """Before/after rows for one table changed by the script."""
    table_name: str
    before: ResultSet | None = None
    after: ResultSet | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "before": self.before.to_dict() if self.before else None,
            "after": self.after.to_dict() if self.after else None,
        }


@dataclass(frozen=True)
class SqlErrorDetail:
    """Structured error reported by the database engine."""
    number: int
    state: int = 0
    line_number: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "number": self.number,
            "state": self.state,
            "line_number": self.line_number,
        }


@dataclass(frozen=True)
class ExecutionOutcome:
    """
    Terminal result of running a flatten script.

    Failures are data here, not exceptions: SQL errors, timeouts and
    malformed results all produce ``success=False`` with a message.
    """
    success: bool
    execution_time_ms: int = 0
    error_message: str | None = None
    error_kind: ErrorKind | None = None
    sql_error: SqlErrorDetail | None = None
    table_comparisons: tuple[TableComparison, ...] = ()

    @classmethod
    def skipped(cls) -> ExecutionOutcome:
        """Outcome for a flatten that was not executed."""
        return cls(success=True, execution_time_ms=0)

    @classmethod
    def failed(
        cls,
        message: str,
        kind: ErrorKind,
        execution_time_ms: int = 0,
        sql_error: SqlErrorDetail | None = None,
    ) -> ExecutionOutcome:
        return cls(
            success=False,
            execution_time_ms=execution_time_ms,
            error_message=message,
            error_kind=kind,
            sql_error=sql_error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "execution_time_ms": self.execution_time_ms,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "sql_error": self.sql_error.to_dict() if self.sql_error else None,
            "table_comparisons": [c.to_dict() for c in self.table_comparisons],
        }


@dataclass(frozen=True)
class FlattenResult:
    """What a flatten request produced."""
    executed: bool
    outcome: ExecutionOutcome
    script: str
    tables: tuple[TableReference, ...] = ()
