"""Result Diff Assembler - regroup raw result sets into per-table comparisons.

The flatten script emits two tagged result sets per changed table, in the
order the tables were referenced: the snapshot rows (before) and the
changed live rows (after). Unchanged tables emit nothing, so the k-th pair
belongs to the k-th *changed* table and the tag column is the only way to
recover which one.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

from .types import (
    TABLE_TAG_COLUMN,
    UNKNOWN_TABLE,
    ErrorKind,
    ExecutionOutcome,
    RawResultSet,
    ResultSet,
    TableComparison,
)

if TYPE_CHECKING:
    from ..gateway.base import GatewayResult


logger = logging.getLogger(__name__)

BEFORE_PREFIX = "Before"
AFTER_PREFIX = "After"


def is_tagged(raw: RawResultSet) -> bool:
    """True if the result set came from a flatten difference block."""
    if TABLE_TAG_COLUMN in raw.columns:
        return True
    return bool(raw.rows) and TABLE_TAG_COLUMN in raw.rows[0]


def read_table_tag(*result_sets: RawResultSet | None) -> str:
    """
    Table name from the first row carrying a tag, else ``Unknown``.

    An empty before set does not hide the name when the after set still
    has a tagged row.
    """
    for raw in result_sets:
        if raw is None or not raw.rows:
            continue
        value = raw.rows[0].get(TABLE_TAG_COLUMN)
        if value is not None:
            return str(value)
    return UNKNOWN_TABLE


def strip_tag(raw: RawResultSet, prefix: str) -> ResultSet:
    """Copy ``raw`` without the tag column, named ``<prefix>_<index>``."""
    columns = [col for col in raw.columns if col != TABLE_TAG_COLUMN]
    rows = [
        {key: value for key, value in row.items() if key != TABLE_TAG_COLUMN}
        for row in raw.rows
    ]
    return ResultSet(name=f"{prefix}_{raw.index}", columns=columns, rows=rows)


def assemble(raw_result_sets: Sequence[RawResultSet]) -> list[TableComparison]:
    """
    Pair tagged result sets into one comparison per changed table.

    Untagged result sets (e.g. a SELECT in the user's own script) are
    skipped before pairing. A trailing unpaired set yields a comparison
    with no ``after`` side.
    """
    tagged = [raw for raw in raw_result_sets if is_tagged(raw)]

    skipped = len(raw_result_sets) - len(tagged)
    if skipped:
        logger.debug(f"Skipped {skipped} untagged result sets from the original script")

    comparisons: list[TableComparison] = []
    for i in range(0, len(tagged), 2):
        before_raw = tagged[i]
        after_raw = tagged[i + 1] if i + 1 < len(tagged) else None

        comparisons.append(TableComparison(
            table_name=read_table_tag(before_raw, after_raw),
            before=strip_tag(before_raw, BEFORE_PREFIX),
            after=strip_tag(after_raw, AFTER_PREFIX) if after_raw is not None else None,
        ))

    return comparisons


def build_outcome(result: GatewayResult | Any) -> ExecutionOutcome:
    """
    Turn a gateway result into the final execution outcome.

    Never raises: a result that cannot be assembled becomes a failed
    outcome describing what went wrong.
    """
    execution_ms = 0
    try:
        execution_ms = int(result.execution_time_ms)

        if not result.success:
            return ExecutionOutcome.failed(
                message=result.error_message or "Script execution failed",
                kind=result.error_kind or ErrorKind.SQL,
                execution_time_ms=execution_ms,
                sql_error=result.sql_error,
            )

        comparisons = assemble(result.result_sets or [])
        return ExecutionOutcome(
            success=True,
            execution_time_ms=execution_ms,
            table_comparisons=tuple(comparisons),
        )

    except Exception as e:
        logger.exception("Error parsing gateway result")
        return ExecutionOutcome.failed(
            message=f"Error parsing results: {e}",
            kind=ErrorKind.PARSE,
            execution_time_ms=execution_ms,
        )
