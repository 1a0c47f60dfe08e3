"""Flatten Script Synthesizer - wrap a script in snapshot, diff and rollback SQL.

The generated script has this shape::

    BEGIN TRANSACTION;
    SELECT * INTO #temp1 FROM [DBO].[CUSTOMERS];
    <original script>
    SELECT * INTO #temp1Dif FROM #temp1
     EXCEPT
     SELECT * FROM [DBO].[CUSTOMERS]
     IF (SELECT COUNT(*) FROM #temp1Dif) > 0
     BEGIN
    SELECT 'DBO.CUSTOMERS' AS __TableName__, * FROM #temp1Dif
    SELECT 'DBO.CUSTOMERS' AS __TableName__, * FROM [DBO].[CUSTOMERS] WHERE [ID] IN (SELECT [ID] FROM #temp1Dif)
     END

    ROLLBACK TRANSACTION;

The diff set holds snapshot rows the script changed or deleted. Each changed
table yields two tagged result sets: the diff set (before) and the live rows
whose ``ID`` appears in it (after). Rows the script only inserted are not in
the snapshot and are not reported. Unchanged tables yield nothing. Every
referenced table must have an ``ID`` column; a table without one fails when
the script runs.
"""

from __future__ import annotations

from typing import Mapping

from .types import TABLE_TAG_COLUMN, TableReference


BEGIN_STATEMENT = "BEGIN TRANSACTION;"
ROLLBACK_STATEMENT = "ROLLBACK TRANSACTION;"

IDENTITY_COLUMN = "ID"

NEWLINE = "\n"


def quote_identifier(name: str) -> str:
    """Bracket-quote each dot-separated part: ``DBO.ORDERS`` -> ``[DBO].[ORDERS]``."""
    return ".".join(f"[{part.replace(']', ']]')}]" for part in name.split("."))


def quote_literal(value: str) -> str:
    """Render ``value`` as a single-quoted SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


def snapshot_statement(ref: TableReference) -> str:
    return f"SELECT * INTO {ref.snapshot_table} FROM {quote_identifier(ref.name)};"


def difference_block(ref: TableReference) -> str:
    """Diff the snapshot against the live table and emit tagged rows when it changed."""
    table = quote_identifier(ref.name)
    tag = f"{quote_literal(ref.name)} AS {TABLE_TAG_COLUMN}"
    key = f"[{IDENTITY_COLUMN}]"

    lines = [
        f"SELECT * INTO {ref.diff_table} FROM {ref.snapshot_table}",
        " EXCEPT",
        f" SELECT * FROM {table}",
        f" IF (SELECT COUNT(*) FROM {ref.diff_table}) > 0",
        " BEGIN",
        f"SELECT {tag}, * FROM {ref.diff_table}",
        f"SELECT {tag}, * FROM {table} WHERE {key} IN (SELECT {key} FROM {ref.diff_table})",
        " END",
        "",
    ]
    return NEWLINE.join(lines) + NEWLINE


def synthesize(original_script: str, references: Mapping[str, str]) -> str:
    """
    Build the flatten script for ``original_script``.

    Args:
        original_script: The user's SQL, embedded verbatim
        references: Canonical table name -> alias, in emission order

    Returns:
        The complete flatten script. Output depends only on the inputs.
    """
    refs = [TableReference(name=name, alias=alias) for name, alias in references.items()]

    parts = [BEGIN_STATEMENT + NEWLINE]
    parts.extend(snapshot_statement(ref) + NEWLINE for ref in refs)
    parts.append(original_script + NEWLINE)
    parts.extend(difference_block(ref) for ref in refs)
    parts.append(ROLLBACK_STATEMENT)

    return "".join(parts)
