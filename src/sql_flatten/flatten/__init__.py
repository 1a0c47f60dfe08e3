"""Flatten pipeline: extract table references, synthesize, assemble diffs."""

from .assembler import assemble, build_outcome
from .extractor import TableReferenceExtractor, find_candidates, resolve_references
from .synthesizer import synthesize
from .types import (
    TABLE_TAG_COLUMN,
    UNKNOWN_TABLE,
    ErrorKind,
    ExecutionOutcome,
    FlattenResult,
    RawResultSet,
    ResultSet,
    SqlErrorDetail,
    TableComparison,
    TableReference,
)

__all__ = [
    "assemble",
    "build_outcome",
    "TableReferenceExtractor",
    "find_candidates",
    "resolve_references",
    "synthesize",
    "TABLE_TAG_COLUMN",
    "UNKNOWN_TABLE",
    "ErrorKind",
    "ExecutionOutcome",
    "FlattenResult",
    "RawResultSet",
    "ResultSet",
    "SqlErrorDetail",
    "TableComparison",
    "TableReference",
]
