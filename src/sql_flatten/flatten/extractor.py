"""Table Reference Extractor - find the real tables a SQL script touches."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from ..cache.table_names import TableNameCache


logger = logging.getLogger(__name__)

# Identifier part: [bracketed], "quoted" or bare word
_IDENTIFIER_PART = r'(?:\[[^\]]+\]|"[^"]+"|\w+)'

# A table-like token following a verb that introduces a table reference,
# optionally schema-qualified with a single dot
TABLE_REFERENCE_PATTERN = re.compile(
    r'\b(?:FROM|JOIN|INTO|UPDATE|DELETE\s+FROM)\s+'
    r'(' + _IDENTIFIER_PART + r'(?:\.' + _IDENTIFIER_PART + r')?)',
    re.IGNORECASE,
)

ALIAS_PREFIX = "temp"


def strip_delimiters(identifier: str) -> str:
    """Remove bracket and double-quote delimiters from an identifier."""
    return identifier.replace("[", "").replace("]", "").replace('"', "")


def find_candidates(script: str) -> list[str]:
    """
    Return every table-like token in ``script``, delimiters stripped.

    Candidates are in script order and may repeat; most of them are
    aliases, CTE names or functions until checked against the catalog.
    """
    if not script:
        return []
    return [
        strip_delimiters(match.group(1))
        for match in TABLE_REFERENCE_PATTERN.finditer(script)
    ]


def resolve_references(
    candidates: Iterable[str],
    names: frozenset[str] | set[str],
    default_schema: str | None = None,
) -> dict[str, str]:
    """
    Filter candidates against the known table names and assign aliases.

    Args:
        candidates: Tokens from :func:`find_candidates`
        names: Uppercased table names from the schema catalog
        default_schema: Schema to try for unqualified candidates that do
            not match as written

    Returns:
        Canonical (uppercased) table name -> ``tempN`` alias, in order of
        first appearance. Repeats keep their first alias.
    """
    references: dict[str, str] = {}
    schema_prefix = f"{default_schema.upper()}." if default_schema else None

    for candidate in candidates:
        canonical = candidate.upper()
        if canonical not in names:
            if schema_prefix is None or "." in canonical:
                continue
            canonical = schema_prefix + canonical
            if canonical not in names:
                continue

        if canonical not in references:
            references[canonical] = f"{ALIAS_PREFIX}{len(references) + 1}"

    return references


class TableReferenceExtractor:
    """Extracts real table references from a script using the schema cache."""

    def __init__(self, cache: TableNameCache, default_schema: str | None = "dbo"):
        self._cache = cache
        self._default_schema = default_schema

    async def extract(self, script: str) -> dict[str, str]:
        """
        Map each real table referenced in ``script`` to its snapshot alias.

        Raises:
            SchemaFetchError: If the table catalog cannot be loaded
        """
        candidates = find_candidates(script)
        if not candidates:
            return {}

        names = await self._cache.get_names()
        references = resolve_references(candidates, names, self._default_schema)

        logger.debug(
            f"Matched {len(references)} of {len(candidates)} candidate table tokens"
        )
        return references
