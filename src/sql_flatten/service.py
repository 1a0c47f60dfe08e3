"""Core service layer - flatten a script, optionally run it, report the diff.

Flow:
1. Find the real tables the script references (schema cache filters noise)
2. Synthesize snapshot + script + diff + rollback SQL
3. Run it through the gateway (if execution is requested and enabled)
4. Assemble the returned result sets into per-table comparisons

Nothing the script does is persisted: the flatten script always ends in
ROLLBACK TRANSACTION.
"""

from __future__ import annotations

import logging

from .cache.table_names import TableNameCache
from .config import Config
from .flatten.assembler import build_outcome
from .flatten.extractor import TableReferenceExtractor
from .flatten.synthesizer import synthesize
from .flatten.types import ErrorKind, ExecutionOutcome, FlattenResult, TableReference
from .gateway.base import ScriptGateway


logger = logging.getLogger(__name__)


class FlattenError(Exception):
    """Base class for flatten service errors."""
    pass


class InvalidScriptError(FlattenError, ValueError):
    """Raised when a submitted script cannot be accepted."""
    pass


class EmptyScriptError(InvalidScriptError):
    """Raised when the submitted script is empty or whitespace."""
    pass


def require_script(script: str | None) -> str:
    """
    Return ``script`` if it has any non-whitespace content.

    Raises:
        EmptyScriptError: If the script is missing or blank
    """
    if not script or not script.strip():
        raise EmptyScriptError("Script cannot be empty")
    return script


class ScriptFlattenService:
    """
    Flattens SQL scripts into safe, rolled-back change previews.

    Schema cache failures propagate to the caller, since an empty catalog
    would silently disable all diffing. Execution and result problems are
    returned as a failed ExecutionOutcome instead of raised.
    """

    def __init__(
        self,
        cache: TableNameCache,
        gateway: ScriptGateway,
        config: Config | None = None,
    ):
        self.config = config or Config()
        self.cache = cache
        self.gateway = gateway
        self.extractor = TableReferenceExtractor(
            cache, default_schema=self.config.flatten.default_schema,
        )

    @property
    def execution_enabled(self) -> bool:
        return self.config.execution.enabled

    async def flatten(self, script: str, execute: bool = True) -> FlattenResult:
        """
        Flatten ``script`` and, when allowed, execute it.

        Args:
            script: Arbitrary SQL text
            execute: Whether to run the flatten script

        Returns:
            FlattenResult; ``executed`` is False when execution was not
            requested or is disabled by configuration. A blank script
            flattens to a bare BEGIN/ROLLBACK pair.

        Raises:
            SchemaFetchError: If the table catalog cannot be loaded
        """
        logger.info("Starting script flattening process")

        references = await self.extractor.extract(script)
        logger.info(f"Found {len(references)} unique tables in script")

        flattened = synthesize(script, references)
        tables = tuple(TableReference(name=name, alias=alias) for name, alias in references.items())

        should_execute = execute and self.execution_enabled
        if not should_execute:
            logger.info(
                f"Script execution skipped (execute={execute}, enabled={self.execution_enabled})"
            )
            return FlattenResult(
                executed=False,
                outcome=ExecutionOutcome.skipped(),
                script=flattened,
                tables=tables,
            )

        logger.info("Executing flattened script")
        try:
            result = await self.gateway.execute(flattened, self.config.execution.timeout_seconds)
        except Exception as e:
            logger.exception("Error executing script")
            return FlattenResult(
                executed=True,
                outcome=ExecutionOutcome.failed(
                    message=f"Execution failed: {e}",
                    kind=ErrorKind.INFRASTRUCTURE,
                ),
                script=flattened,
                tables=tables,
            )

        outcome = build_outcome(result)
        if outcome.success:
            logger.info(
                f"Script executed in {outcome.execution_time_ms}ms, "
                f"{len(outcome.table_comparisons)} tables changed"
            )
        else:
            logger.warning(f"Script execution failed: {outcome.error_message}")

        return FlattenResult(executed=True, outcome=outcome, script=flattened, tables=tables)

    async def render(self, script: str) -> str:
        """Return the flatten script for ``script`` without running it."""
        result = await self.flatten(script, execute=False)
        return result.script
