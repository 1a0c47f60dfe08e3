"""In-memory gateway for demos and tests."""

from __future__ import annotations

from typing import Callable, Iterable

from .base import GatewayConnectionError, GatewayResult, ScriptGateway


class InMemoryGateway(ScriptGateway):
    """
    Gateway that never touches a database.

    Config:
        tables: Names served as the schema catalog
        results: GatewayResults returned by successive ``execute`` calls,
            or a callable computing one from the script text

    With no scripted results, every execution succeeds with no result
    sets (i.e. the script changed nothing). Executed scripts are kept in
    ``scripts`` for inspection.
    """

    def __init__(
        self,
        tables: Iterable[str] = (),
        results: Iterable[GatewayResult] | Callable[[str], GatewayResult] | None = None,
    ):
        self.tables = set(tables)
        self.scripts: list[str] = []
        self.table_fetches = 0
        self.fail_table_fetch = False

        if callable(results):
            self._responder = results
            self._queue: list[GatewayResult] = []
        else:
            self._responder = None
            self._queue = list(results or [])

    @property
    def name(self) -> str:
        return "memory"

    async def execute(self, script: str, timeout_seconds: int) -> GatewayResult:
        self.scripts.append(script)
        if self._responder is not None:
            return self._responder(script)
        if self._queue:
            return self._queue.pop(0)
        return GatewayResult(success=True)

    async def fetch_table_names(self) -> set[str]:
        self.table_fetches += 1
        if self.fail_table_fetch:
            raise GatewayConnectionError("In-memory schema source unavailable")
        return set(self.tables)
