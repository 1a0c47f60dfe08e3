"""Base execution gateway interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..flatten.types import ErrorKind, RawResultSet, SqlErrorDetail


class GatewayError(Exception):
    """Base exception for gateway errors."""
    pass


class GatewayConnectionError(GatewayError):
    """Raised when the database cannot be reached."""
    pass


@dataclass(frozen=True)
class GatewayResult:
    """
    Result of executing a script.

    Engine errors, timeouts and connectivity failures are reported here
    with ``success=False`` rather than raised.
    """
    success: bool
    execution_time_ms: int = 0
    result_sets: list[RawResultSet] = field(default_factory=list)

    # Failure details
    error_message: str | None = None
    error_kind: ErrorKind | None = None
    sql_error: SqlErrorDetail | None = None


class ScriptGateway(ABC):
    """
    Abstract base class for database gateways.

    A gateway runs script text and reads the schema catalog. It never
    decides what to run; the flatten service supplies the script.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short gateway name for logs and health output."""
        ...

    @abstractmethod
    async def execute(self, script: str, timeout_seconds: int) -> GatewayResult:
        """
        Run ``script`` and collect every result set it produces, in order.

        Args:
            script: SQL text to run as a single batch
            timeout_seconds: Query timeout enforced by the driver

        Returns:
            GatewayResult, successful or not
        """
        ...

    @abstractmethod
    async def fetch_table_names(self) -> set[str]:
        """
        Return all base table names as ``SCHEMA.TABLE``.

        Raises:
            GatewayError: On fetch failure
        """
        ...

    async def health_check(self) -> bool:
        """
        Check if the database is reachable.

        Default returns True. Override for actual health checks.
        """
        return True
