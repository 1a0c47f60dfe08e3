"""Microsoft SQL Server gateway."""

from __future__ import annotations

import asyncio
import base64
import logging
import re
import time
from typing import Any, Callable

from ..config import DatabaseConfig
from ..flatten.types import ErrorKind, RawResultSet, SqlErrorDetail
from .base import GatewayConnectionError, GatewayError, GatewayResult, ScriptGateway


logger = logging.getLogger(__name__)

TABLE_NAMES_QUERY = (
    "SELECT TABLE_SCHEMA + '.' + TABLE_NAME AS FullTableName "
    "FROM INFORMATION_SCHEMA.TABLES "
    "WHERE TABLE_TYPE = 'BASE TABLE'"
)

# DB-API exception classes raised for problems in the submitted SQL
ENGINE_ERROR_CLASSES = ("ProgrammingError", "IntegrityError", "DataError", "NotSupportedError")

# ODBC SQLSTATEs for query and login timeouts
TIMEOUT_SQLSTATES = frozenset({"HYT00", "HYT01"})

# "Msg 547, Level 16, State 0, Line 3" (sqlcmd / FreeTDS style)
_MSG_HEADER = re.compile(
    r"Msg\s+(\d+),\s*Level\s+\d+,\s*State\s+(\d+),\s*Line\s+(\d+)", re.IGNORECASE
)
# "... constraint. (547) (SQLExecDirectW)" (ODBC driver style)
_NATIVE_ERROR = re.compile(r"\((\d+)\)\s*\(SQL\w+\)")
_LINE_NUMBER = re.compile(r"\bLine\s+(\d+)", re.IGNORECASE)


def build_connection_string(config: DatabaseConfig) -> str:
    """Build an ODBC connection string from database config."""
    if config.connection_string:
        return config.connection_string

    if not config.server:
        raise GatewayError("Either 'connection_string' or 'server' required")

    conn_str = f"DRIVER={{{config.driver}}};SERVER={config.server}"

    if config.database:
        conn_str += f";DATABASE={config.database}"

    # Auth
    if config.trusted_connection:
        conn_str += ";Trusted_Connection=yes"
    elif config.user and config.password:
        conn_str += f";UID={config.user};PWD={config.password}"

    return conn_str


def parse_sql_error(exc: BaseException) -> SqlErrorDetail | None:
    """
    Recover error number, state and line from a driver exception.

    Returns None when the message carries no native error number.
    """
    message = " ".join(str(arg) for arg in exc.args) if exc.args else str(exc)

    header = _MSG_HEADER.search(message)
    if header:
        number, state, line = (int(g) for g in header.groups())
        return SqlErrorDetail(number=number, state=state, line_number=line)

    native = _NATIVE_ERROR.findall(message)
    if not native:
        return None

    line = _LINE_NUMBER.search(message)
    return SqlErrorDetail(
        number=int(native[0]),
        state=0,
        line_number=int(line.group(1)) if line else 0,
    )


def _sqlstate(exc: BaseException) -> str | None:
    if exc.args and isinstance(exc.args[0], str) and len(exc.args) > 1:
        return exc.args[0]
    return None


def _error_text(exc: BaseException) -> str:
    """Driver message without the leading SQLSTATE argument."""
    if len(exc.args) > 1:
        return str(exc.args[1])
    return str(exc)


def _is_engine_error(exc: BaseException) -> bool:
    return any(cls.__name__ in ENGINE_ERROR_CLASSES for cls in type(exc).__mro__)


def _normalize_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


class MssqlGateway(ScriptGateway):
    """
    Gateway for Microsoft SQL Server over ODBC.

    Config (DatabaseConfig):
        connection_string: Full ODBC connection string
        # OR individual params:
        server / database / driver
        trusted_connection or user/password

        connect_retries: Extra connection attempts on transient failures
        retry_delay_seconds: Pause between connection attempts

    The script runs with autocommit enabled so its own
    BEGIN/ROLLBACK TRANSACTION is the only transaction in play.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        driver: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            config: Database connection settings
            driver: DB-API module to connect with (defaults to pyodbc)
            sleep: Delay function between connection retries
        """
        self._config = config
        self._driver = driver
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "mssql"

    def _get_driver(self) -> Any:
        if self._driver is None:
            try:
                import pyodbc
            except ImportError:
                raise GatewayError("pyodbc required: pip install pyodbc")
            self._driver = pyodbc
        return self._driver

    def _connect(self) -> Any:
        driver = self._get_driver()
        conn_str = build_connection_string(self._config)
        transient = (driver.OperationalError, driver.InterfaceError)
        attempts = max(0, self._config.connect_retries) + 1

        for attempt in range(1, attempts + 1):
            try:
                return driver.connect(conn_str, autocommit=True)
            except transient as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Connection attempt {attempt}/{attempts} failed, "
                    f"retrying in {self._config.retry_delay_seconds}s: {e}"
                )
                self._sleep(self._config.retry_delay_seconds)

        raise GatewayConnectionError("No connection attempts made")

    async def execute(self, script: str, timeout_seconds: int) -> GatewayResult:
        return await asyncio.to_thread(self._execute_sync, script, timeout_seconds)

    def _execute_sync(self, script: str, timeout_seconds: int) -> GatewayResult:
        start = time.perf_counter()
        result_sets: list[RawResultSet] = []

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start) * 1000)

        logger.info(f"Executing SQL script with timeout of {timeout_seconds} seconds")

        try:
            conn = self._connect()
            try:
                conn.timeout = timeout_seconds
                cursor = conn.cursor()
                cursor.execute(script)

                while True:
                    # Statements without a result (row counts) have no description
                    if cursor.description is not None:
                        columns = [desc[0] for desc in cursor.description]
                        rows = [
                            {col: _normalize_value(val) for col, val in zip(columns, row)}
                            for row in cursor.fetchall()
                        ]
                        result_sets.append(
                            RawResultSet(index=len(result_sets), columns=columns, rows=rows)
                        )
                    if not cursor.nextset():
                        break

                cursor.close()
            finally:
                conn.close()

        except GatewayError as e:
            logger.error(f"Gateway misconfigured: {e}")
            return GatewayResult(
                success=False,
                execution_time_ms=elapsed_ms(),
                error_message=f"Unexpected error: {e}",
                error_kind=ErrorKind.INFRASTRUCTURE,
            )
        except Exception as e:
            return self._failure(e, elapsed_ms())

        execution_ms = elapsed_ms()
        logger.info(
            f"Script execution completed successfully in {execution_ms}ms "
            f"with {len(result_sets)} result sets"
        )
        return GatewayResult(
            success=True,
            execution_time_ms=execution_ms,
            result_sets=result_sets,
        )

    def _failure(self, exc: Exception, execution_ms: int) -> GatewayResult:
        """Classify a driver exception into a failed result."""
        if _sqlstate(exc) in TIMEOUT_SQLSTATES:
            logger.error(f"Script execution timed out after {execution_ms}ms: {exc}")
            return GatewayResult(
                success=False,
                execution_time_ms=execution_ms,
                error_message=f"Timeout: {_error_text(exc)}",
                error_kind=ErrorKind.TIMEOUT,
            )

        if _is_engine_error(exc):
            sql_error = parse_sql_error(exc)
            if sql_error:
                logger.warning(
                    f"SQL error during script execution: Error {sql_error.number}, "
                    f"State {sql_error.state}, Line {sql_error.line_number}"
                )
            else:
                logger.warning(f"SQL error during script execution: {exc}")
            return GatewayResult(
                success=False,
                execution_time_ms=execution_ms,
                error_message=_error_text(exc),
                error_kind=ErrorKind.SQL,
                sql_error=sql_error,
            )

        logger.exception("Unexpected error during script execution")
        return GatewayResult(
            success=False,
            execution_time_ms=execution_ms,
            error_message=f"Unexpected error: {exc}",
            error_kind=ErrorKind.INFRASTRUCTURE,
        )

    async def fetch_table_names(self) -> set[str]:
        return await asyncio.to_thread(self._fetch_table_names_sync)

    def _fetch_table_names_sync(self) -> set[str]:
        logger.info("Fetching all table names from database schema")
        try:
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute(TABLE_NAMES_QUERY)
                names = {row[0] for row in cursor.fetchall()}
                cursor.close()
            finally:
                conn.close()
        except GatewayError:
            raise
        except Exception as e:
            raise GatewayConnectionError(f"MSSQL schema query failed: {e}") from e

        logger.info(f"Retrieved {len(names)} table names from schema")
        return names

    async def health_check(self) -> bool:
        return await asyncio.to_thread(self._health_check_sync)

    def _health_check_sync(self) -> bool:
        try:
            conn = self._connect()
            try:
                conn.cursor().execute("SELECT 1")
            finally:
                conn.close()
            return True
        except Exception as e:
            logger.warning(f"MSSQL health check failed: {e}")
            return False
