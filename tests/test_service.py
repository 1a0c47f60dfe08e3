"""Tests for the flatten service."""

import pytest

from sql_flatten.cache.table_names import SchemaFetchError
from sql_flatten.config import Config
from sql_flatten.flatten.synthesizer import BEGIN_STATEMENT, ROLLBACK_STATEMENT
from sql_flatten.flatten.types import ErrorKind, SqlErrorDetail, TableReference
from sql_flatten.gateway.base import GatewayResult
from sql_flatten.gateway.memory import InMemoryGateway
from sql_flatten.service import EmptyScriptError, ScriptFlattenService, require_script


UPDATE_SCRIPT = "UPDATE Customers SET Name='X' WHERE ID=1"


class ExplodingGateway(InMemoryGateway):
    async def execute(self, script, timeout_seconds):
        raise RuntimeError("socket closed")


class TestFlattenWithoutExecution:
    @pytest.mark.asyncio
    async def test_execute_false(self, service, gateway):
        result = await service.flatten(UPDATE_SCRIPT, execute=False)

        assert result.executed is False
        assert result.outcome.success is True
        assert result.outcome.execution_time_ms == 0
        assert result.outcome.table_comparisons == ()
        assert result.tables == (TableReference(name="CUSTOMERS", alias="temp1"),)
        assert result.script.startswith(BEGIN_STATEMENT)
        assert result.script.endswith(ROLLBACK_STATEMENT)
        assert UPDATE_SCRIPT in result.script
        assert gateway.scripts == []

    @pytest.mark.asyncio
    async def test_execution_disabled_by_config(self, cache, gateway):
        config = Config()
        config.execution.enabled = False
        service = ScriptFlattenService(cache=cache, gateway=gateway, config=config)

        result = await service.flatten(UPDATE_SCRIPT, execute=True)

        assert result.executed is False
        assert gateway.scripts == []

    @pytest.mark.asyncio
    async def test_render(self, service):
        script = await service.render(UPDATE_SCRIPT)
        assert "SELECT * INTO #temp1 FROM [CUSTOMERS];" in script

    @pytest.mark.asyncio
    async def test_no_known_tables(self, service):
        result = await service.flatten("SELECT * FROM cte_only", execute=False)

        assert result.tables == ()
        assert result.script == "BEGIN TRANSACTION;\nSELECT * FROM cte_only\nROLLBACK TRANSACTION;"


class TestFlattenWithExecution:
    @pytest.mark.asyncio
    async def test_changes_reported(self, cache, orders_change):
        gateway = InMemoryGateway(results=[orders_change])
        service = ScriptFlattenService(cache=cache, gateway=gateway)

        result = await service.flatten("UPDATE dbo.Orders SET STATUS = 'closed' WHERE ID = 1")

        assert result.executed is True
        assert result.outcome.success is True
        assert result.outcome.execution_time_ms == 42
        comparison = result.outcome.table_comparisons[0]
        assert comparison.table_name == "DBO.ORDERS"
        assert comparison.before.rows == [{"ID": 1, "STATUS": "open"}]
        assert comparison.after.rows == [{"ID": 1, "STATUS": "closed"}]

    @pytest.mark.asyncio
    async def test_gateway_receives_flattened_script(self, service, gateway):
        result = await service.flatten(UPDATE_SCRIPT)

        assert gateway.scripts == [result.script]
        assert result.outcome.success is True
        assert result.outcome.table_comparisons == ()

    @pytest.mark.asyncio
    async def test_sql_error(self, cache):
        gateway = InMemoryGateway(results=[GatewayResult(
            success=False,
            execution_time_ms=8,
            error_message="The DELETE statement conflicted with the REFERENCE constraint",
            error_kind=ErrorKind.SQL,
            sql_error=SqlErrorDetail(number=547, state=0, line_number=3),
        )])
        service = ScriptFlattenService(cache=cache, gateway=gateway)

        result = await service.flatten("DELETE FROM Customers WHERE ID = 1")

        assert result.executed is True
        assert result.outcome.success is False
        assert result.outcome.error_kind is ErrorKind.SQL
        assert result.outcome.sql_error.number == 547
        assert result.outcome.sql_error.line_number == 3

    @pytest.mark.asyncio
    async def test_gateway_exception_becomes_failure(self, cache):
        service = ScriptFlattenService(cache=cache, gateway=ExplodingGateway())

        result = await service.flatten(UPDATE_SCRIPT)

        assert result.executed is True
        assert result.outcome.success is False
        assert result.outcome.error_kind is ErrorKind.INFRASTRUCTURE
        assert result.outcome.error_message == "Execution failed: socket closed"


class TestBlankScripts:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("script", ["", "   ", "\n\t\n"])
    async def test_blank_script_without_execution(self, service, gateway, script):
        result = await service.flatten(script, execute=False)

        assert result.executed is False
        assert result.outcome.success is True
        assert result.outcome.execution_time_ms == 0
        assert result.outcome.table_comparisons == ()
        assert result.tables == ()
        assert gateway.table_fetches == 0

    @pytest.mark.parametrize("script", [None, "", "   ", "\n\t\n"])
    def test_require_script_rejects_blank(self, script):
        with pytest.raises(EmptyScriptError, match="Script cannot be empty"):
            require_script(script)

    def test_require_script_passes_text_through(self):
        assert require_script(" SELECT 1 ") == " SELECT 1 "


class TestFlattenErrors:
    @pytest.mark.asyncio
    async def test_schema_failure_propagates(self, service, gateway):
        gateway.fail_table_fetch = True

        with pytest.raises(SchemaFetchError):
            await service.flatten(UPDATE_SCRIPT)

        assert gateway.scripts == []

    @pytest.mark.asyncio
    async def test_catalog_loaded_once_across_requests(self, service, gateway):
        await service.flatten(UPDATE_SCRIPT, execute=False)
        await service.flatten("DELETE FROM dbo.Orders", execute=False)

        assert gateway.table_fetches == 1
