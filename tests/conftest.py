"""Shared test fixtures for the script flatten service."""

import pytest

from sql_flatten.cache.table_names import TableNameCache
from sql_flatten.config import Config
from sql_flatten.flatten.types import TABLE_TAG_COLUMN, RawResultSet
from sql_flatten.gateway.base import GatewayResult
from sql_flatten.gateway.memory import InMemoryGateway
from sql_flatten.service import ScriptFlattenService


CATALOG = {"dbo.Customers", "dbo.Orders", "sales.Invoices", "CUSTOMERS"}


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_minutes(self, minutes: float) -> None:
        self.now += minutes * 60


def tagged(index: int, table: str, rows: list[dict]) -> RawResultSet:
    """Result set shaped like a flatten difference block output."""
    columns = [TABLE_TAG_COLUMN] + (list(rows[0].keys()) if rows else ["ID"])
    return RawResultSet(
        index=index,
        columns=columns,
        rows=[{TABLE_TAG_COLUMN: table, **row} for row in rows],
    )


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def config() -> Config:
    """Default test configuration."""
    return Config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> InMemoryGateway:
    """In-memory gateway serving the test catalog."""
    return InMemoryGateway(tables=CATALOG)


@pytest.fixture
def cache(gateway, clock) -> TableNameCache:
    return TableNameCache(loader=gateway.fetch_table_names, expiration_minutes=60, clock=clock)


@pytest.fixture
def service(cache, gateway, config) -> ScriptFlattenService:
    return ScriptFlattenService(cache=cache, gateway=gateway, config=config)


@pytest.fixture
def orders_change() -> GatewayResult:
    """Gateway result for a script that changed one ORDERS row."""
    return GatewayResult(
        success=True,
        execution_time_ms=42,
        result_sets=[
            tagged(0, "DBO.ORDERS", [{"ID": 1, "STATUS": "open"}]),
            tagged(1, "DBO.ORDERS", [{"ID": 1, "STATUS": "closed"}]),
        ],
    )
