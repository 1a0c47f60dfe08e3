"""Configuration for the script flatten service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path


logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SQL_FLATTEN_CONFIG"
CONNECTION_STRING_ENV = "SQL_FLATTEN_CONNECTION_STRING"
DEFAULT_CONFIG_FILE = "config.yaml"


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8060
    reload: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Either ``connection_string`` or ``server`` must be set for the
    ``mssql`` gateway. The ``memory`` gateway ignores the connection
    settings and serves ``memory_tables`` as its schema catalog.
    """
    gateway: str = "mssql"  # mssql | memory

    connection_string: str | None = None
    driver: str = "ODBC Driver 17 for SQL Server"
    server: str | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = None
    trusted_connection: bool = False

    # Connection establishment retries
    connect_retries: int = 3
    retry_delay_seconds: float = 1.0

    memory_tables: list[str] = field(default_factory=list)


@dataclass
class TableCacheConfig:
    """Schema name cache configuration."""
    enabled: bool = True
    expiration_minutes: int = 60


@dataclass
class ExecutionConfig:
    """Flatten script execution configuration."""
    enabled: bool = True
    timeout_seconds: int = 300


@dataclass
class FlattenConfig:
    """Table reference resolution options."""
    # Schema tried for unqualified table names (None = exact match only)
    default_schema: str | None = "dbo"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    table_cache: TableCacheConfig = field(default_factory=TableCacheConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    flatten: FlattenConfig = field(default_factory=FlattenConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            server=ServerConfig(**data.get("server", {})),
            database=DatabaseConfig(**data.get("database", {})),
            table_cache=TableCacheConfig(**data.get("table_cache", {})),
            execution=ExecutionConfig(**data.get("execution", {})),
            flatten=FlattenConfig(**data.get("flatten", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


def load_config(path: str | None = None) -> Config:
    """
    Resolve and load the service configuration.

    Lookup order: explicit ``path``, then ``$SQL_FLATTEN_CONFIG``, then
    ``config.yaml`` in the working directory, then built-in defaults.
    ``$SQL_FLATTEN_CONNECTION_STRING`` overrides the configured connection
    string so secrets can stay out of the config file.
    """
    config_path = path or os.environ.get(CONFIG_PATH_ENV)
    if not config_path and Path(DEFAULT_CONFIG_FILE).exists():
        config_path = DEFAULT_CONFIG_FILE

    if config_path:
        if config_path.endswith(".json"):
            config = Config.from_json(config_path)
        else:
            config = Config.from_yaml(config_path)
        logger.info(f"Loaded config from {config_path}")
    else:
        config = Config()
        logger.info("No config file found, using defaults")

    conn_str = os.environ.get(CONNECTION_STRING_ENV)
    if conn_str:
        config.database.connection_string = conn_str

    return config
