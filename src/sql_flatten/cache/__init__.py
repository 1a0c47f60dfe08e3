"""Schema name caching."""

from .table_names import SchemaFetchError, TableNameCache

__all__ = ["SchemaFetchError", "TableNameCache"]
