"""Schema Analyzer - cached table introspection.

Reads a table's columns, keys, foreign keys and JSON comment metadata
through the engine's catalog adapter and keeps the result in a cache
strategy so repeated form renders do not hit the catalog.
"""

# flake8: noqa: E501


from typing import List, Optional

from dynamiccrud.cache import CacheStrategy
from dynamiccrud.database.adapters import DatabaseAdapter, detect_adapter
from dynamiccrud.logging_config import get_logger
from dynamiccrud.models.dataclasses import TableSchema

logger = get_logger(__name__)


class SchemaAnalyzer:
    """Service for reading (and caching) table schemas."""

    CACHE_PREFIX = "schema_"

    def __init__(
        self,
        db,
        cache: Optional[CacheStrategy] = None,
        cache_ttl: int = 3600,
        adapter: Optional[DatabaseAdapter] = None,
    ):
        """
        Initialize analyzer.

        Args:
            db: Connected PyDAL instance
            cache: Cache strategy, or None to always read the catalog
            cache_ttl: Seconds a cached schema stays valid
            adapter: Catalog adapter (detected from the connection if omitted)
        """
        self.db = db
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.adapter = adapter or detect_adapter(db)

    def _cache_key(self, table: str) -> str:
        return f"{self.CACHE_PREFIX}{table}"

    def get_table_schema(self, table: str) -> TableSchema:
        """
        Get the schema of a table, from the cache when possible.

        Args:
            table: Table name

        Returns:
            TableSchema

        Raises:
            SchemaError: If the table does not exist or has no primary key
        """
        key = self._cache_key(table)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("schema_cache_hit", table=table)
                return TableSchema.from_dict(cached)

        schema = self.adapter.get_table_schema(table)

        if self.cache is not None:
            self.cache.set(key, schema.to_dict(), self.cache_ttl)
            logger.debug("schema_cached", table=table, ttl=self.cache_ttl)
        return schema

    def invalidate_cache(self, table: str) -> bool:
        """
        Drop the cached schema of a table.

        Returns:
            False when no cache is configured, otherwise the cache's answer
        """
        if self.cache is None:
            return False
        removed = self.cache.invalidate(self._cache_key(table))
        logger.info("schema_cache_invalidated", table=table, removed=removed)
        return removed

    def list_tables(self) -> List[str]:
        """List the tables of the connected database."""
        return self.adapter.list_tables()
