"""
Unit tests for SchemaAnalyzer caching.
"""

from unittest.mock import MagicMock

import pytest

from dynamiccrud.cache import MemoryCacheStrategy
from dynamiccrud.services.schema_analyzer import SchemaAnalyzer


@pytest.mark.unit
class TestSchemaAnalyzer:
    """Test SchemaAnalyzer."""

    @pytest.fixture
    def adapter(self, users_schema):
        adapter = MagicMock()
        adapter.get_table_schema.return_value = users_schema
        adapter.list_tables.return_value = ["users"]
        return adapter

    def test_schema_is_cached(self, mock_pydal_db, adapter, users_schema):
        """Test the catalog is only read once while the cache is warm."""
        cache = MemoryCacheStrategy()
        analyzer = SchemaAnalyzer(mock_pydal_db, cache=cache, cache_ttl=60, adapter=adapter)

        first = analyzer.get_table_schema("users")
        second = analyzer.get_table_schema("users")

        assert first == users_schema
        assert second == users_schema
        assert adapter.get_table_schema.call_count == 1
        assert cache.get("schema_users")["primary_key"] == "id"

    def test_without_cache_reads_catalog_every_time(self, mock_pydal_db, adapter):
        analyzer = SchemaAnalyzer(mock_pydal_db, adapter=adapter)
        analyzer.get_table_schema("users")
        analyzer.get_table_schema("users")
        assert adapter.get_table_schema.call_count == 2

    def test_invalidate_cache(self, mock_pydal_db, adapter):
        cache = MemoryCacheStrategy()
        analyzer = SchemaAnalyzer(mock_pydal_db, cache=cache, adapter=adapter)
        analyzer.get_table_schema("users")

        assert analyzer.invalidate_cache("users")
        analyzer.get_table_schema("users")
        assert adapter.get_table_schema.call_count == 2

    def test_invalidate_without_cache(self, mock_pydal_db, adapter):
        assert SchemaAnalyzer(mock_pydal_db, adapter=adapter).invalidate_cache("users") is False

    def test_list_tables(self, mock_pydal_db, adapter):
        assert SchemaAnalyzer(mock_pydal_db, adapter=adapter).list_tables() == ["users"]

    def test_adapter_detected_from_connection(self, mock_pydal_db):
        mock_pydal_db._adapter.dbengine = "postgres"
        analyzer = SchemaAnalyzer(mock_pydal_db)
        assert analyzer.adapter.engine == "postgres"

