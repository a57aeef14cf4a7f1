"""
Unit tests for settings, database URLs and pagination helpers.
"""

import pytest

from dynamiccrud.config import Settings
from dynamiccrud.database.connection import build_database_url, get_database_url, mask_url
from dynamiccrud.exceptions import ConfigurationError
from dynamiccrud.utils.pydal_helpers import PaginationParams


def make_settings(**kwargs):
    return Settings(_env_file=None, **kwargs)


@pytest.mark.unit
class TestDatabaseUrls:
    """Test build_database_url and get_database_url."""

    def test_mysql_url(self):
        settings = make_settings(db_type="mysql", db_host="db", db_name="shop", db_user="app", db_password="pw")
        assert build_database_url(settings) == "mysql://app:pw@db:3306/shop?set_encoding=utf8mb4"

    def test_postgresql_url_with_port(self):
        settings = make_settings(db_type="postgresql", db_host="pg", db_port=6543, db_name="shop", db_user="app", db_password="pw")
        assert build_database_url(settings) == "postgres://app:pw@pg:6543/shop"

    def test_sqlite_urls(self):
        assert build_database_url(make_settings(db_type="sqlite", db_name="shop")) == "sqlite://shop.sqlite"
        assert build_database_url(make_settings(db_type="sqlite", db_name=":memory:")) == "sqlite:memory"

    def test_unsupported_type(self):
        with pytest.raises(ConfigurationError, match="Unsupported DB_TYPE"):
            build_database_url(make_settings(db_type="oracle"))

    def test_database_url_takes_precedence_and_is_normalized(self):
        settings = make_settings(database_url="postgresql://u:p@h:5432/d", db_type="mysql")
        assert get_database_url(settings) == "postgres://u:p@h:5432/d"
        assert get_database_url(settings, for_system="raw") == "postgresql://u:p@h:5432/d"

    def test_mask_url(self):
        assert mask_url("mysql://app:pw@db:3306/shop") == "mysql://***"
        assert mask_url("sqlite:memory") == "sqlite:memory"


@pytest.mark.unit
class TestSettings:
    """Test Settings helpers."""

    def test_table_list(self):
        assert make_settings(tables=" users, posts ,,").table_list == ["users", "posts"]

    def test_log_format_validation(self):
        assert make_settings(log_format="JSON").log_format == "json"
        with pytest.raises(ValueError):
            make_settings(log_format="xml")


@pytest.mark.unit
class TestPaginationParams:
    """Test PaginationParams."""

    @pytest.mark.parametrize(
        "page,per_page,expected",
        [(1, 20, (1, 20)), (0, 20, (1, 20)), (-3, 5000, (1, 1000)), ("abc", "x", (1, 20)), (3, 0, (3, 1))],
    )
    def test_create_normalizes(self, page, per_page, expected):
        pagination = PaginationParams.create(page, per_page, max_per_page=1000)
        assert (pagination.page, pagination.per_page) == expected

    def test_limitby_and_pages(self):
        pagination = PaginationParams.create(3, 10)
        assert pagination.limitby == (20, 30)
        assert pagination.calculate_pages(25) == 3
        assert pagination.calculate_pages(0) == 0
