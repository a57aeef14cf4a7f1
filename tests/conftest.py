"""Pytest configuration and fixtures for dynamiccrud tests.

Unit tests use hand-built schemas and mocks. Integration tests run against
a SQLite database created in a temporary directory; tables are created
with raw SQL so they are introspected exactly like an existing database.
"""

from unittest.mock import MagicMock

import pytest
from pydal import DAL

from dynamiccrud.config import Settings
from dynamiccrud.models.dataclasses import ColumnSchema, TableSchema

SCHEMA_SQL = [
    """
    CREATE TABLE categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(100) NOT NULL
    )
    """,
    """
    CREATE TABLE products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(100) NOT NULL,
        description TEXT,
        price DECIMAL(10,2) NOT NULL,
        stock INTEGER NOT NULL DEFAULT 0,
        active BOOLEAN NOT NULL DEFAULT 1,
        released DATE,
        category_id INTEGER REFERENCES categories(id)
    )
    """,
    """
    CREATE TABLE documents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title VARCHAR(100) NOT NULL,
        attachment VARCHAR(255)
    )
    """,
    """
    CREATE TABLE audit_log (
        message TEXT
    )
    """,
]


@pytest.fixture
def db(tmp_path):
    """
    SQLite database with the test tables.

    Yields:
        PyDAL db instance
    """
    database = DAL("sqlite://test.sqlite", folder=str(tmp_path))
    for statement in SCHEMA_SQL:
        database.executesql(statement)
    database.commit()

    yield database

    database.close()


@pytest.fixture
def settings(tmp_path):
    """Settings for an app backed by the test database."""
    return Settings(
        _env_file=None,
        environment="testing",
        secret_key="test-secret-key-for-testing-only",
        csrf_enabled=False,
        db_type="sqlite",
        db_folder=str(tmp_path),
        cache_backend="memory",
        upload_dir=str(tmp_path / "uploads"),
        tables="categories,products,documents",
        log_level="WARNING",
    )


@pytest.fixture
def app(settings, db):
    """
    Create Flask application for testing.

    Returns:
        Flask app configured for testing
    """
    from dynamiccrud.main import create_app

    app = create_app(settings, db=db)
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def users_schema():
    """
    Hand-built schema of a ``users`` table covering every column family.

    Returns:
        TableSchema
    """
    return TableSchema(
        table="users",
        primary_key="id",
        columns=[
            ColumnSchema(name="id", sql_type="int", column_type="int(11)", is_nullable=False, is_primary=True, is_auto_increment=True),
            ColumnSchema(name="name", sql_type="varchar", column_type="varchar(50)", is_nullable=False, max_length=50),
            ColumnSchema(
                name="email",
                sql_type="varchar",
                column_type="varchar(255)",
                is_nullable=False,
                max_length=255,
                metadata={"type": "email", "label": "E-mail", "placeholder": "you@example.com"},
            ),
            ColumnSchema(name="age", sql_type="int", column_type="int(11)", metadata={"min": 18, "max": 120}),
            ColumnSchema(name="price", sql_type="decimal", column_type="decimal(10,2)", numeric_precision=10, numeric_scale=2),
            ColumnSchema(
                name="status",
                sql_type="enum",
                column_type="enum('active','inactive')",
                is_nullable=False,
                default="active",
                enum_values=["active", "inactive"],
            ),
            ColumnSchema(name="is_admin", sql_type="tinyint", column_type="tinyint(1)", is_nullable=False, default="0"),
            ColumnSchema(name="website", sql_type="varchar", column_type="varchar(255)", max_length=255, metadata={"type": "url"}),
            ColumnSchema(name="bio", sql_type="text", column_type="text", metadata={"tooltip": "A few words about you"}),
            ColumnSchema(name="settings", sql_type="json", column_type="json"),
            ColumnSchema(name="birthday", sql_type="date", column_type="date"),
            ColumnSchema(
                name="username",
                sql_type="varchar",
                column_type="varchar(20)",
                max_length=20,
                metadata={"minlength": 3, "pattern": "[a-z0-9_]+", "error_message": "Username must be lowercase letters, digits or _"},
            ),
        ],
        metadata={"display_name": "Members"},
    )


@pytest.fixture
def mock_pydal_db():
    """
    Create a mock PyDAL database for unit tests.

    Returns:
        MagicMock configured as a PyDAL db
    """
    db = MagicMock()
    db.tables = []
    db.commit = MagicMock()
    db.rollback = MagicMock()
    return db


# Markers for test categories
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (SQLite database)"
    )
