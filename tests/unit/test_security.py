"""
Unit tests for SecurityModule.
"""

import pytest
from flask import Flask
from werkzeug.datastructures import MultiDict

from dynamiccrud.models.dataclasses import ColumnSchema, TableSchema
from dynamiccrud.services.security import SecurityModule, clean_string


@pytest.fixture
def flask_app():
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "test-secret"
    return app


@pytest.mark.unit
class TestCsrf:
    """Test CSRF token generation and validation."""

    def test_generated_token_validates(self, flask_app):
        security = SecurityModule()
        with flask_app.test_request_context():
            token = security.generate_csrf_token()
            assert token
            assert security.validate_csrf_token(token)

    def test_wrong_or_missing_token_fails(self, flask_app):
        security = SecurityModule()
        with flask_app.test_request_context():
            security.generate_csrf_token()
            assert not security.validate_csrf_token("forged")
            assert not security.validate_csrf_token(None)

    def test_disabled_module(self):
        security = SecurityModule(csrf_enabled=False)
        assert security.generate_csrf_token() == ""
        assert security.validate_csrf_token(None)

    def test_disabled_by_app_config(self, flask_app):
        flask_app.config["WTF_CSRF_ENABLED"] = False
        with flask_app.app_context():
            assert not SecurityModule().enabled


@pytest.mark.unit
class TestSanitizeInput:
    """Test sanitize_input."""

    def test_keeps_only_allowed_columns(self):
        data = {"name": "  Ada \x00", "is_admin": "1", "id": "5"}
        assert SecurityModule().sanitize_input(data, ["name"]) == {"name": "Ada"}

    def test_multi_value_fields(self):
        """Test only columns declared multiple keep every submitted value."""
        schema = TableSchema(
            table="posts",
            primary_key="id",
            columns=[
                ColumnSchema(name="id", sql_type="int", column_type="int", is_primary=True, is_auto_increment=True),
                ColumnSchema(name="tags", sql_type="json", column_type="json", metadata={"multiple": True}),
                ColumnSchema(name="name", sql_type="varchar", column_type="varchar(10)", max_length=10),
            ],
        )
        data = MultiDict([("tags", "a"), ("tags", " b "), ("name", "x"), ("name", "y")])

        clean = SecurityModule().sanitize_input(data, ["tags", "name"], schema)

        assert clean == {"tags": ["a", "b"], "name": "x"}

    def test_repeated_key_keeps_first_value(self):
        data = MultiDict([("name", "A"), ("name", "B")])
        assert SecurityModule().sanitize_input(data, ["name"]) == {"name": "A"}

    def test_unchecked_checkbox_becomes_false(self, users_schema):
        clean = SecurityModule().sanitize_input({"name": "Ada"}, ["name", "is_admin"], users_schema)
        assert clean == {"name": "Ada", "is_admin": False}

    def test_clean_string_keeps_newlines(self):
        assert clean_string(" line 1\nline 2\x07 ") == "line 1\nline 2"
