"""
Unit tests for FormGenerator and its widget helpers.
"""

import datetime
from decimal import Decimal

import pytest

from dynamiccrud.models.dataclasses import ColumnSchema, ForeignKey, TableSchema, VirtualField
from dynamiccrud.services.forms import FormGenerator, format_value, input_type_for, select_options


@pytest.mark.unit
class TestInputTypeFor:
    """Test input_type_for."""

    @pytest.mark.parametrize(
        "column,expected",
        [
            (ColumnSchema(name="c", sql_type="varchar"), "text"),
            (ColumnSchema(name="c", sql_type="text"), "textarea"),
            (ColumnSchema(name="c", sql_type="int"), "number"),
            (ColumnSchema(name="c", sql_type="decimal"), "number"),
            (ColumnSchema(name="c", sql_type="date"), "date"),
            (ColumnSchema(name="c", sql_type="datetime"), "datetime-local"),
            (ColumnSchema(name="c", sql_type="time"), "time"),
            (ColumnSchema(name="c", sql_type="tinyint", column_type="tinyint(1)"), "checkbox"),
            (ColumnSchema(name="c", sql_type="enum", enum_values=["a"]), "select"),
            (ColumnSchema(name="c", sql_type="int", foreign_key=ForeignKey("users", "id")), "select"),
            (ColumnSchema(name="c", sql_type="varchar", metadata={"type": "email"}), "email"),
            (ColumnSchema(name="c", sql_type="varchar", metadata={"type": "datetime"}), "datetime-local"),
            (ColumnSchema(name="c", sql_type="varchar", metadata={"hidden": True}), "hidden"),
        ],
    )
    def test_widgets(self, column, expected):
        assert input_type_for(column) == expected


@pytest.mark.unit
class TestHelpers:
    """Test format_value and select_options."""

    def test_format_value(self):
        json_column = ColumnSchema(name="settings", sql_type="json")
        assert format_value(None, None) == ""
        assert format_value(None, datetime.datetime(2024, 1, 15, 10, 30, 45)) == "2024-01-15T10:30"
        assert format_value(None, datetime.date(2024, 1, 15)) == "2024-01-15"
        assert format_value(None, datetime.time(9, 5)) == "09:05"
        assert format_value(None, Decimal("1.50")) == "1.50"
        assert format_value(json_column, {"a": 1}) == '{\n  "a": 1\n}'

    def test_select_options_priority(self):
        """Test metadata options win over foreign keys and enum values."""
        column = ColumnSchema(name="status", sql_type="enum", enum_values=["a", "b"])
        assert select_options(column) == [("a", "a"), ("b", "b")]
        assert select_options(column, [(1, "One")]) == [("1", "One")]

        column.metadata = {"options": {"a": "Alpha"}}
        assert select_options(column, [(1, "One")]) == [("a", "Alpha")]


@pytest.mark.unit
class TestFormGenerator:
    """Test FormGenerator rendering."""

    def test_create_form(self, users_schema):
        """Test the create form has every editable column and no id."""
        html = FormGenerator(users_schema, csrf_token="tok123").render()

        assert 'name="csrf_token" value="tok123"' in html
        assert 'name="id"' not in html
        assert 'id="field-name"' in html
        assert 'type="email"' in html
        assert 'placeholder="you@example.com"' in html
        assert "<textarea" in html
        assert 'type="checkbox"' in html
        assert '<option value="active">active</option>' in html
        assert 'maxlength="50"' in html
        assert ">Save</button>" in html
        assert "enctype" not in html

    def test_required_columns_are_marked(self, users_schema):
        fields = {f["name"]: f for f in FormGenerator(users_schema).build_fields()}

        assert fields["name"]["attrs"]["required"] is True
        assert fields["name"]["attrs"]["aria-required"] == "true"
        assert "required" not in fields["bio"]["attrs"]
        assert "required" not in fields["status"]["attrs"]

    def test_number_steps(self, users_schema):
        fields = {f["name"]: f for f in FormGenerator(users_schema).build_fields()}
        assert fields["age"]["attrs"]["step"] == "1"
        assert fields["age"]["attrs"]["min"] == 18
        assert fields["price"]["attrs"]["step"] == "0.01"

    def test_edit_form_shows_values(self, users_schema):
        """Test the edit form carries the record id and current values."""
        record = {"id": 7, "name": "Ada", "status": "inactive", "is_admin": 1, "birthday": datetime.date(1815, 12, 10)}
        html = FormGenerator(users_schema, data=record).render()

        assert '<input type="hidden" name="id" value="7">' in html
        assert 'value="Ada"' in html
        assert '<option value="inactive" selected>inactive</option>' in html
        assert " checked" in html
        assert 'value="1815-12-10"' in html
        assert ">Update</button>" in html

    def test_values_are_escaped(self, users_schema):
        html = FormGenerator(users_schema, data={"name": '"><script>alert(1)</script>'}).render()
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_errors_are_rendered(self, users_schema):
        html = FormGenerator(users_schema, errors={"name": ["Name is required"]}).render()
        assert 'id="error-name" role="alert"' in html
        assert 'aria-describedby="error-name"' in html
        assert "Name is required" in html

    def test_tooltip(self, users_schema):
        html = FormGenerator(users_schema).render()
        assert "A few words about you" in html

    def test_file_and_password_widgets(self):
        """Test file fields switch to multipart and passwords are never echoed."""
        schema = TableSchema(
            table="accounts",
            primary_key="id",
            columns=[
                ColumnSchema(name="id", sql_type="int", is_primary=True, is_auto_increment=True),
                ColumnSchema(name="avatar", sql_type="varchar", is_nullable=False, metadata={"type": "file", "allowed_mimes": ["image/png", "image/jpeg"]}),
                ColumnSchema(name="password", sql_type="varchar", is_nullable=False, metadata={"type": "password"}),
            ],
        )
        html = FormGenerator(schema, data={"id": 1, "avatar": "/uploads/a.png", "password": "s3cret"}).render()

        assert 'enctype="multipart/form-data"' in html
        assert 'accept="image/png,image/jpeg"' in html
        assert "Current file" in html
        assert "s3cret" not in html
        # stored file and password need not be resent on edit
        assert " required" not in html

    def test_virtual_fields_are_rendered(self, users_schema):
        field = VirtualField(name="password_confirmation", type="password", required=True, attributes={"minlength": 8})
        html = FormGenerator(users_schema, virtual_fields=[field], data={"password_confirmation": "hunter2"}).render()

        assert 'name="password_confirmation"' in html
        assert 'minlength="8"' in html
        assert "hunter2" not in html

    def test_foreign_key_options(self):
        schema = TableSchema(
            table="posts",
            primary_key="id",
            columns=[
                ColumnSchema(name="id", sql_type="int", is_primary=True, is_auto_increment=True),
                ColumnSchema(name="author_id", sql_type="int", foreign_key=ForeignKey("users", "id")),
            ],
        )
        html = FormGenerator(schema, data={"author_id": 2}, foreign_options={"author_id": [(1, "Ada"), (2, "Grace")]}).render()
        assert '<option value="2" selected>Grace</option>' in html
