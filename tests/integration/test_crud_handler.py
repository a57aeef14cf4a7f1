"""
Integration tests for DynamicCRUD against a SQLite database.

Tests cover introspection, the submission pipeline (validation, hooks,
transactions, uploads), reads, lists and deletes.
"""

import datetime
import io
import os
from decimal import Decimal

import pytest
from werkzeug.datastructures import FileStorage, MultiDict

from dynamiccrud import DynamicCRUD, HookAbortError, ListOptions, MemoryCacheStrategy, VirtualField
from dynamiccrud.exceptions import RecordNotFoundError, SchemaError
from dynamiccrud.models.dataclasses import ForeignKey


@pytest.fixture
def cache():
    return MemoryCacheStrategy()


@pytest.fixture
def products(db, cache, tmp_path):
    """Handler for the products table."""
    return DynamicCRUD(db, "products", cache=cache, csrf_enabled=False, upload_dir=str(tmp_path / "uploads"))


def count(crud):
    return crud.db(crud.table.id > 0).count()


def seed_products(db, total=25):
    db.executesql("INSERT INTO categories (name) VALUES ('Tools')")
    for i in range(total):
        db.executesql(f"INSERT INTO products (name, price, stock) VALUES ('Widget {i}', {i}.50, {i})")
    db.executesql("INSERT INTO products (name, price, stock, category_id) VALUES ('Gadget', 99.00, 1, 1)")
    db.commit()


@pytest.mark.integration
class TestIntrospection:
    """Test schema reading through the handler."""

    def test_products_schema(self, products):
        schema = products.schema

        assert schema.primary_key == "id"
        assert schema.primary_column.is_auto_increment
        assert schema.column("name").max_length == 100
        assert schema.column("name").is_required
        assert schema.column("price").numeric_scale == 2
        assert schema.column("stock").default == "0"
        assert not schema.column("stock").is_required
        assert schema.column("active").type_family == "boolean"
        assert schema.column("released").type_family == "date"
        assert schema.column("category_id").foreign_key == ForeignKey("categories", "id")

    def test_schema_is_cached(self, products, cache):
        assert cache.get("schema_products")["table"] == "products"

    def test_table_without_primary_key(self, db):
        with pytest.raises(SchemaError, match="no primary key"):
            DynamicCRUD(db, "audit_log", csrf_enabled=False)

    def test_missing_table(self, db):
        with pytest.raises(SchemaError):
            DynamicCRUD(db, "ghost", csrf_enabled=False)

    def test_list_tables(self, products):
        assert {"categories", "products", "documents", "audit_log"} <= set(products.analyzer.list_tables())


@pytest.mark.integration
class TestSubmission:
    """Test handle_submission."""

    def test_create(self, products):
        """Test a valid submission is inserted with typed values."""
        result = products.handle_submission({"name": "Widget", "price": "9.99", "active": "1", "released": "2024-03-01"})

        assert result.success, result.errors or result.error
        record = products.find_by_id(result.id)
        assert record["name"] == "Widget"
        assert record["price"] == Decimal("9.99")
        assert record["stock"] == 0
        assert record["active"] == 1
        assert record["released"] == datetime.date(2024, 3, 1)

    def test_unchecked_checkbox_saves_false(self, products):
        result = products.handle_submission({"name": "Widget", "price": "1"})
        assert products.find_by_id(result.id)["active"] == 0

    def test_validation_errors_insert_nothing(self, products):
        result = products.handle_submission({"price": "abc"})

        assert not result.success
        assert result.errors["name"] == ["Name is required"]
        assert result.errors["price"] == ["Price must be a number"]
        assert count(products) == 0

    def test_repeated_field_keeps_first_value(self, products):
        form = MultiDict([("name", "A"), ("name", "B"), ("price", "2.00")])
        result = products.handle_submission(form)

        assert result.success
        assert products.find_by_id(result.id)["name"] == "A"

    def test_list_value_for_scalar_column_is_rejected(self, products):
        result = products.handle_submission({"name": ["A", "B"], "price": "2.00"})

        assert not result.success
        assert result.errors == {"name": ["Name must be a single value"]}
        assert count(products) == 0

    def test_update(self, products):
        """Test an update changes only the submitted columns."""
        created = products.handle_submission({"name": "Widget", "price": "9.99", "released": "2024-03-01"})

        result = products.handle_submission({"id": str(created.id), "name": "Widget Pro", "price": "12.50", "active": "1"})

        assert result.success
        assert result.id == created.id
        record = products.find_by_id(created.id)
        assert record["name"] == "Widget Pro"
        assert record["price"] == Decimal("12.50")
        assert record["released"] == datetime.date(2024, 3, 1)
        assert count(products) == 1

    def test_update_missing_record(self, products):
        result = products.handle_submission({"id": "999", "name": "Widget", "price": "1"})

        assert not result.success
        assert result.error == "products with id 999 not found"

    def test_hook_order(self, products):
        """Test every hook runs once, in pipeline order, and can change the data."""
        events = []

        def track(name, transform=None):
            def callback(*args):
                events.append(name)
                return transform(args[0]) if transform else None
            return callback

        (
            products.before_validate(track("before_validate"))
            .after_validate(track("after_validate"))
            .before_save(track("before_save", lambda data: {**data, "name": data["name"].upper()}))
            .before_create(track("before_create"))
            .after_create(track("after_create"))
            .after_save(track("after_save"))
        )

        result = products.handle_submission({"name": "widget", "price": "1"})

        assert result.success
        assert events == ["before_validate", "after_validate", "before_save", "before_create", "after_create", "after_save"]
        assert products.find_by_id(result.id)["name"] == "WIDGET"

    def test_update_hooks_receive_id(self, products):
        created = products.handle_submission({"name": "Widget", "price": "1"})
        seen = {}

        def before(data, record_id):
            seen["before"] = record_id

        def after(record_id, data):
            seen["after"] = record_id

        products.before_update(before).after_update(after)

        products.handle_submission({"id": str(created.id), "name": "Widget 2", "price": "2"})

        assert seen == {"before": created.id, "after": created.id}

    def test_hook_abort_rolls_back(self, products):
        def refuse(data):
            raise HookAbortError("Out of stock")

        products.before_save(refuse)
        result = products.handle_submission({"name": "Widget", "price": "1"})

        assert not result.success
        assert result.error == "Out of stock"
        assert count(products) == 0

    def test_failing_after_save_undoes_insert(self, products):
        def notify(record_id, data):
            raise RuntimeError("mail server down")

        products.after_save(notify)
        result = products.handle_submission({"name": "Widget", "price": "1"})

        assert not result.success
        assert count(products) == 0

    def test_virtual_field(self, products):
        """Test virtual fields are validated but never saved."""
        products.add_virtual_field(
            VirtualField(
                name="confirm_name",
                required=True,
                validator=lambda value, data: value == data.get("name"),
                attributes={"error_message": "Names do not match"},
            )
        )

        failed = products.handle_submission({"name": "Widget", "price": "1", "confirm_name": "Gizmo"})
        assert failed.errors == {"confirm_name": ["Names do not match"]}

        result = products.handle_submission({"name": "Widget", "price": "1", "confirm_name": "Widget"})
        assert result.success
        assert "confirm_name" not in products.find_by_id(result.id)


@pytest.mark.integration
class TestUploads:
    """Test file columns."""

    @pytest.fixture
    def documents(self, db, tmp_path, mocker):
        mocker.patch("dynamiccrud.services.files.magic.from_buffer", return_value="application/pdf")
        crud = DynamicCRUD(db, "documents", csrf_enabled=False, upload_dir=str(tmp_path / "uploads"))
        crud.schema.column("attachment").metadata = {"type": "file", "allowed_mimes": ["application/pdf"]}
        return crud

    @staticmethod
    def pdf():
        return {"attachment": FileStorage(stream=io.BytesIO(b"%PDF-1.4 test"), filename="report.pdf")}

    def test_upload_is_stored(self, documents, tmp_path):
        result = documents.handle_submission({"title": "Report"}, self.pdf())

        assert result.success
        url = documents.find_by_id(result.id)["attachment"]
        assert url.startswith("/uploads/") and url.endswith(".pdf")
        assert os.listdir(tmp_path / "uploads") == [url.rsplit("/", 1)[1]]

    def test_failed_submission_removes_upload(self, documents, tmp_path):
        result = documents.handle_submission({"title": ""}, self.pdf())

        assert not result.success
        assert os.listdir(tmp_path / "uploads") == []

    def test_rejected_mime_type(self, documents, mocker):
        mocker.patch("dynamiccrud.services.files.magic.from_buffer", return_value="text/plain")
        result = documents.handle_submission({"title": "Report"}, self.pdf())

        assert not result.success
        assert "File type not allowed" in result.error

    def test_update_without_file_keeps_attachment(self, documents):
        created = documents.handle_submission({"title": "Report"}, self.pdf())
        url = documents.find_by_id(created.id)["attachment"]

        documents.handle_submission({"id": str(created.id), "title": "Renamed"}, {})

        record = documents.find_by_id(created.id)
        assert record["title"] == "Renamed"
        assert record["attachment"] == url

    def test_form_is_multipart(self, documents):
        assert 'enctype="multipart/form-data"' in documents.render_form()


@pytest.mark.integration
class TestReads:
    """Test find, list and render operations."""

    def test_find_by_id(self, products, db):
        seed_products(db, total=1)
        assert products.find_by_id(1)["name"] == "Widget 0"
        assert products.find_by_id("1")["name"] == "Widget 0"
        assert products.find_by_id(999) is None
        assert products.find_by_id("abc") is None

    def test_list_pagination(self, products, db):
        seed_products(db)
        result = products.list(ListOptions(page=2, per_page=10))

        assert result.total == 26
        assert result.pages == 3
        assert len(result.items) == 10
        assert result.items[0]["name"] == "Widget 10"

    def test_list_search_is_case_insensitive(self, products, db):
        seed_products(db)
        result = products.list(ListOptions(search="WIDGET 1", per_page=50))

        assert result.total == 11
        assert all(item["name"].startswith("Widget 1") for item in result.items)

    def test_list_sort_and_filter(self, products, db):
        seed_products(db)
        result = products.list(ListOptions(sort="stock", order="desc", per_page=3))
        assert [item["stock"] for item in result.items] == [24, 23, 22]

        result = products.list(ListOptions(filters={"category_id": 1}))
        assert [item["name"] for item in result.items] == ["Gadget"]

    def test_list_filter_is_typed(self, products, db):
        seed_products(db)

        assert [item["name"] for item in products.list(ListOptions(filters={"stock": "3"})).items] == ["Widget 3"]
        assert products.list(ListOptions(filters={"stock": "abc"})).total == 26

    def test_render_list(self, products, db):
        seed_products(db)
        html = products.render_list(ListOptions(per_page=10), base_url="/products")

        assert "Widget 0" in html
        assert 'href="/products/1/edit"' in html
        assert "Page 1 of 3 (26 records)" in html
        assert 'rel="next"' in html

    def test_render_detail(self, products, db):
        seed_products(db, total=1)
        html = products.render_detail(1)
        assert "<dt>Name</dt>" in html
        assert "Widget 0" in html

        with pytest.raises(RecordNotFoundError):
            products.render_detail(999)

    def test_form_lists_foreign_key_options(self, products, db):
        db.executesql("INSERT INTO categories (name) VALUES ('Tools')")
        db.commit()

        html = products.render_form()
        assert '<option value="1">Tools</option>' in html

    def test_edit_form(self, products, db):
        seed_products(db, total=1)
        html = products.render_form(1)
        assert 'name="id" value="1"' in html
        assert 'value="Widget 0"' in html

        with pytest.raises(RecordNotFoundError):
            products.render_form(999)


@pytest.mark.integration
class TestDelete:
    """Test delete."""

    def test_delete(self, products, db):
        seed_products(db, total=2)
        deleted = []
        products.after_delete(deleted.append)

        assert products.delete(1)
        assert products.find_by_id(1) is None
        assert deleted == [1]
        assert not products.delete(1)

    def test_before_delete_can_veto(self, products, db):
        seed_products(db, total=1)

        def protect(record_id):
            raise HookAbortError("Record is locked")

        products.before_delete(protect)
        with pytest.raises(HookAbortError):
            products.delete(1)
        assert products.find_by_id(1) is not None

    def test_delete_with_invalid_id(self, products):
        with pytest.raises(RecordNotFoundError):
            products.delete("abc")
