"""
CRUD handler: forms, submissions, lists and deletes for one table.

A submission goes through, in order:

    CSRF check -> allowed columns -> sanitize -> before_validate
    -> file uploads -> validation -> after_validate -> drop virtual fields
    -> before_save -> before_update/UPDATE/after_update
                      or before_create/INSERT/after_create
    -> after_save -> commit

Everything after the CSRF check runs in one transaction. Any exception
rolls it back, removes the files uploaded during the request and is
reported in the SubmissionResult.
"""

# flake8: noqa: E501


import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from markupsafe import Markup

from dynamiccrud.cache import CacheStrategy
from dynamiccrud.database.adapters import DatabaseAdapter
from dynamiccrud.database.connection import transaction
from dynamiccrud.exceptions import RecordNotFoundError
from dynamiccrud.logging_config import get_logger
from dynamiccrud.models.dataclasses import (
    ColumnSchema,
    ListOptions,
    ListResult,
    SubmissionResult,
    VirtualField,
)
from dynamiccrud.rendering import render_fragment
from dynamiccrud.services.files import DEFAULT_MAX_SIZE, FileUploadHandler
from dynamiccrud.services.forms import FormGenerator, format_value
from dynamiccrud.services.hooks import HookManager
from dynamiccrud.services.listing import ListGenerator
from dynamiccrud.services.schema_analyzer import SchemaAnalyzer
from dynamiccrud.services.security import SecurityModule
from dynamiccrud.services.validation import ValidationEngine, is_empty
from dynamiccrud.utils.pydal_helpers import get_by_pk

logger = get_logger(__name__)

MAX_FOREIGN_OPTIONS = 1000


class CRUDHandler:
    """Create, read, update and delete the rows of one table."""

    def __init__(
        self,
        db,
        table: str,
        cache: Optional[CacheStrategy] = None,
        upload_dir: Optional[str] = None,
        cache_ttl: int = 3600,
        csrf_enabled: bool = True,
        upload_url_prefix: str = "/uploads/",
        upload_max_size: int = DEFAULT_MAX_SIZE,
        adapter: Optional[DatabaseAdapter] = None,
        analyzer: Optional[SchemaAnalyzer] = None,
        theme_manager=None,
    ):
        """
        Initialize handler. The table schema is read immediately.

        Args:
            db: Connected PyDAL instance
            table: Table name
            cache: Schema cache strategy
            upload_dir: Directory for file columns (default: "uploads")
            cache_ttl: Schema cache TTL in seconds
            csrf_enabled: False disables CSRF tokens (tests, trusted callers)
            upload_url_prefix: URL prefix stored for uploaded files
            upload_max_size: Default upload size limit in bytes
            adapter: Catalog adapter (detected from db if omitted)
            analyzer: Shared SchemaAnalyzer (built from db/cache if omitted)
            theme_manager: ThemeManager whose CSS variables are added to forms

        Raises:
            SchemaError: If the table does not exist or has no primary key
        """
        self.db = db
        self.analyzer = analyzer or SchemaAnalyzer(db, cache=cache, cache_ttl=cache_ttl, adapter=adapter)
        self.adapter = self.analyzer.adapter
        self.schema = self.analyzer.get_table_schema(table)
        self.table = self.adapter.define_table(self.schema)
        self.security = SecurityModule(csrf_enabled=csrf_enabled)
        self.hooks = HookManager()
        self.virtual_fields: List[VirtualField] = []
        self.upload_dir = upload_dir or "uploads"
        self.upload_url_prefix = upload_url_prefix
        self.upload_max_size = upload_max_size
        self.theme_manager = theme_manager
        self._file_handler: Optional[FileUploadHandler] = None

    # ==================== Helpers ====================

    @property
    def file_handler(self) -> FileUploadHandler:
        """Upload handler, created on first use so the directory only exists when needed."""
        if self._file_handler is None:
            self._file_handler = FileUploadHandler(
                self.upload_dir,
                max_size=self.upload_max_size,
                url_prefix=self.upload_url_prefix,
            )
        return self._file_handler

    @property
    def file_columns(self) -> List[ColumnSchema]:
        return [c for c in self.schema.editable_columns if c.ui_type == "file"]

    def coerce_id(self, value: Any) -> Any:
        """
        Convert a submitted/URL id to the primary key's Python type.

        Raises:
            RecordNotFoundError: If the value cannot be a key of this table
        """
        if self.schema.primary_column.type_family == "integer":
            try:
                return int(value)
            except (TypeError, ValueError):
                raise RecordNotFoundError(self.schema.table, value)
        return value

    def _theme_css(self) -> str:
        return self.theme_manager.render_css_variables() if self.theme_manager is not None else ""

    def _to_db_values(self, data: Dict[str, Any]) -> Dict[str, Any]:
        values = {}
        for name, value in data.items():
            column = self.schema.column(name)
            if column is None or column.is_primary:
                continue
            values[name] = self.adapter.coerce_value(column, value)
        return values

    # ==================== Reads ====================

    def find_by_id(self, record_id: Any) -> Optional[Dict[str, Any]]:
        """
        Fetch one record.

        Returns:
            Record as a dict, or None if it does not exist
        """
        try:
            key = self.coerce_id(record_id)
        except RecordNotFoundError:
            return None
        return get_by_pk(self.db, self.table, self.schema.primary_key, key)

    def get_or_404(self, record_id: Any) -> Dict[str, Any]:
        """Fetch one record or raise RecordNotFoundError."""
        record = self.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(self.schema.table, record_id)
        return record

    def list(self, options: Optional[ListOptions] = None) -> ListResult:
        """One page of records."""
        return ListGenerator(self.db, self.table, self.schema, options, adapter=self.adapter).fetch()

    def foreign_options(self) -> Dict[str, List[Tuple[Any, str]]]:
        """(value, label) pairs for every foreign key column rendered as a select."""
        options: Dict[str, List[Tuple[Any, str]]] = {}
        for column in self.schema.editable_columns:
            fk = column.foreign_key
            if fk is None or "options" in column.metadata:
                continue
            ref_schema = self.analyzer.get_table_schema(fk.table)
            ref_table = self.adapter.define_table(ref_schema)
            display = column.metadata.get("display_column")
            if not display or ref_schema.column(display) is None:
                display = next(
                    (c.name for c in ref_schema.editable_columns if c.type_family in ("string", "enum")),
                    fk.column,
                )
            rows = self.db(ref_table[fk.column] != None).select(  # noqa: E711
                ref_table[fk.column],
                ref_table[display],
                orderby=ref_table[display],
                limitby=(0, MAX_FOREIGN_OPTIONS),
            )
            options[column.name] = [(row[fk.column], row[display]) for row in rows]
        return options

    # ==================== Rendering ====================

    def render_form(
        self,
        record_id: Any = None,
        data: Optional[Dict[str, Any]] = None,
        errors: Optional[Dict[str, List[str]]] = None,
        action: str = "",
    ) -> Markup:
        """
        Render the create form, or the edit form when record_id is given.

        Args:
            record_id: Record to edit
            data: Submitted values to show again (after a failed submission)
            errors: Per-field errors to show
            action: Form action URL

        Raises:
            RecordNotFoundError: If record_id does not exist
        """
        values: Dict[str, Any] = {}
        if record_id is not None:
            values = self.get_or_404(record_id)
        if data:
            values.update(data)

        return FormGenerator(
            self.schema,
            data=values,
            csrf_token=self.security.generate_csrf_token(),
            virtual_fields=self.virtual_fields,
            errors=errors,
            action=action,
            theme_css=self._theme_css(),
            foreign_options=self.foreign_options(),
        ).render()

    def render_list(self, options: Optional[ListOptions] = None, base_url: str = "") -> Markup:
        """Render one page of records as an HTML table."""
        generator = ListGenerator(
            self.db,
            self.table,
            self.schema,
            options,
            base_url=base_url,
            csrf_token=self.security.generate_csrf_token(),
            adapter=self.adapter,
        )
        return generator.render()

    def render_detail(self, record_id: Any) -> Markup:
        """
        Render one record as a definition list.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        record = self.get_or_404(record_id)
        items = [
            {
                "label": column.label,
                "value": format_value(column, record.get(column.name)),
                "is_file": column.ui_type == "file",
                "is_json": column.type_family == "json",
            }
            for column in self.schema.columns
            if column.ui_type != "password"
        ]
        return render_fragment("components/detail.html", schema=self.schema, items=items, record=record)

    # ==================== Writes ====================

    def handle_submission(self, form: Any, files: Any = None) -> SubmissionResult:
        """
        Validate and save a submitted form.

        Args:
            form: Submitted values (request.form or a dict); an "id" entry makes it an update
            files: Uploaded files (request.files)

        Returns:
            SubmissionResult with the record id, per-field errors or an error message
        """
        if not self.security.validate_csrf_token(form.get("csrf_token")):
            return SubmissionResult(success=False, error="Invalid CSRF token")

        raw_id = form.get("id")
        is_update = raw_id not in (None, "")
        record_id = None
        data: Dict[str, Any] = {}
        if self._file_handler is not None:
            self._file_handler.saved_paths = []

        try:
            if is_update:
                record_id = self.coerce_id(raw_id)

            allowed = [c.name for c in self.schema.editable_columns]
            allowed += [vf.name for vf in self.virtual_fields]
            data = self.security.sanitize_input(form, allowed, self.schema)
            if is_update:
                # A blank password on edit keeps the stored one
                for column in self.schema.editable_columns:
                    if column.ui_type == "password" and is_empty(data.get(column.name)):
                        data.pop(column.name, None)

            data = self.hooks.apply("before_validate", data)

            self._handle_uploads(data, files)

            validator = ValidationEngine(self.schema, self.virtual_fields, is_update=is_update)
            if not validator.validate(data):
                self.db.rollback()
                self._discard_uploads()
                logger.info("submission_invalid", table=self.schema.table, fields=sorted(validator.errors))
                return SubmissionResult(success=False, errors=validator.errors, data=data)

            data = self.hooks.apply("after_validate", validator.cleaned_data)

            for field in self.virtual_fields:
                data.pop(field.name, None)

            data = self.hooks.apply("before_save", data)

            if is_update:
                data = self.hooks.apply("before_update", data, record_id)
                self._update(record_id, data)
                self.hooks.notify("after_update", record_id, data)
            else:
                data = self.hooks.apply("before_create", data)
                record_id = self._insert(data)
                self.hooks.notify("after_create", record_id, data)

            self.hooks.notify("after_save", record_id, data)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            self._discard_uploads()
            logger.exception("submission_failed", table=self.schema.table, id=record_id, error=str(e))
            return SubmissionResult(success=False, error=str(e), data=data)

        logger.info(
            "submission_saved",
            table=self.schema.table,
            id=record_id,
            action="update" if is_update else "create",
        )
        return SubmissionResult(success=True, id=record_id, data=data)

    def _handle_uploads(self, data: Dict[str, Any], files: Any) -> None:
        """Replace file column values by the URLs of the files just uploaded.

        A file column with no upload is removed from the data: on create the
        validator reports it if required, on update the stored file is kept.
        """
        for column in self.file_columns:
            data.pop(column.name, None)
            if not files:
                continue
            if column.metadata.get("multiple"):
                urls = self.file_handler.handle_multiple_uploads(files, column.name, column.metadata)
                if urls:
                    data[column.name] = urls if column.type_family == "json" else json.dumps(urls)
            else:
                url = self.file_handler.handle_upload(files, column.name, column.metadata)
                if url:
                    data[column.name] = url

    def _discard_uploads(self) -> None:
        if self._file_handler is not None and self._file_handler.saved_paths:
            removed = self._file_handler.discard_saved_files()
            logger.info("uploads_discarded", table=self.schema.table, files=removed)

    def _insert(self, data: Dict[str, Any]) -> Any:
        result = self.table.insert(**self._to_db_values(data))
        if isinstance(result, dict):
            # keyed tables return the primary key values
            return result.get(self.schema.primary_key)
        return int(result) if result is not None else None

    def _update(self, record_id: Any, data: Dict[str, Any]) -> None:
        if get_by_pk(self.db, self.table, self.schema.primary_key, record_id) is None:
            raise RecordNotFoundError(self.schema.table, record_id)
        values = self._to_db_values(data)
        if values:
            self.db(self.table[self.schema.primary_key] == record_id).update(**values)

    def delete(self, record_id: Any) -> bool:
        """
        Delete a record inside a transaction.

        Returns:
            True if a row was deleted

        Raises:
            Exception: Whatever a hook or the database raised, after rollback
        """
        key = self.coerce_id(record_id)
        with transaction(self.db):
            self.hooks.notify("before_delete", key)
            deleted = self.db(self.table[self.schema.primary_key] == key).delete()
            self.hooks.notify("after_delete", key)

        logger.info("record_deleted", table=self.schema.table, id=key, deleted=bool(deleted))
        return bool(deleted)

    # ==================== Hooks & virtual fields ====================

    def on(self, event: str, callback: Callable[..., Any]) -> "CRUDHandler":
        """Register a lifecycle callback; see dynamiccrud.services.hooks."""
        self.hooks.on(event, callback)
        return self

    def before_validate(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("before_validate", callback)

    def after_validate(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("after_validate", callback)

    def before_save(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("before_save", callback)

    def after_save(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("after_save", callback)

    def before_create(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("before_create", callback)

    def after_create(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("after_create", callback)

    def before_update(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("before_update", callback)

    def after_update(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("after_update", callback)

    def before_delete(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("before_delete", callback)

    def after_delete(self, callback: Callable[..., Any]) -> "CRUDHandler":
        return self.on("after_delete", callback)

    def add_virtual_field(self, field: VirtualField) -> "CRUDHandler":
        """Add a form-only field, rendered after the table columns."""
        self.virtual_fields.append(field)
        return self


class DynamicCRUD(CRUDHandler):
    """
    Public entry point.

    Example:
        crud = DynamicCRUD(db, "users", cache=MemoryCacheStrategy())
        crud.before_save(lambda data: {**data, "email": data["email"].lower()})
        result = crud.handle_submission(request.form, request.files)
    """

    @classmethod
    def from_settings(cls, db, table: str, settings, cache: Optional[CacheStrategy] = None, **kwargs) -> "DynamicCRUD":
        """Build a handler configured from Settings."""
        return cls(
            db,
            table,
            cache=cache,
            upload_dir=settings.upload_dir,
            cache_ttl=settings.cache_ttl,
            csrf_enabled=settings.csrf_enabled,
            upload_url_prefix=settings.upload_url_prefix,
            upload_max_size=settings.upload_max_size,
            **kwargs,
        )
