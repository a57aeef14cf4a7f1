"""
Validation engine for form submissions.

Rules come from two places:
- the table schema (required columns, column types, varchar lengths, enums)
- JSON metadata stored in column comments, e.g.
  ``{"type": "email", "minlength": 3, "error_message": "Enter a work e-mail"}``

Values are coerced to Python types with pydantic TypeAdapters so the data
handed to PyDAL is already typed. Errors are collected per field, never
raised.
"""

# flake8: noqa: E501


import datetime
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pydantic import AnyUrl, EmailStr, Json, TypeAdapter, ValidationError

from dynamiccrud.models.dataclasses import ColumnSchema, TableSchema, VirtualField

_ADAPTERS = {
    "integer": TypeAdapter(int),
    "decimal": TypeAdapter(Decimal),
    "float": TypeAdapter(float),
    "date": TypeAdapter(datetime.date),
    "datetime": TypeAdapter(datetime.datetime),
    "time": TypeAdapter(datetime.time),
    "boolean": TypeAdapter(bool),
    "json": TypeAdapter(Json[Any]),
}

_TYPE_MESSAGES = {
    "integer": "{label} must be an integer",
    "decimal": "{label} must be a number",
    "float": "{label} must be a number",
    "date": "{label} must be a valid date (YYYY-MM-DD)",
    "datetime": "{label} must be a valid date and time",
    "time": "{label} must be a valid time (HH:MM)",
    "boolean": "{label} must be true or false",
    "json": "{label} must be valid JSON",
}

_EMAIL = TypeAdapter(EmailStr)
_URL = TypeAdapter(AnyUrl)
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_TEL_RE = re.compile(r"^[0-9+()\-.\s]{3,}$")


def is_empty(value: Any) -> bool:
    """Whether a submitted value counts as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def coerce_value(column: ColumnSchema, value: Any) -> Any:
    """
    Convert a submitted value to the Python type of the column.

    Strings are stripped; families without an adapter are returned as is.

    Raises:
        pydantic.ValidationError: If the value does not parse
    """
    family = column.type_family
    adapter = _ADAPTERS.get(family)
    if adapter is None or (family == "json" and not isinstance(value, (str, bytes))):
        return value.strip() if isinstance(value, str) else value
    return adapter.validate_python(value.strip() if isinstance(value, str) else value)


def _number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ValidationEngine:
    """
    Validate and coerce one submission against a table schema.

    Example:
        engine = ValidationEngine(schema, virtual_fields=[confirm_field])
        if engine.validate(form_data):
            save(engine.cleaned_data)
        else:
            show(engine.errors)  # {"email": ["Email is required"]}
    """

    def __init__(
        self,
        schema: TableSchema,
        virtual_fields: Iterable[VirtualField] = (),
        is_update: bool = False,
    ):
        """
        Initialize engine.

        Args:
            schema: Table being written
            virtual_fields: Extra form fields validated but never persisted
            is_update: On update, columns absent from the data are left untouched
        """
        self.schema = schema
        self.virtual_fields = list(virtual_fields)
        self.is_update = is_update
        self.errors: Dict[str, List[str]] = {}
        self.cleaned_data: Dict[str, Any] = {}

    # ==================== Public API ====================

    def validate(self, data: Dict[str, Any]) -> bool:
        """
        Validate data, filling errors and cleaned_data.

        Returns:
            True when no field has an error
        """
        self.errors = {}
        self.cleaned_data = {}

        for column in self.schema.columns:
            if column.is_primary:
                continue
            if self.is_update and column.name not in data:
                continue
            self._validate_column(column, data.get(column.name))

        for field in self.virtual_fields:
            self._validate_virtual_field(field, data)

        return not self.errors

    def get_errors(self) -> Dict[str, List[str]]:
        """Errors from the last validate() call."""
        return self.errors

    def is_required(self, column: ColumnSchema) -> bool:
        """Whether the column must be filled in (used for the HTML required flag)."""
        return column.is_required

    # ==================== Columns ====================

    def _add_error(self, name: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        custom = (metadata or {}).get("error_message")
        self.errors.setdefault(name, []).append(custom or message)

    def _validate_column(self, column: ColumnSchema, value: Any) -> None:
        label = column.label
        family = column.type_family

        if family == "boolean" and value is None:
            value = False

        if is_empty(value):
            if column.is_required:
                self.errors.setdefault(column.name, []).append(f"{label} is required")
            elif column.is_nullable:
                self.cleaned_data[column.name] = None
            # otherwise the database default applies
            return

        cleaned = self._coerce(column, value)
        if column.name in self.errors:
            return

        self._check_schema_rules(column, cleaned)
        self._check_metadata_rules(column.name, label, cleaned, column.metadata, family)
        if column.name not in self.errors:
            self.cleaned_data[column.name] = cleaned

    def _coerce(self, column: ColumnSchema, value: Any) -> Any:
        if isinstance(value, (list, tuple)) and column.type_family != "json" and not column.metadata.get("multiple"):
            self._add_error(column.name, f"{column.label} must be a single value", column.metadata)
            return None
        try:
            return coerce_value(column, value)
        except ValidationError:
            self._add_error(column.name, _TYPE_MESSAGES[column.type_family].format(label=column.label), column.metadata)
            return None

    def _check_schema_rules(self, column: ColumnSchema, value: Any) -> None:
        label = column.label

        if column.type_family == "enum" and str(value) not in column.enum_values:
            self._add_error(
                column.name,
                f"{label} must be one of: {', '.join(column.enum_values)}",
                column.metadata,
            )

        if column.max_length and isinstance(value, str) and len(value) > column.max_length:
            self._add_error(
                column.name,
                f"{label} must be at most {column.max_length} characters",
                column.metadata,
            )

        if column.type_family == "decimal" and column.numeric_scale is not None:
            exponent = value.as_tuple().exponent
            if isinstance(exponent, int) and -exponent > column.numeric_scale:
                self._add_error(
                    column.name,
                    f"{label} must have at most {column.numeric_scale} decimal places",
                    column.metadata,
                )

    def _check_metadata_rules(
        self, name: str, label: str, value: Any, metadata: Dict[str, Any], family: str = "string"
    ) -> None:
        """Apply the rules declared in a JSON comment (or virtual field attributes)."""
        ui_type = metadata.get("type")
        text = value if isinstance(value, str) else str(value)

        if ui_type == "email":
            try:
                _EMAIL.validate_python(text)
            except ValidationError:
                self._add_error(name, f"{label} must be a valid email address", metadata)
        elif ui_type == "url":
            try:
                _URL.validate_python(text)
            except ValidationError:
                self._add_error(name, f"{label} must be a valid URL", metadata)
        elif ui_type == "color" and not _COLOR_RE.match(text):
            self._add_error(name, f"{label} must be a color like #1a2b3c", metadata)
        elif ui_type == "tel" and not _TEL_RE.match(text):
            self._add_error(name, f"{label} must be a valid phone number", metadata)
        elif ui_type == "number" and _number(value) is None:
            self._add_error(name, f"{label} must be a number", metadata)

        numeric = family in ("integer", "decimal", "float") or ui_type in ("number", "range")
        if numeric and _number(value) is not None:
            if "min" in metadata and _number(value) < float(metadata["min"]):
                self._add_error(name, f"{label} must be at least {metadata['min']}", metadata)
            if "max" in metadata and _number(value) > float(metadata["max"]):
                self._add_error(name, f"{label} must be at most {metadata['max']}", metadata)

        if "minlength" in metadata and len(text) < int(metadata["minlength"]):
            self._add_error(name, f"{label} must be at least {metadata['minlength']} characters", metadata)
        if "maxlength" in metadata and len(text) > int(metadata["maxlength"]):
            self._add_error(name, f"{label} must be at most {metadata['maxlength']} characters", metadata)

        pattern = metadata.get("pattern")
        if pattern and not re.fullmatch(pattern, text):
            self._add_error(name, f"{label} has an invalid format", metadata)

    # ==================== Virtual fields ====================

    def _validate_virtual_field(self, field: VirtualField, data: Dict[str, Any]) -> None:
        value = data.get(field.name)
        label = field.get_label()

        if is_empty(value):
            if field.required:
                self.errors.setdefault(field.name, []).append(f"{label} is required")
                return
        else:
            self._check_metadata_rules(field.name, label, value, {"type": field.type, **field.attributes})

        if field.name in self.errors:
            return

        if field.validator is not None and not field.validator(value, data):
            self.errors.setdefault(field.name, []).append(field.get_error_message())
            return

        self.cleaned_data[field.name] = value
