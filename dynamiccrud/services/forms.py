"""
Form generator.

Builds an HTML form for a table from its introspected schema. Column types
pick the input widget; JSON comment metadata can override the widget and
add attributes:

    {"type": "email", "label": "E-mail", "placeholder": "you@example.com"}
    {"type": "file", "allowed_mimes": ["image/png", "image/jpeg"]}
    {"type": "select", "options": {"draft": "Draft", "published": "Published"}}
"""

# flake8: noqa: E501


import datetime
import json
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from markupsafe import Markup

from dynamiccrud.models.dataclasses import ColumnSchema, TableSchema, VirtualField
from dynamiccrud.rendering import render_fragment

# Metadata keys copied verbatim onto the input element
PASSTHROUGH_ATTRIBUTES = ("placeholder", "min", "max", "minlength", "maxlength", "pattern", "step", "autocomplete")

# Metadata "type" values rendered as a plain <input type=...>
INPUT_TYPES = {"text", "email", "url", "password", "color", "tel", "number", "range", "date", "datetime-local", "time", "search", "hidden", "file"}


def input_type_for(column: ColumnSchema) -> str:
    """
    Pick the widget for a column.

    Returns:
        An <input> type, or one of "textarea", "select", "checkbox"
    """
    ui_type = column.ui_type
    if ui_type:
        if ui_type in INPUT_TYPES or ui_type in ("textarea", "select", "checkbox"):
            return ui_type
        if ui_type == "datetime":
            return "datetime-local"

    if column.metadata.get("hidden"):
        return "hidden"
    if column.foreign_key is not None:
        return "select"

    family = column.type_family
    return {
        "boolean": "checkbox",
        "enum": "select",
        "integer": "number",
        "decimal": "number",
        "float": "number",
        "date": "date",
        "datetime": "datetime-local",
        "time": "time",
        "text": "textarea",
        "json": "textarea",
    }.get(family, "text")


def format_value(column: Optional[ColumnSchema], value: Any) -> Any:
    """Format a stored value for an input's value attribute."""
    if value is None:
        return ""
    if isinstance(value, datetime.datetime):
        return value.strftime("%Y-%m-%dT%H:%M")
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, datetime.time):
        return value.strftime("%H:%M")
    if isinstance(value, Decimal):
        return str(value)
    if column is not None and column.type_family == "json" and not isinstance(value, str):
        return json.dumps(value, indent=2)
    return value


def select_options(column: ColumnSchema, foreign_options: Optional[List[Tuple[Any, str]]] = None) -> List[Tuple[str, str]]:
    """Options of a <select>: metadata options, FK rows or enum labels."""
    choices = column.metadata.get("options")
    if isinstance(choices, dict):
        return [(str(k), str(v)) for k, v in choices.items()]
    if isinstance(choices, list):
        return [(str(c), str(c)) for c in choices]
    if foreign_options is not None:
        return [(str(k), str(v)) for k, v in foreign_options]
    return [(v, v) for v in column.enum_values]


class FormGenerator:
    """
    Render the create/edit form of a table.

    Example:
        html = FormGenerator(schema, data=row, csrf_token=token).render()
    """

    def __init__(
        self,
        schema: TableSchema,
        data: Optional[Dict[str, Any]] = None,
        csrf_token: str = "",
        virtual_fields: Iterable[VirtualField] = (),
        errors: Optional[Dict[str, List[str]]] = None,
        options: Optional[Dict[str, Any]] = None,
        action: str = "",
        theme_css: str = "",
        foreign_options: Optional[Dict[str, List[Tuple[Any, str]]]] = None,
    ):
        """
        Initialize generator.

        Args:
            schema: Table schema
            data: Current record (edit) or previously submitted values
            csrf_token: Token rendered as a hidden csrf_token input
            virtual_fields: Extra fields rendered after the table columns
            errors: Per-field error messages from a failed submission
            options: submit_label, css_class
            action: Form action URL (empty posts back to the current URL)
            theme_css: CSS custom properties emitted in a <style> block
            foreign_options: (value, label) pairs per foreign key column
        """
        self.schema = schema
        self.data = data or {}
        self.csrf_token = csrf_token
        self.virtual_fields = list(virtual_fields)
        self.errors = errors or {}
        self.options = options or {}
        self.action = action
        self.theme_css = theme_css
        self.foreign_options = foreign_options or {}

    @property
    def is_edit(self) -> bool:
        """Whether the form edits an existing record."""
        value = self.data.get(self.schema.primary_key)
        return value is not None and value != ""

    # ==================== Field building ====================

    def _base_field(self, name: str, label: str, widget: str) -> Dict[str, Any]:
        errors = self.errors.get(name, [])
        attrs: Dict[str, Any] = {"id": f"field-{name}", "name": name}
        if errors:
            attrs["aria-invalid"] = "true"
            attrs["aria-describedby"] = f"error-{name}"
        return {
            "name": name,
            "label": label,
            "widget": widget,
            "attrs": attrs,
            "value": "",
            "checked": False,
            "options": [],
            "errors": errors,
            "tooltip": None,
            "current_file": None,
        }

    def build_column_field(self, column: ColumnSchema) -> Dict[str, Any]:
        """Describe the widget of one column."""
        widget = input_type_for(column)
        field = self._base_field(column.name, column.label, widget)
        attrs = field["attrs"]
        metadata = column.metadata
        value = self.data.get(column.name)

        if widget == "checkbox":
            attrs["type"] = "checkbox"
            attrs["value"] = "1"
            field["checked"] = value not in (None, "", 0, "0", False, "false", "off")
        elif widget == "select":
            field["options"] = select_options(column, self.foreign_options.get(column.name))
            field["value"] = "" if value is None else str(value)
        elif widget == "textarea":
            field["value"] = format_value(column, value)
        else:
            attrs["type"] = widget
            if widget == "file":
                field["current_file"] = value or None
                allowed = metadata.get("allowed_mimes")
                if allowed:
                    attrs["accept"] = ",".join(allowed)
                if metadata.get("multiple"):
                    attrs["multiple"] = True
            elif widget != "password":
                attrs["value"] = format_value(column, value)

        if widget == "number" and "step" not in metadata:
            family = column.type_family
            if family == "integer":
                attrs["step"] = "1"
            elif family == "decimal" and column.numeric_scale:
                attrs["step"] = f"0.{'0' * (column.numeric_scale - 1)}1"
            else:
                attrs["step"] = "any"

        if widget in ("text", "email", "url", "password", "tel", "search") and column.max_length:
            attrs["maxlength"] = column.max_length

        for key in PASSTHROUGH_ATTRIBUTES:
            if key in metadata:
                attrs[key] = metadata[key]

        # Stored files and passwords need not be sent again on edit
        required = column.is_required and not (widget in ("file", "password") and self.is_edit)
        if required and widget not in ("checkbox", "hidden"):
            attrs["required"] = True
            attrs["aria-required"] = "true"
        if metadata.get("readonly"):
            attrs["readonly"] = True

        field["tooltip"] = metadata.get("tooltip")
        return field

    def build_virtual_field(self, vf: VirtualField) -> Dict[str, Any]:
        """Describe the widget of a virtual field."""
        widget = vf.type if vf.type in ("textarea", "select", "checkbox") else "input"
        field = self._base_field(vf.name, vf.get_label(), widget if widget != "input" else vf.type)
        attrs = field["attrs"]
        value = self.data.get(vf.name)

        if widget == "checkbox":
            attrs["type"] = "checkbox"
            attrs["value"] = "1"
            field["checked"] = bool(value) and value not in ("0", "false", "off")
        elif widget == "select":
            choices = vf.attributes.get("options") or []
            field["options"] = [(str(k), str(v)) for k, v in choices.items()] if isinstance(choices, dict) else [(str(c), str(c)) for c in choices]
            field["value"] = "" if value is None else str(value)
        elif widget == "textarea":
            field["value"] = "" if value is None else value
        else:
            attrs["type"] = vf.type
            # Passwords are never echoed back
            if vf.type != "password":
                attrs["value"] = "" if value is None else value

        for key, attr_value in vf.html_attributes().items():
            if key != "options":
                attrs[key] = attr_value
        if vf.required:
            attrs["required"] = True
            attrs["aria-required"] = "true"

        field["tooltip"] = vf.attributes.get("tooltip")
        return field

    def build_fields(self) -> List[Dict[str, Any]]:
        """Describe every visible and hidden field, in render order."""
        fields = [self.build_column_field(c) for c in self.schema.editable_columns]
        fields.extend(self.build_virtual_field(vf) for vf in self.virtual_fields)
        return fields

    # ==================== Rendering ====================

    def render(self) -> Markup:
        """Render the form to HTML."""
        fields = self.build_fields()
        has_files = any(f["attrs"].get("type") == "file" for f in fields)
        return render_fragment(
            "components/form.html",
            schema=self.schema,
            fields=fields,
            action=self.action,
            enctype="multipart/form-data" if has_files else None,
            csrf_token=self.csrf_token,
            record_id=self.data.get(self.schema.primary_key) if self.is_edit else None,
            submit_label=self.options.get("submit_label") or ("Update" if self.is_edit else "Save"),
            css_class=self.options.get("css_class", "dynamiccrud-form"),
            theme_css=self.theme_css,
        )
