"""Dataclasses describing table schemas, virtual fields and CRUD results."""

# flake8: noqa: E501


import json
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

# Base SQL types grouped by the kind of value they hold
INTEGER_TYPES = {"int", "integer", "tinyint", "smallint", "mediumint", "bigint", "serial", "bigserial", "smallserial"}
DECIMAL_TYPES = {"decimal", "numeric"}
FLOAT_TYPES = {"float", "double", "real", "double precision"}
TEXT_TYPES = {"text", "tinytext", "mediumtext", "longtext", "clob"}
DATETIME_TYPES = {"datetime", "timestamp"}
BOOLEAN_TYPES = {"bool", "boolean"}
JSON_TYPES = {"json", "jsonb"}


def humanize(name: str) -> str:
    """Turn a column name such as ``created_at`` into ``Created at``."""
    text = name.replace("_", " ").strip()
    return text[:1].upper() + text[1:]


def parse_comment_metadata(comment: Optional[str]) -> Dict[str, Any]:
    """
    Decode the JSON UI hints stored in a column or table comment.

    Args:
        comment: Raw comment text from the catalog

    Returns:
        Decoded dict, or {} when the comment is empty or not a JSON object

    Example:
        parse_comment_metadata('{"type": "email", "label": "E-mail"}')
        # {"type": "email", "label": "E-mail"}
    """
    if not comment:
        return {}
    try:
        value = json.loads(comment)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


# ==================== Schema ====================


@dataclass(slots=True, frozen=True)
class ForeignKey:
    """Column referenced by a foreign key."""

    table: str
    column: str


@dataclass(slots=True)
class ColumnSchema:
    """Introspected metadata for a single column."""

    name: str
    sql_type: str  # base type, lower-case: varchar, int, decimal, enum ...
    column_type: str = ""  # declared type: varchar(120), decimal(10,2) ...
    is_nullable: bool = True
    default: Optional[Any] = None
    is_primary: bool = False
    is_auto_increment: bool = False
    max_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    enum_values: List[str] = field(default_factory=list)
    foreign_key: Optional[ForeignKey] = None
    comment: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        """Human label, from the comment metadata when present."""
        return self.metadata.get("label") or humanize(self.name)

    @property
    def is_boolean(self) -> bool:
        """Whether the column stores a boolean flag."""
        if self.sql_type in BOOLEAN_TYPES:
            return True
        return self.sql_type == "tinyint" and self.column_type.startswith("tinyint(1)")

    @property
    def type_family(self) -> str:
        """
        Kind of value the column holds.

        One of: boolean, integer, decimal, float, date, datetime, time, text,
        json, enum, string.
        """
        if self.is_boolean:
            return "boolean"
        if self.enum_values:
            return "enum"
        for family, types in (
            ("integer", INTEGER_TYPES),
            ("decimal", DECIMAL_TYPES),
            ("float", FLOAT_TYPES),
            ("datetime", DATETIME_TYPES),
            ("text", TEXT_TYPES),
            ("json", JSON_TYPES),
        ):
            if self.sql_type in types:
                return family
        if self.sql_type in ("date", "time"):
            return self.sql_type
        return "string"

    @property
    def is_required(self) -> bool:
        """Whether a submission must carry a non-empty value for the column."""
        if "required" in self.metadata:
            return bool(self.metadata["required"])
        if self.is_primary or self.is_auto_increment or self.is_boolean:
            return False
        return not self.is_nullable and self.default is None

    @property
    def ui_type(self) -> Optional[str]:
        """UI type forced by the comment metadata (email, file, url ...)."""
        return self.metadata.get("type")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for caching."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnSchema":
        """Rebuild a column from its cached dictionary form."""
        data = dict(data)
        fk = data.get("foreign_key")
        if fk:
            data["foreign_key"] = ForeignKey(**fk)
        return cls(**data)


@dataclass(slots=True)
class TableSchema:
    """Introspected metadata for a table."""

    table: str
    primary_key: str
    columns: List[ColumnSchema]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def column(self, name: str) -> Optional[ColumnSchema]:
        """Get a column by name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def column_names(self) -> List[str]:
        """Column names in table order."""
        return [c.name for c in self.columns]

    @property
    def editable_columns(self) -> List[ColumnSchema]:
        """Columns a form may submit (everything except the primary key)."""
        return [c for c in self.columns if not c.is_primary]

    @property
    def primary_column(self) -> ColumnSchema:
        """The primary key column."""
        return self.column(self.primary_key)

    @property
    def label(self) -> str:
        """Display name of the table."""
        return self.metadata.get("display_name") or humanize(self.table)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for caching."""
        return {
            "table": self.table,
            "primary_key": self.primary_key,
            "columns": [c.to_dict() for c in self.columns],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableSchema":
        """Rebuild a schema from its cached dictionary form."""
        return cls(
            table=data["table"],
            primary_key=data["primary_key"],
            columns=[ColumnSchema.from_dict(c) for c in data["columns"]],
            metadata=data.get("metadata") or {},
        )


# ==================== Virtual Fields ====================


@dataclass(slots=True)
class VirtualField:
    """
    A form field with no backing column.

    Virtual fields are rendered and validated like regular fields but are
    removed from the data before it is persisted.

    Example:
        VirtualField(
            name="password_confirmation",
            type="password",
            label="Confirm password",
            required=True,
            validator=lambda value, data: value == data.get("password"),
            attributes={"error_message": "Passwords do not match"},
        )
    """

    name: str
    type: str = "text"
    label: Optional[str] = None
    required: bool = False
    validator: Optional[Callable[[Any, Dict[str, Any]], bool]] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def get_label(self) -> str:
        """Label shown next to the input."""
        return self.label or humanize(self.name)

    def get_error_message(self) -> str:
        """Message used when the custom validator rejects the value."""
        return self.attributes.get("error_message") or f"{self.get_label()} is not valid"

    def html_attributes(self) -> Dict[str, Any]:
        """Attributes rendered on the input element."""
        reserved = {"error_message", "tooltip"}
        return {k: v for k, v in self.attributes.items() if k not in reserved}


# ==================== Results ====================


@dataclass(slots=True)
class SubmissionResult:
    """Outcome of CRUDHandler.handle_submission()."""

    success: bool
    id: Optional[Any] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {"success": self.success}
        if self.success:
            result["id"] = self.id
        if self.errors:
            result["errors"] = self.errors
        if self.error:
            result["error"] = self.error
        return result


@dataclass(slots=True)
class ListOptions:
    """Paging, search and sort options for list views."""

    page: int = 1
    per_page: int = 20
    search: Optional[str] = None
    sort: Optional[str] = None
    order: str = "asc"
    filters: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ListResult:
    """A page of rows."""

    items: List[Dict[str, Any]]
    total: int
    page: int
    per_page: int
    pages: int

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages
