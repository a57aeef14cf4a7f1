"""Catalog adapters: read table schemas from MySQL, PostgreSQL and SQLite.

Each adapter turns the rows of its engine's catalog into a TableSchema and
knows how to declare that schema to PyDAL so runtime queries can use the
regular PyDAL query API.
"""

# flake8: noqa: E501


import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydal import DAL, Field

from dynamiccrud.exceptions import SchemaError, UnsupportedDatabaseError
from dynamiccrud.logging_config import get_logger
from dynamiccrud.models.dataclasses import (
    ColumnSchema,
    ForeignKey,
    TableSchema,
    parse_comment_metadata,
)

logger = get_logger(__name__)

_SAFE_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ENUM_VALUE_RE = re.compile(r"'((?:[^']|'')*)'")
_TYPE_ARGS_RE = re.compile(r"\((\d+)(?:\s*,\s*(\d+))?\)")


def check_identifier(name: str) -> str:
    """
    Ensure a table or column name is a plain SQL identifier.

    Raises:
        SchemaError: If the name contains anything but letters, digits and underscores
    """
    if not isinstance(name, str) or not _SAFE_IDENT_RE.match(name):
        raise SchemaError(f"Invalid identifier: {name!r}")
    return name


def parse_type_args(column_type: str) -> Tuple[Optional[int], Optional[int]]:
    """Extract (length_or_precision, scale) from e.g. ``decimal(10,2)``."""
    match = _TYPE_ARGS_RE.search(column_type or "")
    if not match:
        return None, None
    first = int(match.group(1))
    second = int(match.group(2)) if match.group(2) is not None else None
    return first, second


def parse_enum_values(column_type: str) -> List[str]:
    """Extract the labels of ``enum('a','b')`` / ``set('a','b')`` declarations."""
    return [v.replace("''", "'") for v in _ENUM_VALUE_RE.findall(column_type or "")]


def strip_default(value: Any) -> Any:
    """Normalize a catalog default: unquote literals, map NULL to None."""
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    text = value.strip()
    if text.upper() == "NULL":
        return None
    # PostgreSQL casts: 'active'::character varying
    cast = re.match(r"^'(.*)'::[\w\s\"\[\].]+$", text, re.DOTALL)
    if cast:
        return cast.group(1).replace("''", "'")
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1].replace("''", "'")
    return text


class DatabaseAdapter(ABC):
    """Base class for catalog adapters."""

    engine = ""
    quote_char = '"'

    def __init__(self, db: DAL):
        """
        Initialize adapter.

        Args:
            db: Connected PyDAL instance
        """
        self.db = db

    # ==================== Catalog ====================

    @abstractmethod
    def get_table_schema(self, table: str) -> TableSchema:
        """
        Read the schema of a table from the catalog.

        Raises:
            SchemaError: If the table does not exist or has no primary key
        """
        pass

    @abstractmethod
    def list_tables(self) -> List[str]:
        """List the base tables of the current database/schema."""
        pass

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run a catalog query and return rows as dicts."""
        return self.db.executesql(sql, placeholders=list(params), as_dict=True)

    def quote(self, identifier: str) -> str:
        """Quote a checked identifier for the engine."""
        check_identifier(identifier)
        return f"{self.quote_char}{identifier}{self.quote_char}"

    def build_schema(
        self, table: str, columns: List[ColumnSchema], table_comment: Optional[str] = None
    ) -> TableSchema:
        """Assemble a TableSchema, enforcing that a primary key exists."""
        if not columns:
            raise SchemaError(f"Table '{table}' does not exist or has no columns")

        primary = next((c for c in columns if c.is_primary), None)
        if primary is None:
            raise SchemaError(f"Table '{table}' has no primary key")

        schema = TableSchema(
            table=table,
            primary_key=primary.name,
            columns=columns,
            metadata=parse_comment_metadata(table_comment),
        )
        logger.debug(
            "schema_introspected",
            engine=self.engine,
            table=table,
            columns=len(columns),
            primary_key=primary.name,
        )
        return schema

    # ==================== PyDAL mapping ====================

    def pydal_type(self, column: ColumnSchema) -> str:
        """
        PyDAL field type used to read and write the column.

        Booleans are declared as integers: PyDAL's own boolean type stores
        'T'/'F' characters, which does not match tinyint(1) or SQLite flags.
        """
        family = column.type_family
        if family == "integer":
            return "bigint" if column.sql_type in ("bigint", "bigserial") else "integer"
        if family == "decimal":
            precision = column.numeric_precision or 10
            scale = column.numeric_scale if column.numeric_scale is not None else 2
            return f"decimal({precision},{scale})"
        if family == "float":
            return "double"
        if family == "boolean":
            return "integer"
        if family in ("date", "datetime", "time"):
            return family
        if family == "text":
            return "text"
        if family == "json":
            return "json"
        return "string"

    def is_searchable(self, column: ColumnSchema) -> bool:
        """Whether free-text search may run a case-insensitive LIKE on the column."""
        return column.type_family in ("string", "text", "enum")

    def define_table(self, schema: TableSchema):
        """
        Declare an introspected table on the PyDAL connection.

        The table is never migrated: it already exists in the database.

        Returns:
            PyDAL Table

        Raises:
            SchemaError: If PyDAL rejects a table or column name
        """
        fields = []
        keyed = True
        for column in schema.columns:
            field_type = self.pydal_type(column)
            if column.is_primary and column.is_auto_increment and field_type in ("integer", "bigint"):
                field_type = "id"
                keyed = False
            kwargs: Dict[str, Any] = {}
            if field_type == "string" and column.max_length:
                kwargs["length"] = column.max_length
            fields.append(Field(column.name, field_type, **kwargs))

        table_kwargs: Dict[str, Any] = {"migrate": False, "redefine": True}
        if keyed:
            table_kwargs["primarykey"] = [schema.primary_key]
        else:
            table_kwargs.update(self.sequence_options(schema))

        try:
            return self.db.define_table(schema.table, *fields, **table_kwargs)
        except SyntaxError as e:
            raise SchemaError(f"Cannot map table '{schema.table}': {e}") from e

    def sequence_options(self, schema: TableSchema) -> Dict[str, Any]:
        """Extra define_table() options for auto-increment primary keys."""
        return {}

    def coerce_value(self, column: ColumnSchema, value: Any) -> Any:
        """Convert a cleaned Python value into what the driver stores."""
        if column.type_family == "boolean" and value is not None:
            return int(bool(value))
        return value


class MySQLAdapter(DatabaseAdapter):
    """MySQL / MariaDB adapter reading information_schema."""

    engine = "mysql"
    quote_char = "`"

    COLUMNS_SQL = """
        SELECT COLUMN_NAME AS column_name, DATA_TYPE AS data_type,
               COLUMN_TYPE AS column_type, IS_NULLABLE AS is_nullable,
               COLUMN_DEFAULT AS column_default, COLUMN_KEY AS column_key,
               EXTRA AS extra, CHARACTER_MAXIMUM_LENGTH AS max_length,
               NUMERIC_PRECISION AS numeric_precision, NUMERIC_SCALE AS numeric_scale,
               COLUMN_COMMENT AS column_comment
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
        ORDER BY ORDINAL_POSITION
    """

    TABLE_COMMENT_SQL = """
        SELECT TABLE_COMMENT AS table_comment
        FROM information_schema.TABLES
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
    """

    FOREIGN_KEYS_SQL = """
        SELECT COLUMN_NAME AS column_name, REFERENCED_TABLE_NAME AS referenced_table,
               REFERENCED_COLUMN_NAME AS referenced_column
        FROM information_schema.KEY_COLUMN_USAGE
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
          AND REFERENCED_TABLE_NAME IS NOT NULL
    """

    TABLES_SQL = """
        SELECT TABLE_NAME AS table_name
        FROM information_schema.TABLES
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
    """

    def get_table_schema(self, table: str) -> TableSchema:
        check_identifier(table)
        rows = self.fetch_all(self.COLUMNS_SQL, [table])
        foreign_keys = {
            row["column_name"]: ForeignKey(row["referenced_table"], row["referenced_column"])
            for row in self.fetch_all(self.FOREIGN_KEYS_SQL, [table])
        }

        columns = []
        primary_seen = False
        for row in rows:
            column_type = (row["column_type"] or "").lower()
            sql_type = (row["data_type"] or "").lower()
            is_primary = row["column_key"] == "PRI" and not primary_seen
            primary_seen = primary_seen or is_primary
            precision, scale = parse_type_args(column_type)
            columns.append(
                ColumnSchema(
                    name=row["column_name"],
                    sql_type=sql_type,
                    column_type=column_type,
                    is_nullable=row["is_nullable"] == "YES",
                    default=strip_default(row["column_default"]),
                    is_primary=is_primary,
                    is_auto_increment="auto_increment" in (row["extra"] or "").lower(),
                    max_length=row["max_length"] if sql_type in ("char", "varchar") else None,
                    numeric_precision=row["numeric_precision"] or precision if sql_type in ("decimal", "numeric") else None,
                    numeric_scale=(row["numeric_scale"] if row["numeric_scale"] is not None else scale) if sql_type in ("decimal", "numeric") else None,
                    enum_values=parse_enum_values(column_type) if sql_type in ("enum", "set") else [],
                    foreign_key=foreign_keys.get(row["column_name"]),
                    comment=row["column_comment"] or "",
                    metadata=parse_comment_metadata(row["column_comment"]),
                )
            )

        comment_rows = self.fetch_all(self.TABLE_COMMENT_SQL, [table])
        table_comment = comment_rows[0]["table_comment"] if comment_rows else None
        return self.build_schema(table, columns, table_comment)

    def list_tables(self) -> List[str]:
        return [row["table_name"] for row in self.fetch_all(self.TABLES_SQL)]


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL adapter reading pg_catalog for the current schema."""

    engine = "postgres"

    COLUMNS_SQL = """
        SELECT a.attname AS column_name,
               format_type(a.atttypid, a.atttypmod) AS column_type,
               t.typname AS type_name,
               t.typtype AS type_kind,
               NOT a.attnotnull AS is_nullable,
               pg_get_expr(d.adbin, d.adrelid) AS column_default,
               col_description(c.oid, a.attnum) AS column_comment,
               COALESCE(i.indisprimary, false) AS is_primary,
               a.attidentity AS identity
        FROM pg_attribute a
        JOIN pg_class c ON c.oid = a.attrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_type t ON t.oid = a.atttypid
        LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
        LEFT JOIN pg_index i ON i.indrelid = c.oid AND i.indisprimary AND a.attnum = ANY(i.indkey)
        WHERE n.nspname = current_schema() AND c.relname = %s
          AND a.attnum > 0 AND NOT a.attisdropped
        ORDER BY a.attnum
    """

    TABLE_COMMENT_SQL = """
        SELECT obj_description(c.oid, 'pg_class') AS table_comment
        FROM pg_class c
        JOIN pg_namespace n ON n.oid = c.relnamespace
        WHERE n.nspname = current_schema() AND c.relname = %s
    """

    FOREIGN_KEYS_SQL = """
        SELECT a.attname AS column_name, cf.relname AS referenced_table,
               af.attname AS referenced_column
        FROM pg_constraint con
        JOIN pg_class c ON c.oid = con.conrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_class cf ON cf.oid = con.confrelid
        JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = con.conkey[1]
        JOIN pg_attribute af ON af.attrelid = con.confrelid AND af.attnum = con.confkey[1]
        WHERE con.contype = 'f' AND n.nspname = current_schema() AND c.relname = %s
    """

    ENUM_SQL = """
        SELECT e.enumlabel AS label
        FROM pg_enum e
        JOIN pg_type t ON t.oid = e.enumtypid
        WHERE t.typname = %s
        ORDER BY e.enumsortorder
    """

    TABLES_SQL = """
        SELECT tablename AS table_name
        FROM pg_catalog.pg_tables
        WHERE schemaname = current_schema()
        ORDER BY tablename
    """

    # format_type() names mapped to the base names used across dynamiccrud
    TYPE_ALIASES = {
        "character varying": "varchar",
        "character": "char",
        "integer": "int",
        "double precision": "double",
        "numeric": "decimal",
        "timestamp without time zone": "timestamp",
        "timestamp with time zone": "timestamp",
        "time without time zone": "time",
        "time with time zone": "time",
    }

    # Native types ILIKE accepts without a cast
    TEXT_TYPES = ("varchar", "char", "text", "citext", "name")

    def normalize_type(self, column_type: str) -> str:
        """Reduce ``character varying(120)`` to ``varchar`` and so on."""
        base = _TYPE_ARGS_RE.sub("", column_type).strip().lower()
        return self.TYPE_ALIASES.get(base, base)

    def is_searchable(self, column: ColumnSchema) -> bool:
        # enum, uuid, inet ... have no ILIKE operator
        return column.sql_type in self.TEXT_TYPES

    def get_table_schema(self, table: str) -> TableSchema:
        check_identifier(table)
        rows = self.fetch_all(self.COLUMNS_SQL, [table])
        foreign_keys = {
            row["column_name"]: ForeignKey(row["referenced_table"], row["referenced_column"])
            for row in self.fetch_all(self.FOREIGN_KEYS_SQL, [table])
        }

        columns = []
        primary_seen = False
        for row in rows:
            column_type = (row["column_type"] or "").lower()
            enum_values: List[str] = []
            if row["type_kind"] == "e":
                sql_type = "enum"
                enum_values = [r["label"] for r in self.fetch_all(self.ENUM_SQL, [row["type_name"]])]
            else:
                sql_type = self.normalize_type(column_type)
            is_primary = bool(row["is_primary"]) and not primary_seen
            primary_seen = primary_seen or is_primary

            default = row["column_default"]
            is_auto_increment = bool(row.get("identity")) or (
                isinstance(default, str) and default.startswith("nextval(")
            )
            first, second = parse_type_args(column_type)
            columns.append(
                ColumnSchema(
                    name=row["column_name"],
                    sql_type=sql_type,
                    column_type=column_type,
                    is_nullable=bool(row["is_nullable"]),
                    default=None if is_auto_increment else strip_default(default),
                    is_primary=is_primary,
                    is_auto_increment=is_auto_increment,
                    max_length=first if sql_type in ("char", "varchar") else None,
                    numeric_precision=first if sql_type == "decimal" else None,
                    numeric_scale=second if sql_type == "decimal" else None,
                    enum_values=enum_values,
                    foreign_key=foreign_keys.get(row["column_name"]),
                    comment=row["column_comment"] or "",
                    metadata=parse_comment_metadata(row["column_comment"]),
                )
            )

        comment_rows = self.fetch_all(self.TABLE_COMMENT_SQL, [table])
        table_comment = comment_rows[0]["table_comment"] if comment_rows else None
        return self.build_schema(table, columns, table_comment)

    def list_tables(self) -> List[str]:
        return [row["table_name"] for row in self.fetch_all(self.TABLES_SQL)]

    def pydal_type(self, column: ColumnSchema) -> str:
        # Native booleans: PostgreSQL accepts PyDAL's 'T'/'F' literals
        if column.type_family == "boolean":
            return "boolean"
        return super().pydal_type(column)

    def coerce_value(self, column: ColumnSchema, value: Any) -> Any:
        return value

    def sequence_options(self, schema: TableSchema) -> Dict[str, Any]:
        return {"sequence_name": f"{schema.table}_{schema.primary_key}_seq"}


class SQLiteAdapter(DatabaseAdapter):
    """SQLite adapter reading PRAGMA table_info / foreign_key_list.

    SQLite has no column comments, so metadata is always empty.
    """

    engine = "sqlite"

    TABLES_SQL = """
        SELECT name AS table_name FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
    """

    TYPE_ALIASES = {"numeric": "decimal"}

    def get_table_schema(self, table: str) -> TableSchema:
        quoted = self.quote(table)
        rows = self.fetch_all(f"PRAGMA table_info({quoted})")
        pk_count = sum(1 for row in rows if row["pk"])
        foreign_keys = {}
        for row in self.fetch_all(f"PRAGMA foreign_key_list({quoted})"):
            referenced = row["to"] or self.primary_key_of(row["table"])
            foreign_keys[row["from"]] = ForeignKey(row["table"], referenced)

        columns = []
        for row in rows:
            column_type = (row["type"] or "").lower()
            sql_type = _TYPE_ARGS_RE.sub("", column_type).strip() or "text"
            sql_type = self.TYPE_ALIASES.get(sql_type, sql_type)
            first, second = parse_type_args(column_type)
            is_primary = row["pk"] == 1
            columns.append(
                ColumnSchema(
                    name=row["name"],
                    sql_type=sql_type,
                    column_type=column_type,
                    is_nullable=not row["notnull"] and not is_primary,
                    default=strip_default(row["dflt_value"]),
                    is_primary=is_primary,
                    # INTEGER PRIMARY KEY aliases the rowid
                    is_auto_increment=is_primary and pk_count == 1 and sql_type == "integer",
                    max_length=first if sql_type in ("char", "varchar") else None,
                    numeric_precision=first if sql_type == "decimal" else None,
                    numeric_scale=second if sql_type == "decimal" else None,
                    foreign_key=foreign_keys.get(row["name"]),
                )
            )
        return self.build_schema(table, columns)

    def primary_key_of(self, table: str) -> str:
        """Primary key column of a referenced table."""
        for row in self.fetch_all(f"PRAGMA table_info({self.quote(table)})"):
            if row["pk"] == 1:
                return row["name"]
        return "rowid"

    def list_tables(self) -> List[str]:
        return [row["table_name"] for row in self.fetch_all(self.TABLES_SQL)]


ADAPTERS = {
    "mysql": MySQLAdapter,
    "postgres": PostgreSQLAdapter,
    "sqlite": SQLiteAdapter,
}


def detect_adapter(db: DAL) -> DatabaseAdapter:
    """
    Choose the catalog adapter for a PyDAL connection.

    Raises:
        UnsupportedDatabaseError: If the connection's engine has no adapter
    """
    engine = getattr(db._adapter, "dbengine", None) or "unknown"
    adapter_class = ADAPTERS.get(engine)
    if adapter_class is None:
        raise UnsupportedDatabaseError(engine)
    return adapter_class(db)
