"""Exception hierarchy for dynamiccrud.

Validation failures are never raised: they are collected per field and
returned in a SubmissionResult. The exceptions below cover configuration,
introspection, upload and lifecycle problems.
"""

# flake8: noqa: E501


class DynamicCRUDError(Exception):
    """Base class for all dynamiccrud errors."""


class ConfigurationError(DynamicCRUDError):
    """Raised when the library is configured inconsistently."""


class UnsupportedDatabaseError(DynamicCRUDError):
    """Raised when the connection uses a database engine with no adapter."""

    def __init__(self, engine: str):
        self.engine = engine
        super().__init__(f"Unsupported database driver: {engine}")


class SchemaError(DynamicCRUDError):
    """Raised when a table cannot be introspected or has no primary key."""


class RecordNotFoundError(DynamicCRUDError):
    """Raised when a record looked up by primary key does not exist."""

    def __init__(self, table: str, record_id):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} with id {record_id} not found")


class FileUploadError(DynamicCRUDError):
    """Raised when an uploaded file is rejected or cannot be stored."""


class HookAbortError(DynamicCRUDError):
    """Raised by a lifecycle hook to veto the in-flight operation.

    Example:
        def guard(data):
            if data.get("status") == "locked":
                raise HookAbortError("Locked records cannot be saved")
            return data
    """
