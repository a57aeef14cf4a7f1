"""
dynamiccrud - CRUD forms, lists and validation generated from a live database schema.

Example:
    from dynamiccrud import DynamicCRUD, MemoryCacheStrategy

    crud = DynamicCRUD(db, "users", cache=MemoryCacheStrategy())
    html = crud.render_form()
    result = crud.handle_submission(request.form, request.files)
"""

from dynamiccrud.cache import (
    CacheStrategy,
    FileCacheStrategy,
    MemoryCacheStrategy,
    RedisCacheStrategy,
)
from dynamiccrud.exceptions import (
    ConfigurationError,
    DynamicCRUDError,
    FileUploadError,
    HookAbortError,
    RecordNotFoundError,
    SchemaError,
    UnsupportedDatabaseError,
)
from dynamiccrud.models import ListOptions, SubmissionResult, TableSchema, VirtualField
from dynamiccrud.services.crud import CRUDHandler, DynamicCRUD
from dynamiccrud.services.schema_analyzer import SchemaAnalyzer
from dynamiccrud.services.themes import Theme, ThemeManager

__version__ = "0.1.0"

__all__ = [
    "CRUDHandler",
    "CacheStrategy",
    "ConfigurationError",
    "DynamicCRUD",
    "DynamicCRUDError",
    "FileCacheStrategy",
    "FileUploadError",
    "HookAbortError",
    "ListOptions",
    "MemoryCacheStrategy",
    "RecordNotFoundError",
    "RedisCacheStrategy",
    "SchemaAnalyzer",
    "SchemaError",
    "SubmissionResult",
    "TableSchema",
    "Theme",
    "ThemeManager",
    "UnsupportedDatabaseError",
    "VirtualField",
    "__version__",
]
