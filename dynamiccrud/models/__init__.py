"""Data models for dynamiccrud."""

from dynamiccrud.models.dataclasses import (
    ColumnSchema,
    ForeignKey,
    ListOptions,
    ListResult,
    SubmissionResult,
    TableSchema,
    VirtualField,
)

__all__ = [
    "ColumnSchema",
    "ForeignKey",
    "ListOptions",
    "ListResult",
    "SubmissionResult",
    "TableSchema",
    "VirtualField",
]
