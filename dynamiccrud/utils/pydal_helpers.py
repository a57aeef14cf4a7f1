"""
PyDAL helper utilities for dynamiccrud.

Thin wrappers around common PyDAL operations on introspected tables,
whose primary key is not necessarily called ``id``.
"""

# flake8: noqa: E501


from typing import Any, Dict, List, Optional, Tuple

from flask import request


def get_by_pk(db: Any, table: Any, primary_key: str, value: Any) -> Optional[Dict[str, Any]]:
    """
    Get a record by primary key.

    Args:
        db: PyDAL database instance
        table: PyDAL table object
        primary_key: Name of the primary key column
        value: Primary key value

    Returns:
        Record as a dict if found, None otherwise

    Example:
        user = get_by_pk(db, db.users, "id", 3)
    """
    row = db(table[primary_key] == value).select(limitby=(0, 1)).first()
    return row.as_dict() if row else None


class PaginationParams:
    """
    Helper class for pagination parameters.
    """

    def __init__(self, page: int, per_page: int, offset: int):
        """
        Initialize pagination parameters.

        Args:
            page: Page number (1-indexed)
            per_page: Number of items per page
            offset: Offset for database query (0-indexed)
        """
        self.page = page
        self.per_page = per_page
        self.offset = offset

    @classmethod
    def create(cls, page: Any = 1, per_page: Any = 20, max_per_page: int = 1000) -> "PaginationParams":
        """
        Build normalized parameters: page >= 1, 1 <= per_page <= max_per_page.

        Example:
            pagination = PaginationParams.create(page=0, per_page=5000)
            # page=1, per_page=1000
        """
        try:
            page = int(page)
        except (TypeError, ValueError):
            page = 1
        try:
            per_page = int(per_page)
        except (TypeError, ValueError):
            per_page = 20
        page = max(page, 1)
        per_page = min(max(per_page, 1), max_per_page)
        return cls(page=page, per_page=per_page, offset=(page - 1) * per_page)

    @classmethod
    def from_request(
        cls, default_per_page: int = 20, max_per_page: int = 1000
    ) -> "PaginationParams":
        """
        Extract pagination parameters from Flask request.

        Args:
            default_per_page: Default items per page (default: 20)
            max_per_page: Maximum items per page (default: 1000)

        Returns:
            PaginationParams instance
        """
        return cls.create(
            request.args.get("page", 1),
            request.args.get("per_page", default_per_page),
            max_per_page,
        )

    @property
    def limitby(self) -> Tuple[int, int]:
        """PyDAL limitby tuple for the page."""
        return (self.offset, self.offset + self.per_page)

    def calculate_pages(self, total: int) -> int:
        """
        Calculate total number of pages.

        Args:
            total: Total number of records

        Returns:
            Total number of pages
        """
        if total == 0:
            return 0
        return (total + self.per_page - 1) // self.per_page


def paginated_query(
    query: Any, pagination: PaginationParams, orderby: Optional[Any] = None
) -> Tuple[List[Any], int]:
    """
    Execute a paginated query with count.

    Args:
        query: PyDAL set, e.g. db(db.users.active == 1)
        pagination: PaginationParams instance
        orderby: Optional orderby expression

    Returns:
        Tuple of (rows, total_count)

    Example:
        rows, total = paginated_query(db(query), pagination, orderby=~db.users.id)
    """
    total = query.count()
    select_kwargs: Dict[str, Any] = {"limitby": pagination.limitby}
    if orderby is not None:
        select_kwargs["orderby"] = orderby
    rows = query.select(**select_kwargs)
    return rows, total
