"""
List view generator.

Paginates, searches, filters and sorts the rows of an introspected table
and renders them as an HTML table with edit/delete actions.
"""

# flake8: noqa: E501


from functools import reduce
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from markupsafe import Markup
from pydantic import ValidationError

from dynamiccrud.database.adapters import detect_adapter
from dynamiccrud.logging_config import get_logger
from dynamiccrud.models.dataclasses import ColumnSchema, ListOptions, ListResult, TableSchema
from dynamiccrud.rendering import render_fragment
from dynamiccrud.services.forms import format_value
from dynamiccrud.services.validation import coerce_value
from dynamiccrud.utils.pydal_helpers import PaginationParams, paginated_query

logger = get_logger(__name__)

MAX_PER_PAGE = 1000
HIDDEN_UI_TYPES = ("password", "hidden")


class ListGenerator:
    """Query and render one page of a table."""

    def __init__(
        self,
        db,
        table,
        schema: TableSchema,
        options: Optional[ListOptions] = None,
        base_url: str = "",
        csrf_token: str = "",
        adapter=None,
    ):
        """
        Initialize generator.

        Args:
            db: PyDAL database instance
            table: PyDAL table declared for the schema
            schema: Table schema
            options: Paging, search, sort and filter options
            base_url: URL of the list page; record links are built from it
            csrf_token: Token for the delete forms
            adapter: Catalog adapter deciding which columns are searchable
                (default: detected from the connection)
        """
        self.db = db
        self.table = table
        self.schema = schema
        self.options = options or ListOptions()
        self.base_url = base_url.rstrip("/")
        self.csrf_token = csrf_token
        self.adapter = adapter or detect_adapter(db)

    # ==================== Query ====================

    def visible_columns(self) -> List[ColumnSchema]:
        """Columns shown in the table (metadata ``list_columns`` wins)."""
        wanted = self.schema.metadata.get("list_columns")
        if wanted:
            return [c for c in (self.schema.column(name) for name in wanted) if c is not None]
        return [
            c for c in self.schema.columns
            if c.type_family not in ("text", "json") and c.ui_type not in HIDDEN_UI_TYPES
        ]

    def searchable_columns(self) -> List[ColumnSchema]:
        return [
            c for c in self.schema.columns
            if self.adapter.is_searchable(c) and c.ui_type not in HIDDEN_UI_TYPES
        ]

    def build_query(self):
        """PyDAL query for the current search and filters."""
        pk_field = self.table[self.schema.primary_key]
        query = pk_field != None  # noqa: E711

        for name, value in (self.options.filters or {}).items():
            column = self.schema.column(name)
            if column is None or value in (None, ""):
                continue
            try:
                value = coerce_value(column, value)
            except ValidationError:
                logger.warning("list_filter_ignored", table=self.schema.table, column=name, value=str(value))
                continue
            query &= self.table[name] == value

        term = (self.options.search or "").strip()
        if term:
            conditions = [self.table[c.name].contains(term, case_sensitive=False) for c in self.searchable_columns()]
            if conditions:
                query &= reduce(lambda a, b: a | b, conditions)
        return query

    def orderby(self):
        sort = self.options.sort if self.options.sort in self.schema.column_names else self.schema.primary_key
        field = self.table[sort]
        return ~field if (self.options.order or "").lower() == "desc" else field

    def fetch(self) -> ListResult:
        """Run the query for the requested page."""
        pagination = PaginationParams.create(self.options.page, self.options.per_page, MAX_PER_PAGE)
        rows, total = paginated_query(self.db(self.build_query()), pagination, orderby=self.orderby())
        result = ListResult(
            items=[row.as_dict() for row in rows],
            total=total,
            page=pagination.page,
            per_page=pagination.per_page,
            pages=pagination.calculate_pages(total),
        )
        logger.debug("list_fetched", table=self.schema.table, page=result.page, total=total)
        return result

    # ==================== Rendering ====================

    def page_url(self, **overrides: Any) -> str:
        """URL of the list with the current options and some overridden."""
        params: Dict[str, Any] = {
            "page": self.options.page,
            "per_page": self.options.per_page,
            "search": self.options.search,
            "sort": self.options.sort,
            "order": self.options.order,
        }
        params.update(overrides)
        query = urlencode({k: v for k, v in params.items() if v not in (None, "")})
        return f"{self.base_url}/?{query}" if query else f"{self.base_url}/"

    def render(self, result: Optional[ListResult] = None) -> Markup:
        """Render the page as an HTML table."""
        result = result or self.fetch()
        columns = self.visible_columns()
        pk = self.schema.primary_key

        rows = [
            {
                "id": item.get(pk),
                "cells": [format_value(c, item.get(c.name)) for c in columns],
            }
            for item in result.items
        ]
        headers = []
        for column in columns:
            active = self.options.sort == column.name
            next_order = "desc" if active and (self.options.order or "asc").lower() == "asc" else "asc"
            headers.append(
                {
                    "label": column.label,
                    "url": self.page_url(sort=column.name, order=next_order, page=1),
                    "active": active,
                    "order": (self.options.order or "asc").lower() if active else None,
                }
            )

        return render_fragment(
            "components/list.html",
            schema=self.schema,
            headers=headers,
            rows=rows,
            result=result,
            base_url=self.base_url,
            search=self.options.search or "",
            csrf_token=self.csrf_token,
            prev_url=self.page_url(page=result.page - 1) if result.has_prev else None,
            next_url=self.page_url(page=result.page + 1) if result.has_next else None,
        )
