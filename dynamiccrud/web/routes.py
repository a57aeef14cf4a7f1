"""Web UI routes: one CRUD blueprint per table plus the table index."""

# flake8: noqa: E501


from typing import Any, Dict, Optional

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)

from dynamiccrud.exceptions import RecordNotFoundError
from dynamiccrud.logging_config import get_logger
from dynamiccrud.models.dataclasses import ListOptions, SubmissionResult
from dynamiccrud.services.crud import CRUDHandler
from dynamiccrud.utils.pydal_helpers import PaginationParams

logger = get_logger(__name__)

bp = Blueprint("web", __name__)

# Query-string keys that are not column filters
LIST_PARAMS = {"page", "per_page", "search", "sort", "order"}


def get_template_context() -> Dict[str, Any]:
    """Get common template context variables."""
    state = current_app.extensions["dynamiccrud"]
    theme_manager = state.get("theme_manager")
    return {
        "app_name": current_app.config.get("APP_NAME", "DynamicCRUD"),
        "app_version": current_app.config.get("APP_VERSION", "0.1.0"),
        "theme_css": theme_manager.render_css_variables() if theme_manager is not None else "",
        "crud_tables": sorted(state["handlers"]),
    }


def list_options_from_request(crud: CRUDHandler, default_per_page: int = 20) -> ListOptions:
    """Build ListOptions from the query string; unknown keys that name columns become filters."""
    pagination = PaginationParams.from_request(default_per_page=default_per_page)
    filters = {
        key: value
        for key, value in request.args.items()
        if key not in LIST_PARAMS and crud.schema.column(key) is not None and value != ""
    }
    return ListOptions(
        page=pagination.page,
        per_page=pagination.per_page,
        search=request.args.get("search") or None,
        sort=request.args.get("sort") or None,
        order=request.args.get("order", "asc"),
        filters=filters,
    )


def resubmitted_values(result: SubmissionResult) -> Dict[str, Any]:
    """Form values to show again after a failed submission.

    The sanitized data wins over the raw form so unchecked checkboxes stay unchecked.
    """
    return {**request.form.to_dict(), **(result.data or {})}


# ============================================================================
# Index
# ============================================================================


@bp.route("/")
def index():
    """List the tables exposed through the UI."""
    return render_template("crud/index.html", **get_template_context())


# ============================================================================
# CRUD Blueprint Factory
# ============================================================================


def create_crud_blueprint(crud: CRUDHandler, url_prefix: Optional[str] = None, per_page: int = 20) -> Blueprint:
    """
    Create the list/detail/new/edit/delete routes of one table.

    Args:
        crud: Handler of the table
        url_prefix: Mount point (default: /<table>)
        per_page: Default rows per list page

    Returns:
        Flask Blueprint named crud_<table>

    Example:
        app.register_blueprint(create_crud_blueprint(DynamicCRUD(db, "users")))
    """
    table = crud.schema.table
    crud_bp = Blueprint(f"crud_{table}", __name__, url_prefix=url_prefix or f"/{table}")

    def page_context(**extra: Any) -> Dict[str, Any]:
        context = get_template_context()
        context.update(schema=crud.schema, table=table, **extra)
        return context

    @crud_bp.route("/")
    def list_records():
        """Paginated list."""
        options = list_options_from_request(crud, per_page)
        base_url = url_for(".list_records").rstrip("/")
        return render_template(
            "crud/list.html",
            **page_context(content=crud.render_list(options, base_url=base_url)),
        )

    @crud_bp.route("/<record_id>")
    def detail(record_id):
        """Record detail page."""
        try:
            content = crud.render_detail(record_id)
        except RecordNotFoundError:
            abort(404)
        return render_template("crud/detail.html", **page_context(content=content, record_id=record_id))

    @crud_bp.route("/new", methods=["GET", "POST"])
    def create():
        """Create form."""
        if request.method == "POST":
            result = crud.handle_submission(request.form, request.files)
            if result.success:
                flash(f"{crud.schema.label} #{result.id} created.", "success")
                return redirect(url_for(".detail", record_id=result.id))
            if result.error:
                flash(result.error, "error")
            content = crud.render_form(data=resubmitted_values(result), errors=result.errors)
            return render_template("crud/form.html", **page_context(content=content, mode="create")), 400

        return render_template("crud/form.html", **page_context(content=crud.render_form(), mode="create"))

    @crud_bp.route("/<record_id>/edit", methods=["GET", "POST"])
    def edit(record_id):
        """Edit form."""
        if crud.find_by_id(record_id) is None:
            abort(404)

        if request.method == "POST":
            # The URL decides which record is updated
            form = request.form.copy()
            form["id"] = record_id
            result = crud.handle_submission(form, request.files)
            if result.success:
                flash(f"{crud.schema.label} #{result.id} updated.", "success")
                return redirect(url_for(".detail", record_id=result.id))
            if result.error:
                flash(result.error, "error")
            content = crud.render_form(record_id, data=resubmitted_values(result), errors=result.errors)
            return render_template("crud/form.html", **page_context(content=content, mode="edit", record_id=record_id)), 400

        content = crud.render_form(record_id)
        return render_template("crud/form.html", **page_context(content=content, mode="edit", record_id=record_id))

    @crud_bp.route("/<record_id>/delete", methods=["POST"])
    def delete(record_id):
        """Delete a record."""
        if not crud.security.validate_csrf_token(request.form.get("csrf_token")):
            abort(400)
        try:
            deleted = crud.delete(record_id)
        except RecordNotFoundError:
            abort(404)
        except Exception as e:
            logger.error("delete_failed", table=table, id=record_id, error=str(e))
            flash(f"Could not delete record: {e}", "error")
            return redirect(url_for(".list_records"))

        if not deleted:
            abort(404)
        flash(f"{crud.schema.label} #{record_id} deleted.", "success")
        return redirect(url_for(".list_records"))

    return crud_bp
