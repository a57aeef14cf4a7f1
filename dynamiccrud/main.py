"""Main Flask application for dynamiccrud."""

# flake8: noqa: E501


import os
from typing import Optional

from flask import Flask, jsonify, render_template, send_from_directory
from flask_wtf.csrf import CSRFProtect

from dynamiccrud.cache import create_cache
from dynamiccrud.config import Settings, get_settings
from dynamiccrud.database import (
    create_db_connection,
    ensure_database_ready,
    get_database_url,
    log_startup_status,
)
from dynamiccrud.exceptions import RecordNotFoundError, SchemaError
from dynamiccrud.logging_config import get_logger, setup_logging
from dynamiccrud.services.crud import DynamicCRUD
from dynamiccrud.services.schema_analyzer import SchemaAnalyzer
from dynamiccrud.services.themes import THEMES_TABLE, ThemeManager

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, db=None) -> Flask:
    """
    Create and configure Flask application.

    Args:
        settings: Settings instance (default: read from the environment)
        db: Connected PyDAL instance (default: connect using settings)

    Returns:
        Configured Flask application

    Raises:
        RuntimeError: If the database is not reachable
    """
    settings = settings or get_settings()

    # Setup logging before anything else logs
    setup_logging(settings.log_level, settings.log_format)

    # Create Flask app
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=settings.secret_key,
        WTF_CSRF_ENABLED=settings.csrf_enabled,
        APP_NAME=settings.app_name,
        APP_VERSION=settings.app_version,
        TESTING=settings.is_testing,
        MAX_CONTENT_LENGTH=settings.upload_max_size * 10,
    )

    _init_extensions(app)

    if db is None:
        db = _connect(settings)
    app.db = db

    cache = create_cache(settings)
    analyzer = SchemaAnalyzer(db, cache=cache, cache_ttl=settings.cache_ttl)
    theme_manager = ThemeManager(db)
    if settings.theme:
        theme_manager.activate(settings.theme)

    app.extensions["dynamiccrud"] = {
        "db": db,
        "settings": settings,
        "cache": cache,
        "analyzer": analyzer,
        "theme_manager": theme_manager,
        "handlers": {},
    }

    _register_blueprints(app, settings)
    _register_error_handlers(app)

    from dynamiccrud.cli import crud_cli

    app.cli.add_command(crud_cli)

    # Uploaded files
    upload_root = os.path.abspath(settings.upload_dir)
    upload_prefix = "/" + settings.upload_url_prefix.strip("/")

    @app.route(f"{upload_prefix}/<path:filename>")
    def uploaded_file(filename):
        """Serve an uploaded file."""
        return send_from_directory(upload_root, filename)

    # Health check endpoint
    @app.route("/healthz")
    def health_check():
        """Health check endpoint."""
        return jsonify({"status": "healthy", "service": "dynamiccrud"}), 200

    logger.info(
        "dynamiccrud_app_created",
        environment=settings.environment,
        version=settings.app_version,
        tables=sorted(app.extensions["dynamiccrud"]["handlers"]),
    )

    return app


def _connect(settings: Settings):
    """Check database connectivity and open the PyDAL connection."""
    db_status = ensure_database_ready(settings)
    log_startup_status(db_status)

    if not db_status["connected"]:
        raise RuntimeError("Cannot start application - database not available")

    os.makedirs(settings.db_folder, exist_ok=True)
    return create_db_connection(
        get_database_url(settings, for_system="pydal"),
        pool_size=settings.db_pool_size,
        folder=settings.db_folder,
        max_retries=settings.db_connect_retries,
        retry_delay=settings.db_retry_delay,
    )


def _init_extensions(app: Flask) -> None:
    """
    Initialize Flask extensions.

    Args:
        app: Flask application
    """
    # CSRF tokens are checked by the CRUD handlers themselves
    CSRFProtect(app)
    app.config["WTF_CSRF_CHECK_DEFAULT"] = False

    logger.info("extensions_initialized")


def register_table(app: Flask, table: str, **kwargs) -> DynamicCRUD:
    """
    Expose one table through the web UI.

    Args:
        app: Application built by create_app
        table: Table name
        **kwargs: Extra DynamicCRUD arguments

    Returns:
        The table's handler, for attaching hooks and virtual fields

    Raises:
        SchemaError: If the table does not exist or has no primary key
    """
    from dynamiccrud.web.routes import create_crud_blueprint

    state = app.extensions["dynamiccrud"]
    settings = state["settings"]
    crud = DynamicCRUD.from_settings(
        state["db"],
        table,
        settings,
        analyzer=state["analyzer"],
        **kwargs,
    )
    app.register_blueprint(create_crud_blueprint(crud, per_page=settings.per_page))
    state["handlers"][table] = crud
    return crud


def _register_blueprints(app: Flask, settings: Settings) -> None:
    """
    Register the index blueprint and one CRUD blueprint per table.

    Args:
        app: Flask application
        settings: Settings instance
    """
    from dynamiccrud.web import routes as web

    app.register_blueprint(web.bp)

    tables = settings.table_list
    if not tables:
        tables = [
            t for t in app.extensions["dynamiccrud"]["analyzer"].list_tables()
            if t != THEMES_TABLE
        ]

    for table in tables:
        try:
            register_table(app, table)
        except SchemaError as e:
            logger.warning("table_skipped", table=table, error=str(e))

    logger.info("blueprints_registered", tables=len(app.extensions["dynamiccrud"]["handlers"]))


def _register_error_handlers(app: Flask) -> None:
    """
    Register error handlers.

    Args:
        app: Flask application
    """
    from dynamiccrud.web.routes import get_template_context

    def error_page(code: int, title: str, message: str):
        return (
            render_template(
                "errors/error.html",
                code=code,
                title=title,
                message=message,
                **get_template_context(),
            ),
            code,
        )

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request."""
        logger.warning("bad_request", error=str(error))
        return error_page(400, "Bad Request", "The request could not be processed.")

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found."""
        return error_page(404, "Not Found", "The page or record you requested does not exist.")

    @app.errorhandler(RecordNotFoundError)
    def record_not_found(error):
        """Handle a missing record raised outside a route's own handling."""
        return error_page(404, "Not Found", str(error))

    @app.errorhandler(500)
    def internal_server_error(error):
        """Handle 500 Internal Server Error."""
        logger.error("internal_server_error", error=str(error))
        return error_page(500, "Internal Server Error", "An error occurred.")

    logger.info("error_handlers_registered")


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=get_settings().environment == "development")
