"""Database utilities for dynamiccrud.

PyDAL is used for every runtime query. Table schemas are never declared in
code: they are read from the live catalog by the adapters in
dynamiccrud.database.adapters and turned into PyDAL tables on demand.
"""

# flake8: noqa: E501

import logging
import os

from pydal import DAL

from dynamiccrud.database.adapters import (
    DatabaseAdapter,
    MySQLAdapter,
    PostgreSQLAdapter,
    SQLiteAdapter,
    detect_adapter,
)
from dynamiccrud.database.connection import (
    build_database_url,
    create_db_connection,
    get_database_url,
    mask_url,
    transaction,
)

logger = logging.getLogger(__name__)


def ensure_database_ready(settings):
    """Check if database is ready. Returns status dict."""
    try:
        database_url = get_database_url(settings, for_system="pydal")

        # Try to connect with a throwaway DAL instance
        folder = None
        if database_url.startswith("sqlite://"):
            folder = settings.db_folder
            os.makedirs(folder, exist_ok=True)
        test_db = DAL(database_url, folder=folder, migrate=False, pool_size=1, attempts=1)
        engine = test_db._adapter.dbengine
        test_db.close()

        return {
            "connected": True,
            "db_type": engine,
            "url": mask_url(database_url),
        }
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return {"connected": False, "error": str(e)}


def log_startup_status(status):
    """Log database startup status."""
    if status.get("connected"):
        logger.info(f"Database ready - {status.get('db_type')} at {status.get('url')}")
    else:
        logger.error(f"Database not ready: {status.get('error')}")


__all__ = [
    "DatabaseAdapter",
    "MySQLAdapter",
    "PostgreSQLAdapter",
    "SQLiteAdapter",
    "build_database_url",
    "create_db_connection",
    "detect_adapter",
    "ensure_database_ready",
    "get_database_url",
    "log_startup_status",
    "mask_url",
    "transaction",
]
