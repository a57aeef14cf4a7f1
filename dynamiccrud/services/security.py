"""Security helpers: CSRF tokens and input sanitization.

CSRF tokens are Flask-WTF's signed session tokens, so they are only
available inside a Flask request. HTML escaping is not done here: every
template dynamiccrud renders is autoescaped.
"""

# flake8: noqa: E501


import re
from typing import Any, Dict, Iterable, Optional

from flask import current_app, has_app_context
from flask_wtf.csrf import generate_csrf, validate_csrf
from wtforms.validators import ValidationError

from dynamiccrud.logging_config import get_logger
from dynamiccrud.models.dataclasses import TableSchema

logger = get_logger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def clean_string(value: str) -> str:
    """Strip surrounding whitespace and control characters (tabs/newlines kept)."""
    return _CONTROL_CHARS_RE.sub("", value).strip()


class SecurityModule:
    """CSRF and sanitization for form submissions."""

    def __init__(self, csrf_enabled: bool = True):
        """
        Initialize module.

        Args:
            csrf_enabled: False turns token generation and checks off
        """
        self.csrf_enabled = csrf_enabled

    @property
    def enabled(self) -> bool:
        """Whether CSRF protection is active for the current app."""
        if not self.csrf_enabled:
            return False
        if has_app_context():
            return bool(current_app.config.get("WTF_CSRF_ENABLED", True))
        return True

    def generate_csrf_token(self) -> str:
        """Token for the hidden csrf_token input ("" when protection is off)."""
        if not self.enabled:
            return ""
        return generate_csrf()

    def validate_csrf_token(self, token: Optional[str]) -> bool:
        """Check a submitted token against the session."""
        if not self.enabled:
            return True
        try:
            validate_csrf(token)
        except ValidationError as e:
            logger.warning("csrf_validation_failed", reason=str(e))
            return False
        return True

    def sanitize_input(
        self,
        data: Any,
        allowed_columns: Iterable[str],
        schema: Optional[TableSchema] = None,
    ) -> Dict[str, Any]:
        """
        Keep only the allowed keys and clean their values.

        Args:
            data: Submitted form (dict or werkzeug MultiDict)
            allowed_columns: Column and virtual field names that may be submitted
            schema: When given, unchecked boolean checkboxes are mapped to False
                and columns with ``multiple`` metadata keep every submitted value

        Returns:
            New dict with the sanitized values
        """
        allowed = list(allowed_columns)
        multi_valued = set()
        if schema is not None:
            multi_valued = {c.name for c in schema.columns if c.metadata.get("multiple")}
        clean: Dict[str, Any] = {}

        for key in allowed:
            if key not in data:
                continue
            if key in multi_valued and hasattr(data, "getlist"):
                value: Any = [clean_string(v) if isinstance(v, str) else v for v in data.getlist(key)]
            else:
                value = data.get(key)
                if isinstance(value, str):
                    value = clean_string(value)
            clean[key] = value

        if schema is not None:
            for column in schema.editable_columns:
                if column.name in allowed and column.type_family == "boolean" and column.name not in clean:
                    clean[column.name] = False

        return clean
