"""
Theme management.

Themes are registered in code; which one is active, and any configuration
overrides, are stored in the ``dynamiccrud_themes`` table so every process
sharing the database sees the same theme.

Theme configuration layout:

    colors    primary, secondary, background, text, link
    fonts     heading, body
    layout    container_width, sidebar, header_style
    features  dark_mode, animations, breadcrumbs, social_share
"""

# flake8: noqa: E501


import copy
import datetime
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from markupsafe import Markup
from pydal import Field

from dynamiccrud.database.adapters import detect_adapter
from dynamiccrud.database.connection import transaction
from dynamiccrud.logging_config import get_logger

logger = get_logger(__name__)

THEMES_TABLE = "dynamiccrud_themes"

_CSS_UNSAFE_RE = re.compile(r"[<>{};\\]")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge overrides into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_dotted(config: Dict[str, Any], key: str) -> Any:
    """Read ``colors.primary`` style keys; None when any part is missing."""
    value: Any = config
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def set_dotted(config: Dict[str, Any], key: str, value: Any) -> Dict[str, Any]:
    """Write ``colors.primary`` style keys, creating intermediate dicts."""
    parts = key.split(".")
    current = config
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value
    return config


@dataclass(slots=True)
class Theme:
    """A registered theme and its default configuration."""

    name: str
    description: str = ""
    version: str = "1.0.0"
    author: str = "DynamicCRUD"
    screenshot: str = "screenshot.png"
    config: Dict[str, Any] = field(default_factory=dict)

    def info(self) -> Dict[str, Any]:
        """Public description of the theme."""
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "author": self.author,
            "screenshot": self.screenshot,
        }


def builtin_themes() -> Dict[str, Theme]:
    """The minimal, modern and classic themes."""
    return {
        "minimal": Theme(
            name="Minimal",
            description="Clean, simple design focused on content. Fast loading and mobile-first.",
            config={
                "colors": {
                    "primary": "#333333",
                    "secondary": "#666666",
                    "background": "#ffffff",
                    "text": "#333333",
                    "link": "#0066cc",
                },
                "fonts": {
                    "heading": '-apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif',
                    "body": '-apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif',
                },
                "layout": {"container_width": "800px", "sidebar": False, "header_style": "static"},
                "features": {"dark_mode": False, "animations": False, "breadcrumbs": False, "social_share": False},
            },
        ),
        "modern": Theme(
            name="Modern",
            description="Modern theme with gradients, animations, and dark mode support.",
            config={
                "colors": {
                    "primary": "#667eea",
                    "secondary": "#764ba2",
                    "background": "#f5f7fa",
                    "text": "#333333",
                    "link": "#667eea",
                },
                "fonts": {
                    "heading": "Inter, -apple-system, sans-serif",
                    "body": "Inter, -apple-system, sans-serif",
                },
                "layout": {"container_width": "1200px", "sidebar": False, "header_style": "fixed"},
                "features": {"dark_mode": True, "animations": True, "breadcrumbs": True, "social_share": True},
            },
        ),
        "classic": Theme(
            name="Classic",
            description="Traditional blog design with sidebar layout and serif fonts.",
            config={
                "colors": {
                    "primary": "#8b4513",
                    "secondary": "#d2691e",
                    "background": "#f5f5dc",
                    "text": "#333333",
                    "link": "#8b4513",
                },
                "fonts": {
                    "heading": 'Georgia, "Times New Roman", serif',
                    "body": 'Georgia, "Times New Roman", serif',
                },
                "layout": {"container_width": "1000px", "sidebar": True, "header_style": "static"},
                "features": {"dark_mode": False, "animations": False, "breadcrumbs": True, "social_share": False},
            },
        ),
    }


class ThemeManager:
    """Register themes and persist the active one."""

    def __init__(self, db, themes: Optional[Dict[str, Theme]] = None, migrate: bool = True):
        """
        Initialize manager and make sure the themes table exists.

        Args:
            db: Connected PyDAL instance
            themes: Themes to register (default: the built-in themes)
            migrate: Let PyDAL create the themes table when missing
        """
        self.db = db
        self.themes: Dict[str, Theme] = {}
        self._active: Optional[str] = None
        self._define_table(migrate)

        for name, theme in (builtin_themes() if themes is None else themes).items():
            self.register(name, theme)

    def _define_table(self, migrate: bool) -> None:
        if THEMES_TABLE not in self.db.tables:
            # An existing table is adopted as is
            exists = THEMES_TABLE in detect_adapter(self.db).list_tables()
            self.db.define_table(
                THEMES_TABLE,
                Field("name", "string", length=100, unique=True, notnull=True),
                Field("active", "boolean", default=False),
                Field("config", "json"),
                Field("installed_at", "datetime", default=_utcnow),
                Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
                migrate=migrate and not exists,
            )
            self.db.commit()
        self.table = self.db[THEMES_TABLE]

    def _row(self, name: str):
        return self.db(self.table.name == name).select(limitby=(0, 1)).first()

    # ==================== Registry ====================

    def register(self, name: str, theme: Theme) -> None:
        """Make a theme available under a name."""
        self.themes[name] = theme

    def available(self) -> Dict[str, Dict[str, Any]]:
        """Info of every registered theme, by name."""
        return {name: theme.info() for name, theme in self.themes.items()}

    def get_theme_info(self, name: str) -> Dict[str, Any]:
        """Info and default config of a theme ({} if unknown)."""
        theme = self.themes.get(name)
        if theme is None:
            return {}
        return {**theme.info(), "config": copy.deepcopy(theme.config)}

    def is_installed(self, name: str) -> bool:
        """Whether the theme has a row in the themes table."""
        return self._row(name) is not None

    # ==================== Activation ====================

    def get_active(self) -> Optional[Theme]:
        """Active theme, loaded from the database on first use."""
        if self._active is None and self.themes:
            row = self.db(self.table.active == True).select(self.table.name, limitby=(0, 1)).first()  # noqa: E712
            if row and row.name in self.themes:
                self._active = row.name
        return self.themes.get(self._active) if self._active else None

    @property
    def active_name(self) -> Optional[str]:
        """Registered name of the active theme."""
        return self._active if self.get_active() is not None else None

    def activate(self, name: str) -> bool:
        """
        Make a theme the only active one.

        Returns:
            False if the theme is unknown or the database update failed
        """
        if name not in self.themes:
            logger.warning("theme_unknown", theme=name)
            return False

        try:
            with transaction(self.db):
                self.db(self.table.id > 0).update(active=False)
                if self._row(name) is not None:
                    self.db(self.table.name == name).update(active=True)
                else:
                    self.table.insert(name=name, active=True, config={})
        except Exception as e:
            logger.error("theme_activation_failed", theme=name, error=str(e))
            return False

        self._active = name
        logger.info("theme_activated", theme=name)
        return True

    def deactivate(self) -> bool:
        """Leave no theme active."""
        try:
            with transaction(self.db):
                self.db(self.table.id > 0).update(active=False)
        except Exception as e:
            logger.error("theme_deactivation_failed", error=str(e))
            return False
        self._active = None
        return True

    # ==================== Configuration ====================

    def get_config(self, key: Optional[str] = None) -> Any:
        """
        Configuration of the active theme, with stored overrides applied.

        Args:
            key: Dot-notation key such as "colors.primary"; None returns everything

        Returns:
            Value, or None if there is no active theme or the key is missing
        """
        theme = self.get_active()
        if theme is None:
            return None
        row = self._row(self._active)
        config = deep_merge(theme.config, (row.config if row and row.config else {}))
        if key is None:
            return config
        return get_dotted(config, key)

    def set_config(self, key: str, value: Any) -> bool:
        """
        Store an override for the active theme.

        Returns:
            False if there is no active theme or the update failed
        """
        if self.get_active() is None:
            return False
        try:
            with transaction(self.db):
                row = self._row(self._active)
                overrides = dict(row.config or {}) if row else {}
                set_dotted(overrides, key, value)
                if row:
                    self.db(self.table.name == self._active).update(config=overrides)
                else:
                    self.table.insert(name=self._active, active=True, config=overrides)
        except Exception as e:
            logger.error("theme_config_failed", theme=self._active, key=key, error=str(e))
            return False
        return True

    def render_css_variables(self) -> Markup:
        """
        CSS custom properties of the active theme.

        Example output:
            :root {
              --primary-color: #667eea;
              --font-family: Inter, -apple-system, sans-serif;
            }
        """
        config = self.get_config()
        if not config:
            return Markup("")

        variables = []
        for name, value in (config.get("colors") or {}).items():
            variables.append((f"--{name}-color", value))
        fonts = config.get("fonts") or {}
        for name, value in fonts.items():
            variables.append((f"--font-{name}", value))
        if "body" in fonts:
            variables.append(("--font-family", fonts["body"]))
        layout = config.get("layout") or {}
        if "container_width" in layout:
            variables.append(("--container-width", layout["container_width"]))

        lines = [":root {"]
        for name, value in variables:
            lines.append(f"  {name.replace('_', '-')}: {_CSS_UNSAFE_RE.sub('', str(value))};")
        lines.append("}")
        return Markup("\n".join(lines))
