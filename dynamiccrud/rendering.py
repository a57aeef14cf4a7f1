"""Jinja2 environment for the HTML fragments generated by dynamiccrud.

Fragments (forms, tables, detail views) are rendered outside of any Flask
request, so they use their own environment over the package templates.
Autoescaping is always on; rendered fragments are returned as Markup so a
host template can embed them without ``|safe``.
"""

# flake8: noqa: E501


from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

env = Environment(
    loader=PackageLoader("dynamiccrud", "templates"),
    autoescape=select_autoescape(["html", "xml"], default_for_string=True),
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_fragment(template_name: str, **context) -> Markup:
    """Render a package template to escaped HTML."""
    return Markup(env.get_template(template_name).render(**context))
