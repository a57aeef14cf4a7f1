"""
Management commands, registered on the Flask CLI as ``flask crud ...``.

    flask --app dynamiccrud.main crud tables
    flask --app dynamiccrud.main crud schema users
    flask --app dynamiccrud.main crud clear-cache users
    flask --app dynamiccrud.main crud themes
    flask --app dynamiccrud.main crud theme-activate modern
"""

# flake8: noqa: E501


import json

import click
from flask import current_app
from flask.cli import AppGroup

from dynamiccrud.exceptions import SchemaError

crud_cli = AppGroup("crud", help="Inspect tables and manage the schema cache and themes.")


def _state():
    return current_app.extensions["dynamiccrud"]


def success(message: str) -> None:
    click.secho(message, fg="green")


def info(message: str) -> None:
    click.secho(message, fg="cyan")


def warning(message: str) -> None:
    click.secho(message, fg="yellow")


def error(message: str) -> None:
    click.secho(message, fg="red", err=True)


@crud_cli.command("tables")
def list_tables():
    """List database tables and whether the UI exposes them."""
    state = _state()
    exposed = state["handlers"]
    for table in state["analyzer"].list_tables():
        marker = "*" if table in exposed else " "
        click.echo(f" {marker} {table}")
    info(f"{len(exposed)} table(s) exposed (*)")


@crud_cli.command("schema")
@click.argument("table")
@click.option("--json", "as_json", is_flag=True, help="Print the schema as JSON.")
def show_schema(table, as_json):
    """Print the introspected schema of TABLE."""
    try:
        schema = _state()["analyzer"].get_table_schema(table)
    except SchemaError as e:
        error(str(e))
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(schema.to_dict(), indent=2, default=str))
        return

    info(f"{schema.table} (primary key: {schema.primary_key})")
    for column in schema.columns:
        flags = []
        if column.is_primary:
            flags.append("PK")
        if column.is_auto_increment:
            flags.append("auto")
        if column.is_required:
            flags.append("required")
        if column.foreign_key is not None:
            flags.append(f"-> {column.foreign_key.table}.{column.foreign_key.column}")
        click.echo(f"  {column.name:<24} {column.column_type:<20} {' '.join(flags)}")


@crud_cli.command("clear-cache")
@click.argument("table", required=False)
def clear_cache(table):
    """Drop the cached schema of TABLE, or of every table."""
    state = _state()
    if state["cache"] is None:
        warning("No schema cache configured")
        return

    if table:
        if state["analyzer"].invalidate_cache(table):
            success(f"Schema cache cleared for {table}")
        else:
            warning(f"No cached schema for {table}")
        return

    state["cache"].clear()
    success("Schema cache cleared")


@crud_cli.command("themes")
def list_themes():
    """List the registered themes."""
    manager = _state()["theme_manager"]
    active = manager.active_name
    for name, theme in manager.available().items():
        marker = "*" if name == active else " "
        click.echo(f" {marker} {name:<10} {theme['description']}")


@crud_cli.command("theme-activate")
@click.argument("name")
def activate_theme(name):
    """Make NAME the active theme."""
    if _state()["theme_manager"].activate(name):
        success(f"Theme '{name}' activated")
    else:
        error(f"Could not activate theme '{name}'")
        raise SystemExit(1)
