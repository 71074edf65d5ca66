#!/usr/bin/env python3
"""
Maintenance command line for nested-set tables.

Usage:
    nested-tree show 1 --url sqlite:///shop.db --table categories
    nested-tree show 1 --config tree.yaml --max-depth 2 --sort
    nested-tree rebuild --config tree.yaml --sort
    nested-tree check --config tree.yaml
    nested-tree init --url sqlite:///shop.db --table categories

Connection settings come from --config (YAML), NESTED_TREE_* environment
variables, and the --url/--table/--name-field options, in increasing order
of precedence.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Tuple

import typer

from nested_tree import __version__
from nested_tree.database import Database
from nested_tree.exceptions import NestedTreeError
from nested_tree.schema import create_tree_table
from nested_tree.settings import TreeSettings, load_settings
from nested_tree.tree import NestedSetTree

app = typer.Typer(
    name="nested-tree",
    help="Inspect and maintain nested-set (lft/rgt) tree tables",
    no_args_is_help=True,
    add_completion=False,
)


def setup_logging(verbose: int, quiet: bool):
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
    )


def parse_node_id(value: str) -> Any:
    """Integer-looking ids are passed to the database as integers."""
    stripped = value.strip()
    if stripped.lstrip("-").isdigit():
        return int(stripped)
    return stripped


def resolve_settings(
    config: Optional[Path],
    url: Optional[str],
    table: Optional[str],
    name_field: Optional[str],
) -> TreeSettings:
    """Load settings or exit with an error message."""
    try:
        return load_settings(config, url=url, table_name=table, name_field=name_field)
    except NestedTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def open_tree(settings: TreeSettings) -> Tuple[Database, NestedSetTree]:
    """Connect or exit with an error message."""
    try:
        return settings.connect()
    except NestedTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


ConfigOption = typer.Option(None, "--config", "-c", help="YAML settings file")
UrlOption = typer.Option(None, "--url", help="SQLAlchemy connection URL")
TableOption = typer.Option(None, "--table", "-t", help="Tree table name")
NameFieldOption = typer.Option(None, "--name-field", help="Display-name column")
VerboseOption = typer.Option(0, "--verbose", "-v", count=True, help="Increase verbosity (-v, -vv)")
QuietOption = typer.Option(False, "--quiet", "-q", help="Suppress non-error output")


@app.command()
def show(
    node_id: str = typer.Argument(..., help="Id of the subtree root"),
    max_depth: int = typer.Option(0, "--max-depth", "-d", min=0, help="Levels to show (0 = all)"),
    sort: bool = typer.Option(False, "--sort", help="Sort by path instead of preorder"),
    config: Optional[Path] = ConfigOption,
    url: Optional[str] = UrlOption,
    table: Optional[str] = TableOption,
    name_field: Optional[str] = NameFieldOption,
    verbose: int = VerboseOption,
    quiet: bool = QuietOption,
):
    """Print a subtree as an indented outline."""
    setup_logging(verbose, quiet)
    database, tree = open_tree(resolve_settings(config, url, table, name_field))

    try:
        lines = tree.visualise(parse_node_id(node_id), max_depth=max_depth, sort=sort)
    except NestedTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        database.close()

    if not lines:
        typer.echo(f"Error: Node not found: {node_id}", err=True)
        raise typer.Exit(1)

    for line in lines.values():
        typer.echo(line)


@app.command()
def rebuild(
    sort: bool = typer.Option(False, "--sort", help="Order siblings by name"),
    config: Optional[Path] = ConfigOption,
    url: Optional[str] = UrlOption,
    table: Optional[str] = TableOption,
    name_field: Optional[str] = NameFieldOption,
    verbose: int = VerboseOption,
    quiet: bool = QuietOption,
):
    """Recompute every lft/rgt value from parent_id."""
    setup_logging(verbose, quiet)
    database, tree = open_tree(resolve_settings(config, url, table, name_field))

    try:
        tree.rebuild(sort=sort)
        placed = database.get_one(
            f"SELECT COUNT(*) FROM {database.quote_identifier(tree.table_name)} "
            f"WHERE lft IS NOT NULL"
        )
    except NestedTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        database.close()

    if not quiet:
        typer.echo(f"Rebuilt {tree.table_name}: {placed} node(s) placed")


@app.command()
def check(
    config: Optional[Path] = ConfigOption,
    url: Optional[str] = UrlOption,
    table: Optional[str] = TableOption,
    name_field: Optional[str] = NameFieldOption,
    verbose: int = VerboseOption,
    quiet: bool = QuietOption,
):
    """Verify the nested-set invariants; exit 1 if any problem is found."""
    setup_logging(verbose, quiet)
    database, tree = open_tree(resolve_settings(config, url, table, name_field))

    try:
        problems = tree.verify()
    except NestedTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        database.close()

    if problems:
        for problem in problems:
            typer.echo(problem, err=True)
        typer.echo(f"{len(problems)} problem(s) found in {tree.table_name}", err=True)
        raise typer.Exit(1)

    if not quiet:
        typer.echo(f"{tree.table_name}: OK")


@app.command()
def init(
    config: Optional[Path] = ConfigOption,
    url: Optional[str] = UrlOption,
    table: Optional[str] = TableOption,
    name_field: Optional[str] = NameFieldOption,
    verbose: int = VerboseOption,
    quiet: bool = QuietOption,
):
    """Create the tree table if it does not exist."""
    setup_logging(verbose, quiet)
    settings = resolve_settings(config, url, table, name_field)

    try:
        database = settings.create_database()
    except NestedTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    try:
        create_tree_table(database, settings.table_name, settings.name_field)
    except NestedTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        database.close()

    if not quiet:
        typer.echo(f"Table {settings.table_name} is ready")


@app.command()
def version():
    """Print the installed version."""
    typer.echo(f"nested-tree {__version__}")


def main():
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
