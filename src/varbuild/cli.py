"""Shared CLI utilities for varbuild commands.

Provides common Typer options, config-loading helpers and standardised
output / error helpers so that every command gets consistent ``--root``
support, error reporting and JSON output without boilerplate.

Usage in a command::

    import typer
    from varbuild.cli import RootOption, error_exit, get_config

    app = typer.Typer()

    @app.command()
    def main(root: Path | None = RootOption) -> None:
        cfg = get_config(root)
        ...
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from varbuild.config import ProjectConfig, load_config

# Re-usable Typer option for --root
RootOption: Path | None = typer.Option(
    None,
    "--root",
    "-C",
    help="Project root containing varbuild.toml (default: search upward from cwd).",
)


def get_config(root: Path | None = None, *, json_mode: bool = False) -> ProjectConfig:
    """Load the project config, exiting with a diagnostic on failure."""
    try:
        return load_config(root=root)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        error_exit(str(exc), json_mode=json_mode)


# ---------------------------------------------------------------------------
# Standardised output helpers
# ---------------------------------------------------------------------------

_err_console = Console(stderr=True)


def error_exit(msg: str, *, json_mode: bool = False, code: int = 1) -> NoReturn:
    """Print *msg* as an error and ``raise typer.Exit(code)``."""
    if json_mode:
        print(json.dumps({"error": msg}, indent=2))
    else:
        _err_console.print(f"[red bold]error:[/red bold] {escape(msg)}", highlight=False)
    raise typer.Exit(code=code)


def json_print(data: dict[str, Any] | list[Any]) -> None:
    """Print *data* as pretty-printed JSON to stdout."""
    print(json.dumps(data, indent=2))
