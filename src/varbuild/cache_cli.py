"""varbuild cache: Manage the shared object file cache."""

from pathlib import Path

import typer

from varbuild.cli import RootOption, get_config, json_print
from varbuild.object_cache import ObjectCache

app = typer.Typer(
    help="Manage the object cache (build/objs/).",
    rich_markup_mode="rich",
    epilog="""\
[bold]Examples:[/bold]

varbuild cache stats                Show object count and disk usage

varbuild cache clear                Delete all cached .o files

varbuild clean                      Same as 'cache clear'

[dim]The object cache holds one .o per (source, flag set), shared by every
variant. Object names encode the flags, so variants never overwrite each
other's objects.[/dim]""",
)


@app.command()
def stats(
    root: Path | None = RootOption,
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """Show object cache statistics."""
    cfg = get_config(root, json_mode=json_output)
    cache = ObjectCache(cfg.objects_dir)
    info = cache.stats()
    if json_output:
        json_print(info)
        return
    if not cache.root.exists():
        typer.echo("No object cache found (not yet created).")
        return
    typer.echo(f"Cache directory: {info['directory']}")
    typer.echo(f"Objects:         {info['entries']}")
    typer.echo(f"Disk usage:      {info['volume_mb']} MB")


@app.command()
def clear(
    root: Path | None = RootOption,
) -> None:
    """Delete all cached object files."""
    cfg = get_config(root)
    cache = ObjectCache(cfg.objects_dir)
    if not cache.root.exists():
        typer.echo("No object cache found (nothing to clear).")
        return
    count = cache.clear()
    typer.echo(f"Removed {count} object files from {cache.root}")


def main_entry() -> None:
    app()


if __name__ == "__main__":
    main_entry()
