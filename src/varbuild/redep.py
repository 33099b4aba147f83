"""redep.py – Regenerate every manifest entry's dependency list.

For each source in each manifest set, runs the configured dependency scan
(``gcc -MM`` by default) with the entry's include paths and stores the
headers it reports as the entry's ``dependencies``.  Manifests are written
back in place.  Nothing is compiled and no flags are resolved.

The scan output is treated as opaque text::

    main.o: src/main.c include/pc.h \\
     include/util.h

Continuations are joined, the ``target:`` prefix is dropped, the source
itself is dropped, and the remaining whitespace-separated paths are kept.
"""

import shlex
import subprocess
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from varbuild.cli import RootOption, error_exit, get_config
from varbuild.manifest import FileEntry, Manifest, ManifestError, load_manifests, save_manifest

console = Console(stderr=True)


class DependencyScanError(RuntimeError):
    """The external dependency scanner failed for a source file."""


def parse_dependency_output(text: str, source: str) -> list[str]:
    """Turn make-style dependency text into a flat path list (source excluded)."""
    text = text.replace("\\\r\n", " ").replace("\\\n", " ")
    _, sep, rest = text.partition(":")
    if not sep:
        rest = text
    paths = rest.split()
    if paths and paths[0] == source:
        paths.pop(0)
    return paths


def scan_command(depscan: str, entry: FileEntry) -> list[str]:
    return [*shlex.split(depscan), entry.source, *(f"-I{p}" for p in entry.include_paths)]


def scan_dependencies(depscan: str, entry: FileEntry, root: Path) -> list[str]:
    """Run the scanner for one entry and return its dependency paths.

    Raises:
        DependencyScanError: the scanner could not run or exited nonzero.
    """
    cmd = scan_command(depscan, entry)
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, cwd=root, check=False)
    except OSError as exc:
        raise DependencyScanError(f"Could not run '{cmd[0]}': {exc}") from exc
    if r.returncode != 0:
        raise DependencyScanError(
            f"Dependency scan failed for {entry.source}: {r.stderr.strip()[:400]}"
        )
    return parse_dependency_output(r.stdout, entry.source)


def regenerate(manifests: list[Manifest], depscan: str, root: Path) -> int:
    """Rescan every entry of every manifest and persist the results.

    Returns:
        Number of entries updated.
    """
    updated = 0
    for manifest in manifests:
        for entry in manifest:
            entry.dependencies = scan_dependencies(depscan, entry, root)
            updated += 1
        save_manifest(manifest)
    return updated


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="Recalculate source dependencies in every manifest.",
    rich_markup_mode="rich",
    epilog="""\
[bold]Examples:[/bold]

varbuild redep                      Rescan with the configured scanner

varbuild redep --depscan "clang -MM"   Use a different scanner

[dim]Rewrites build/<name>-files.json in place. Run after adding
#include lines so header edits trigger the right rebuilds.[/dim]""",
)


@app.callback(invoke_without_command=True)
def main(
    depscan: str | None = typer.Option(
        None, "--depscan", help="Dependency scan command (default from varbuild.toml)."
    ),
    root: Path | None = RootOption,
) -> None:
    """Recalculate dependencies for every manifest entry."""
    cfg = get_config(root)
    try:
        manifests = load_manifests(cfg.build_dir, cfg.index)
        count = regenerate(manifests, depscan or cfg.depscan, cfg.root)
    except (ManifestError, DependencyScanError) as exc:
        error_exit(str(exc))
    console.print(
        f"Successfully recalculated dependencies for {count} files "
        f"in {len(manifests)} manifest(s)"
    )
    for manifest in manifests:
        console.print(f"  [dim]{escape(str(manifest.path))}[/dim]")


def main_entry() -> None:
    app()


if __name__ == "__main__":
    main_entry()
